"""Tests for the podstr-feed command line."""
import json
import xml.etree.ElementTree as ET

import pytest
from typer.testing import CliRunner

from podstr_nostr import __version__
from podstr_nostr.cli import app
from podstr_nostr.config import (
    ENV_BASE_URL,
    ENV_CONFIG_PATH,
    ENV_CREATOR,
    ENV_ENVIRONMENT,
    ENV_OUTPUT_DIR,
    ENV_RELAYS,
)
from podstr_nostr.relay import RelayError, RelayPool


@pytest.fixture
def runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the developer's environment out of the build."""
    for name in (ENV_BASE_URL, ENV_CONFIG_PATH, ENV_CREATOR, ENV_ENVIRONMENT, ENV_OUTPUT_DIR, ENV_RELAYS):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def unreachable_relays(monkeypatch, fake_source):
    """Replace real relays with ones that always fail."""
    def from_urls(cls, urls):
        return cls([fake_source(url, error=RelayError("connection refused")) for url in urls])

    monkeypatch.setattr(RelayPool, "from_urls", classmethod(from_urls))


@pytest.fixture
def catalog_relays(monkeypatch, fake_source, make_episode_event):
    """Replace real relays with ones holding one episode by a hex creator."""
    episode = make_episode_event(title="Hello & Welcome", identifier="ep-1")

    def from_urls(cls, urls):
        return cls([fake_source(url, [episode]) for url in urls])

    monkeypatch.setattr(RelayPool, "from_urls", classmethod(from_urls))
    return episode


class TestVersion:
    """Tests for the version command."""

    def test_version(self, runner):
        """Test version output."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert f"podstr-feed v{__version__}" in result.stdout


class TestBuild:
    """Tests for the build command."""

    def test_build_with_relays_down(self, runner, tmp_path, unreachable_relays):
        """Test that a build with no reachable relays still succeeds."""
        out = tmp_path / "dist"

        result = runner.invoke(app, [
            "build", "-o", str(out), "-r", "wss://a.test", "-r", "wss://b.test",
            "--base-url", "https://pod.example/",
        ])

        assert result.exit_code == 0, result.output
        assert "Episodes: 0" in result.stdout
        assert "Metadata source: defaults" in result.stdout

        channel = ET.fromstring((out / "rss.xml").read_bytes()).find("channel")
        assert channel.findall("item") == []

        health = json.loads((out / "rss-health.json").read_text(encoding="utf-8"))
        assert health["episodeCount"] == 0
        assert health["dataSource"]["episodes"] == "none"
        assert health["dataSource"]["relays"] == ["wss://a.test", "wss://b.test"]
        assert (out / ".nojekyll").exists()

    def test_build_from_config_file(self, runner, tmp_path, catalog_relays):
        """Test a build driven by a YAML file."""
        out = tmp_path / "site"
        config_path = tmp_path / "podstr.yaml"
        config_path.write_text(
            "creator_npub: " + catalog_relays.pubkey + "\n"
            "base_url: https://pod.example\n"
            "environment: staging\n"
            "relays:\n"
            "  - wss://one.test\n"
            f"output_dir: {out}\n",
            encoding="utf-8",
        )

        result = runner.invoke(app, ["build", "-c", str(config_path)])

        assert result.exit_code == 0, result.output
        assert "Episodes: 1" in result.stdout
        xml = (out / "rss.xml").read_text(encoding="utf-8")
        assert "<title>Hello &amp; Welcome</title>" in xml
        health = json.loads((out / "rss-health.json").read_text(encoding="utf-8"))
        assert health["environment"] == "staging"
        assert health["dataSource"]["relays"] == ["wss://one.test"]

    def test_environment_option(self, runner, tmp_path, unreachable_relays):
        """Test the --environment label ends up in the health file."""
        out = tmp_path / "dist"

        result = runner.invoke(app, ["build", "-o", str(out), "--environment", "preview"])

        assert result.exit_code == 0, result.output
        health = json.loads((out / "rss-health.json").read_text(encoding="utf-8"))
        assert health["environment"] == "preview"

    def test_bad_config_exits_nonzero(self, runner, tmp_path, unreachable_relays):
        """Test that an invalid config file fails the build."""
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("- not\n- a mapping\n", encoding="utf-8")

        result = runner.invoke(app, ["build", "-c", str(config_path), "-o", str(tmp_path / "dist")])

        assert result.exit_code == 1
        assert not (tmp_path / "dist").exists()

    def test_unwritable_output_exits_nonzero(self, runner, tmp_path, unreachable_relays):
        """Test that a write failure fails the build."""
        blocker = tmp_path / "dist"
        blocker.write_text("a file, not a directory", encoding="utf-8")

        result = runner.invoke(app, ["build", "-o", str(blocker)])

        assert result.exit_code == 1
