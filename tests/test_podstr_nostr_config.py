"""Tests for configuration loading."""
import pytest

from podstr_nostr.config import (
    DEFAULT_BASE_URL,
    DEFAULT_CREATOR_NPUB,
    DEFAULT_RELAYS,
    ConfigError,
    decode_pubkey,
    default_podcast_metadata,
    load_config,
)


class TestDefaults:
    """Tests for built-in defaults."""

    def test_no_file_no_env(self):
        """Test that defaults apply without a file or environment."""
        config = load_config(environ={})

        assert config.creator_npub == DEFAULT_CREATOR_NPUB
        assert config.relay_urls == DEFAULT_RELAYS
        assert config.base_url == DEFAULT_BASE_URL
        assert config.ttl_minutes == 60
        assert config.catalog_timeout_ms == 5000
        assert config.podcast == default_podcast_metadata()

    def test_default_relays_not_shared(self):
        """Test that configs do not share the default relay list."""
        config = load_config(environ={})
        config.relay_urls.append("wss://extra.test")

        assert "wss://extra.test" not in DEFAULT_RELAYS

    def test_default_metadata(self):
        """Test the fallback podcast description."""
        metadata = default_podcast_metadata("npub1test")

        assert metadata.guid == "npub1test"
        assert metadata.medium == "podcast"
        assert metadata.value.amount == 0
        assert metadata.persons[0].role == "host"


class TestYamlFile:
    """Tests for YAML configuration files."""

    def test_fields_and_podcast_overrides(self, tmp_path):
        """Test scalar fields, relays and a partial podcast section."""
        path = tmp_path / "podstr.yaml"
        path.write_text(
            "creator_npub: " + "c" * 64 + "\n"
            "base_url: https://pod.example/\n"
            "relays:\n"
            "  - wss://one.test\n"
            "  - wss://two.test\n"
            "ttl_minutes: 30\n"
            "engagement_timeout_ms: 1000\n"
            "podcast:\n"
            "  title: My Show\n"
            "  funding:\n"
            "    - https://fund.example\n",
            encoding="utf-8",
        )

        config = load_config(path, environ={})

        assert config.creator_npub == "c" * 64
        assert config.base_url == "https://pod.example"
        assert config.relay_urls == ["wss://one.test", "wss://two.test"]
        assert config.ttl_minutes == 30
        assert config.engagement_timeout_ms == 1000
        assert config.podcast.title == "My Show"
        assert config.podcast.funding == ["https://fund.example"]
        assert config.podcast.author == "PODSTR Creator"
        assert config.podcast.guid == "c" * 64

    def test_relays_as_string(self, tmp_path):
        """Test a comma-separated relay string."""
        path = tmp_path / "podstr.yaml"
        path.write_text("relays: 'wss://a.test, wss://b.test,'\n", encoding="utf-8")

        assert load_config(path, environ={}).relay_urls == ["wss://a.test", "wss://b.test"]

    def test_empty_file(self, tmp_path):
        """Test that an empty file means defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert load_config(path, environ={}).base_url == DEFAULT_BASE_URL

    def test_path_from_environment(self, tmp_path):
        """Test $PODSTR_CONFIG pointing at the file."""
        path = tmp_path / "podstr.yaml"
        path.write_text("environment: staging\n", encoding="utf-8")

        config = load_config(environ={"PODSTR_CONFIG": str(path)})
        assert config.environment == "staging"

    @pytest.mark.parametrize("content", [
        "- just\n- a list\n",
        "key: [unclosed\n",
        "ttl_minutes: soon\n",
        "relays: 5\n",
        "podcast: nope\n",
        "podcast:\n  license: MIT\n",
    ])
    def test_invalid_files(self, tmp_path, content):
        """Test that bad files raise ConfigError."""
        path = tmp_path / "bad.yaml"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(path, environ={})

    def test_missing_file(self, tmp_path):
        """Test that an unreadable file raises ConfigError."""
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.yaml", environ={})


class TestEnvironment:
    """Tests for environment variable overrides."""

    def test_env_wins_over_file(self, tmp_path):
        """Test that environment variables override the file."""
        path = tmp_path / "podstr.yaml"
        path.write_text("base_url: https://file.example\nrelays:\n  - wss://file.test\n", encoding="utf-8")

        config = load_config(path, environ={
            "BASE_URL": "https://env.example/",
            "NOSTR_RELAYS": "wss://env-1.test,wss://env-2.test",
            "PODSTR_ENV": "preview",
            "PODSTR_OUTPUT_DIR": "/tmp/out",
        })

        assert config.base_url == "https://env.example"
        assert config.relay_urls == ["wss://env-1.test", "wss://env-2.test"]
        assert config.environment == "preview"
        assert config.output_dir == "/tmp/out"

    def test_no_relays_warns(self, caplog):
        """Test the warning for an empty relay list."""
        with caplog.at_level("WARNING", logger="podstr_nostr.config"):
            config = load_config(environ={"NOSTR_RELAYS": " , "})

        assert config.relay_urls == []
        assert "No relays configured" in caplog.text


class TestDecodePubkey:
    """Tests for creator key normalization."""

    def test_hex_is_lowercased(self):
        """Test that hex keys pass through normalized."""
        assert decode_pubkey("  " + "AB" * 32 + " ") == "ab" * 32

    def test_invalid_npub_returned_unchanged(self, caplog):
        """Test that a bad npub is logged and returned as-is."""
        with caplog.at_level("ERROR", logger="podstr_nostr.config"):
            assert decode_pubkey("npub1invalid") == "npub1invalid"

        assert "npub1invalid" in caplog.text

    def test_config_helper(self, podstr_config):
        """Test PodstrConfig.creator_pubkey_hex with a hex key."""
        assert podstr_config.creator_pubkey_hex() == "a" * 64
