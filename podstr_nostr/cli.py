"""CLI entry point for the PODSTR feed builder."""
import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Optional

import typer

from .client import PodcastNostr
from .config import ConfigError, load_config
from .models import PodstrConfig
from .publisher import FeedBuildError, write_feed_artifacts
from .relay import RelayPool

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="podstr-feed",
    help="Build a podcast RSS feed from Nostr relays",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging (INFO, or DEBUG when verbose)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _apply_overrides(
    config: PodstrConfig,
    output_dir: Optional[Path],
    relays: Optional[list[str]],
    base_url: Optional[str],
    environment: Optional[str],
) -> PodstrConfig:
    changes = {}
    if output_dir is not None:
        changes["output_dir"] = str(output_dir)
    if relays:
        changes["relay_urls"] = list(relays)
    if base_url:
        changes["base_url"] = base_url.rstrip("/")
    if environment:
        changes["environment"] = environment
    return dataclasses.replace(config, **changes) if changes else config


async def _run_build(config: PodstrConfig):
    client = PodcastNostr(config, pool=RelayPool.from_urls(config.relay_urls))
    build = await client.build_feed(use_cache=False)
    artifacts = write_feed_artifacts(config.output_dir, build, config, config.environment)
    return build, artifacts


@app.command("build")
def build_feed(
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", "-o", help="Directory to write rss.xml into (default: dist)"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="YAML configuration file"
    ),
    relays: Optional[list[str]] = typer.Option(
        None, "--relay", "-r", help="Relay URL (repeatable, replaces configured relays)"
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Public site URL used for episode links"
    ),
    environment: Optional[str] = typer.Option(
        None, "--environment", help="Environment label for the health file"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose (DEBUG) logging"
    ),
) -> None:
    """Fetch episodes from relays and write the RSS feed.

    Relays that are down or slow are skipped; the build only fails when
    the feed cannot be rendered or written.

    Examples:
        podstr-feed build -o dist

        podstr-feed build -r wss://relay.damus.io -r wss://nos.lol --base-url https://pod.example
    """
    setup_logging(verbose)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(code=1) from e

    config = _apply_overrides(config, output_dir, relays, base_url, environment)
    logger.info("Building feed from %d relays for %s", len(config.relay_urls), config.base_url)

    try:
        build, artifacts = asyncio.run(_run_build(config))
    except FeedBuildError as e:
        logger.error("Feed build failed: %s", e.__cause__ or e)
        raise typer.Exit(code=1) from e
    except Exception as e:
        logger.exception("Feed generation failed: %s", e)
        raise typer.Exit(code=1) from e

    typer.echo(f"Feed written to {artifacts.rss_path}")
    typer.echo(f"Episodes: {len(build.episodes)}")
    typer.echo(f"Feed size: {build.feed_size / 1024:.2f} KB")
    typer.echo(f"Metadata source: {build.metadata_source}")


@app.command("version")
def show_version() -> None:
    """Show version information."""
    from . import __version__

    typer.echo(f"podstr-feed v{__version__}")


def main() -> None:
    app()
