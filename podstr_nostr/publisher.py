"""Writing the generated feed and its companion files to disk.

A build produces three files in the output directory:

    rss.xml           the feed
    rss-health.json   status document for monitoring
    .nojekyll         empty marker so GitHub Pages serves dot-paths as-is

Re-running overwrites all three; only the embedded timestamp changes.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .models import FeedBuild, PodstrConfig

logger = logging.getLogger(__name__)


RSS_CONTENT_TYPE = "application/rss+xml; charset=utf-8"
RSS_CACHE_CONTROL = "public, max-age=300, stale-while-revalidate=600"

RSS_FILENAME = "rss.xml"
HEALTH_FILENAME = "rss-health.json"
NOJEKYLL_FILENAME = ".nojekyll"

RSS_ENDPOINT = "/" + RSS_FILENAME


class FeedBuildError(Exception):
    """Raised when feed artifacts cannot be written."""

    pass


@dataclass
class FeedArtifacts:
    """Paths written by one build."""
    rss_path: Path
    health_path: Path
    nojekyll_path: Path
    health: dict[str, Any]


def _isoformat_z(moment: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision and a 'Z' suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def build_health_document(
    build: FeedBuild,
    config: PodstrConfig,
    environment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Status document describing a build.

    Args:
        build: The build to describe
        config: Supplies the creator and the configured relays
        environment: Deployment label (default: config.environment)
        now: Generation time (default: current UTC time)

    Returns:
        JSON-serializable dict
    """
    now = now or datetime.now(timezone.utc)
    return {
        "status": "ok",
        "endpoint": RSS_ENDPOINT,
        "generatedAt": _isoformat_z(now),
        "episodeCount": len(build.episodes),
        "feedSize": build.feed_size,
        "environment": environment or config.environment,
        "accessible": True,
        "dataSource": {
            "metadata": build.metadata_source,
            "episodes": build.episodes_source,
            "relays": list(build.relays) or list(config.relay_urls),
        },
        "creator": config.creator_npub,
    }


def write_feed_artifacts(
    output_dir: str | Path,
    build: FeedBuild,
    config: PodstrConfig,
    environment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FeedArtifacts:
    """Write the feed, health document and marker file.

    Creates output_dir if needed. Existing files are overwritten.

    Raises:
        FeedBuildError: If the directory or any file cannot be written
    """
    directory = Path(output_dir)
    rss_path = directory / RSS_FILENAME
    health_path = directory / HEALTH_FILENAME
    nojekyll_path = directory / NOJEKYLL_FILENAME
    health = build_health_document(build, config, environment, now)

    try:
        directory.mkdir(parents=True, exist_ok=True)
        rss_path.write_text(build.xml, encoding="utf-8")
        health_path.write_text(json.dumps(health, indent=2), encoding="utf-8")
        nojekyll_path.write_text("", encoding="utf-8")
    except OSError as e:
        raise FeedBuildError(f"Failed to write feed to {directory}: {e}") from e

    logger.info(
        "Feed written to %s (%d episodes, %.2f KB)",
        rss_path, len(build.episodes), build.feed_size / 1024,
    )
    return FeedArtifacts(
        rss_path=rss_path,
        health_path=health_path,
        nojekyll_path=nojekyll_path,
        health=health,
    )
