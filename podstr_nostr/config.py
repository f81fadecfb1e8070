"""Configuration loading for the PODSTR feed builder.

Settings come from three layers, later layers winning:
built-in defaults, an optional YAML file, then environment variables.
"""
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .models import (
    License,
    PodcastMetadata,
    PodstrConfig,
    Person,
    ValueBlock,
)

logger = logging.getLogger(__name__)


DEFAULT_CREATOR_NPUB = "npub1km5prrxcgt5fwgjzjpltyswsuu7u7jcj2cx9hk2rwvxyk00v2jqsgv0a3h"

DEFAULT_RELAYS = [
    "wss://relay.nostr.band",
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.primal.net",
]

DEFAULT_BASE_URL = "https://podstr.example"

# Environment variable names
ENV_RELAYS = "NOSTR_RELAYS"
ENV_BASE_URL = "BASE_URL"
ENV_CREATOR = "PODSTR_CREATOR_NPUB"
ENV_ENVIRONMENT = "PODSTR_ENV"
ENV_OUTPUT_DIR = "PODSTR_OUTPUT_DIR"
ENV_CONFIG_PATH = "PODSTR_CONFIG"

# Scalar PodstrConfig fields a YAML file may set directly
_INT_FIELDS = (
    "ttl_minutes",
    "catalog_timeout_ms",
    "engagement_timeout_ms",
    "trailer_timeout_ms",
    "episode_limit",
)
_STR_FIELDS = ("creator_npub", "base_url", "environment", "output_dir")


class ConfigError(Exception):
    """Raised when configuration cannot be loaded."""

    pass


def decode_pubkey(key: str) -> str:
    """Normalize a public key to lowercase hex.

    npub (bech32) keys are decoded with nostr-sdk; anything else is assumed
    to already be hex. A key that fails to decode is returned unchanged so
    a bad setting degrades to "no matching events" instead of a crash.

    Args:
        key: npub or hex public key

    Returns:
        Hex public key
    """
    key = key.strip()
    if not key.startswith("npub"):
        return key.lower()

    from nostr_sdk import PublicKey

    try:
        return PublicKey.parse(key).to_hex()
    except Exception as e:
        logger.error("Failed to decode creator npub %s: %s", key, e)
        return key


def default_podcast_metadata(creator_npub: str = DEFAULT_CREATOR_NPUB) -> PodcastMetadata:
    """Static fallback metadata used when no relay returns a metadata event."""
    return PodcastMetadata(
        title="PODSTR Podcast",
        description="A Nostr-powered podcast exploring decentralized conversations",
        author="PODSTR Creator",
        email="creator@podstr.example",
        image="https://example.com/podcast-artwork.jpg",
        language="en-us",
        categories=["Technology", "Cryptocurrency", "Society & Culture"],
        explicit=False,
        website=DEFAULT_BASE_URL,
        copyright="© 2025 PODSTR Creator",
        funding=[],
        locked=False,
        value=ValueBlock(amount=0, currency="USD"),
        type="episodic",
        complete=False,
        guid=creator_npub,
        medium="podcast",
        publisher="PODSTR Creator",
        persons=[
            Person(name="PODSTR Creator", role="host", group="cast"),
        ],
        license=License(
            identifier="CC BY 4.0",
            url="https://creativecommons.org/licenses/by/4.0/",
        ),
    )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def _split_relays(value: Any) -> list[str]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        raise ConfigError(f"Relays must be a list or comma-separated string, got {value!r}")
    return [item.strip() for item in items if item.strip()]


def load_config(
    path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> PodstrConfig:
    """Build the runtime configuration.

    Args:
        path: Optional YAML file. Falls back to $PODSTR_CONFIG when unset.
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Fully populated PodstrConfig

    Raises:
        ConfigError: If the file is unreadable, not valid YAML, not a
            mapping, or holds a value of the wrong type

    Example:
        >>> config = load_config("podstr.yaml", environ={"BASE_URL": "https://pod.example"})
        >>> config.base_url
        'https://pod.example'
    """
    env = os.environ if environ is None else environ

    if path is None and env.get(ENV_CONFIG_PATH):
        path = env[ENV_CONFIG_PATH]
    data = _read_yaml(Path(path)) if path is not None else {}

    values: dict[str, Any] = {
        "creator_npub": DEFAULT_CREATOR_NPUB,
        "relay_urls": list(DEFAULT_RELAYS),
        "base_url": DEFAULT_BASE_URL,
    }

    for name in _STR_FIELDS:
        if data.get(name) is not None:
            values[name] = str(data[name])
    for name in _INT_FIELDS:
        if data.get(name) is not None:
            try:
                values[name] = int(data[name])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"{name} must be an integer, got {data[name]!r}") from e
    if data.get("relays") is not None:
        values["relay_urls"] = _split_relays(data["relays"])

    # Environment overrides
    if env.get(ENV_RELAYS):
        values["relay_urls"] = _split_relays(env[ENV_RELAYS])
    if env.get(ENV_BASE_URL):
        values["base_url"] = env[ENV_BASE_URL]
    if env.get(ENV_CREATOR):
        values["creator_npub"] = env[ENV_CREATOR]
    if env.get(ENV_ENVIRONMENT):
        values["environment"] = env[ENV_ENVIRONMENT]
    if env.get(ENV_OUTPUT_DIR):
        values["output_dir"] = env[ENV_OUTPUT_DIR]

    values["base_url"] = values["base_url"].rstrip("/")

    defaults = default_podcast_metadata(values["creator_npub"])
    podcast = data.get("podcast")
    if podcast is None:
        values["podcast"] = defaults
    elif isinstance(podcast, dict):
        try:
            values["podcast"] = PodcastMetadata.merged(defaults, podcast)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid podcast section: {e}") from e
    else:
        raise ConfigError("The podcast section must be a mapping")

    if not values["relay_urls"]:
        logger.warning("No relays configured; the feed will only contain defaults")

    return PodstrConfig(**values)
