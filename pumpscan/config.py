"""Configuration loader for the survivor scanner.

Settings are layered: field defaults, then config/scanner.yaml (or the file
named by PUMPSCAN_CONFIG), then environment variables. A .env file in the
working directory is loaded into the environment first.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

WORKSPACE = Path(__file__).resolve().parent.parent
CONFIG_DIR = WORKSPACE / "config"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "scanner.yaml"

PLACEHOLDER_KEY = "YOUR_KEY"

# field name -> env keys, first present wins
ENV_KEYS: dict[str, tuple[str, ...]] = {
    "transport_endpoint": ("TRANSPORT_ENDPOINT", "HELIUS_RPC"),
    "publisher_url": ("PUBLISHER_URL", "N8N_WEBHOOK_URL"),
    "poll_interval_ms": ("POLL_INTERVAL_MS",),
    "min_holders": ("MIN_HOLDERS",),
    "min_age_minutes": ("MIN_AGE_MINUTES",),
    "top_k": ("TOP_K",),
    "credit_budget": ("CREDIT_BUDGET",),
    "max_pages": ("MAX_PAGES",),
    "page_size": ("PAGE_SIZE",),
    "sample_size": ("SAMPLE_SIZE",),
    "throttle_ms": ("THROTTLE_MS",),
    "age_margin": ("AGE_MARGIN",),
    "enrich_concurrency": ("ENRICH_CONCURRENCY",),
    "publish_timeout_seconds": ("PUBLISH_TIMEOUT_SECONDS",),
    "feed_url": ("FEED_URL",),
    "reconnect_initial_seconds": ("RECONNECT_INITIAL_SECONDS",),
    "reconnect_max_seconds": ("RECONNECT_MAX_SECONDS",),
    "ping_interval_seconds": ("PING_INTERVAL_SECONDS",),
    "dedup_max_entries": ("DEDUP_MAX_ENTRIES",),
}


class ConfigurationError(Exception):
    """A required setting is missing or a value cannot be parsed."""


class Settings(BaseModel):
    """Validated scanner settings."""

    transport_endpoint: str = ""
    publisher_url: str = ""

    # Poll mode
    poll_interval_ms: int = Field(600_000, gt=0)
    min_holders: int = Field(100, ge=0)
    min_age_minutes: int = Field(30, ge=0)
    top_k: int = Field(5, gt=0)
    credit_budget: int = Field(0, ge=0)  # per cycle, 0 = no cap

    # Discovery
    max_pages: int = Field(5, gt=0)
    page_size: int = Field(100, gt=0, le=1000)
    sample_size: int = Field(20, gt=0)
    throttle_ms: int = Field(50, ge=0)
    age_margin: float = Field(2.0, gt=0)

    # Enrichment / publishing
    enrich_concurrency: int = Field(0, ge=0)
    publish_timeout_seconds: float = Field(10.0, gt=0)

    # Live mode
    feed_url: str = "wss://pumpportal.fun/api/data"
    reconnect_initial_seconds: float = Field(1.0, gt=0)
    reconnect_max_seconds: float = Field(60.0, gt=0)
    ping_interval_seconds: float = Field(30.0, gt=0)
    dedup_max_entries: int = Field(100_000, ge=0)

    @model_validator(mode="after")
    def _validate_reconnect_window(self) -> "Settings":
        if self.reconnect_max_seconds < self.reconnect_initial_seconds:
            raise ValueError("reconnect_max_seconds must be >= reconnect_initial_seconds")
        return self

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def throttle_seconds(self) -> float:
        return self.throttle_ms / 1000

    def require_transport(self) -> str:
        """Transport endpoint, or ConfigurationError if unset or still a placeholder."""
        if not self.transport_endpoint or PLACEHOLDER_KEY in self.transport_endpoint:
            raise ConfigurationError(
                "TRANSPORT_ENDPOINT (or HELIUS_RPC) must be set to your Helius RPC URL "
                "including the api-key. Get a free key at https://dev.helius.xyz/"
            )
        return self.transport_endpoint

    def require_publisher(self) -> str:
        if not self.publisher_url:
            raise ConfigurationError("PUBLISHER_URL (or N8N_WEBHOOK_URL) must be set for live mode")
        return self.publisher_url

    def masked_endpoint(self) -> str:
        """Transport endpoint with the API key hidden, for banners and logs."""
        return re.sub(r"api-key=.*", "api-key=***", self.transport_endpoint)

    def masked_publisher(self) -> str:
        if not self.publisher_url:
            return "Not set"
        if len(self.publisher_url) <= 40:
            return self.publisher_url
        return self.publisher_url[:40] + "..."


def load_yaml_config(path: Path | None = None) -> dict[str, Any]:
    """Load the YAML config file. Missing file means no overrides."""
    path = path or Path(os.environ.get("PUMPSCAN_CONFIG", DEFAULT_CONFIG_PATH))
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping, got {type(data).__name__}")
    return {str(k).lower(): v for k, v in data.items()}


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for field_name, keys in ENV_KEYS.items():
        for key in keys:
            value = env.get(key)
            if value is not None and value != "":
                overrides[field_name] = value
                break
    return overrides


def load_settings(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
    use_dotenv: bool = True,
) -> Settings:
    """Build Settings from defaults, YAML file and environment."""
    if env is None:
        if use_dotenv:
            load_dotenv()
        env = os.environ

    values = load_yaml_config(config_path)
    values.update(_env_overrides(env))
    unknown = set(values) - set(Settings.model_fields)
    for key in unknown:
        values.pop(key)

    try:
        return Settings(**values)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) if err["loc"] else err["msg"] for err in e.errors())
        raise ConfigurationError(f"Invalid configuration value(s): {fields}") from e
