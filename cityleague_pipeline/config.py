"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``: committed static defaults
  2. ``config/local.toml``: optional local overrides (gitignored)
  3. ``.env``: local secrets and env overrides (gitignored)
  4. Environment variables: ``CITYLEAGUE_*`` prefix (plus ``SLACK_WEBHOOK_URL``)

Entry point: ``load_config(config_path=None) -> AppConfig``

Every pipeline stage, the orchestrator, the trigger and all CLI commands
receive an ``AppConfig`` instance.  Source URLs, page limits, the rank
allow-list and the rendered-page bucket plan are data here, not constants
buried in the acquisition code.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite document store settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/cityleague.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    purge_batch_size: int = 400
    purge_pause_ms: int = 50

    @field_validator("purge_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"purge_batch_size must be >= 1, got {v}.")
        return v


class SourceConfig(BaseModel):
    """Upstream results site endpoints and request identity."""

    model_config = ConfigDict(frozen=True)

    listing_url: str = "https://players.pokemon-card.com/event/result/list"
    results_api_url: str = "https://players.pokemon-card.com/event_result_detail_search"
    deck_view_url_template: str = "https://players.pokemon-card.com/deck/{deck_id}"
    official_origin: str = "https://www.pokemon-card.com"
    user_agent: str = "Mozilla/5.0 CityLeaguePipeline/1.0"
    accept_language: str = "ja-JP,ja;q=0.9,en;q=0.8"
    http_timeout_s: float = 30.0


class AcquisitionConfig(BaseModel):
    """Ranking acquisition ladder parameters.

    ``bucket_plan`` is the rank assigned to each deck link, by position, on
    each rendered results page.  It mirrors how the site displays ties and
    is kept verbatim as data.
    """

    model_config = ConfigDict(frozen=True)

    allowed_ranks: list[int] = [1, 2, 3, 5, 9]
    per_page: int = 8
    multi_page_categories: list[str] = ["open"]
    bucket_plan: list[list[int]] = [
        [1, 1, 1, 3, 3, 3, 3, 3],
        [9, 9, 9, 9, 9, 9, 9, 9],
    ]
    browser_timeout_ms: int = 60_000
    headless: bool = True

    @model_validator(mode="after")
    def validate_bucket_plan(self) -> "AcquisitionConfig":
        if not self.bucket_plan:
            raise ValueError("bucket_plan must contain at least one page.")
        allowed = set(self.allowed_ranks)
        for idx, page in enumerate(self.bucket_plan):
            if len(page) > self.per_page:
                raise ValueError(
                    f"bucket_plan page {idx} has {len(page)} entries; per_page is {self.per_page}."
                )
            unknown = sorted(set(page) - allowed)
            if unknown:
                raise ValueError(
                    f"bucket_plan page {idx} uses ranks {unknown} outside allowed_ranks."
                )
        return self


class ProbeConfig(BaseModel):
    """Event listing discovery settings."""

    model_config = ConfigDict(frozen=True)

    max_pages: int = 5
    page_step: int = 20
    page_fetch_retries: int = 1
    league_marker: str = "シティリーグ"
    league_type: str = "city"
    category_keywords: dict[str, str] = {
        "open": "オープン",
        "senior": "シニア",
        "junior": "ジュニア",
    }

    @field_validator("max_pages", "page_step")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}.")
        return v


class SnapshotConfig(BaseModel):
    """Daily snapshot builder settings."""

    model_config = ConfigDict(frozen=True)

    categories: list[str] = ["open", "senior", "junior"]
    in_chunk_size: int = 10
    schema_version: int = 4
    group_ranks: list[int] = [1, 2, 3]
    image_cache_ttl_hours: float = 24.0
    image_cache_dir: str = "data/cache/deck_images"

    @field_validator("in_chunk_size")
    @classmethod
    def validate_chunk(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError(f"in_chunk_size must be in [1, 10], got {v}.")
        return v


class RetryConfig(BaseModel):
    """Backoff parameters shared by the generic and store retry wrappers."""

    model_config = ConfigDict(frozen=True)

    store_max_retry: int = 4
    base_wait_ms: int = 1000
    max_wait_ms: int = 16_000

    @field_validator("store_max_retry", "base_wait_ms", "max_wait_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"retry settings must be >= 0, got {v}.")
        return v


class OrchestratorConfig(BaseModel):
    """Auto-run sequencing parameters."""

    model_config = ConfigDict(frozen=True)

    utc_offset_hours: int = 9
    snapshot_force: bool = True

    @field_validator("utc_offset_hours")
    @classmethod
    def validate_offset(cls, v: int) -> int:
        if not -12 <= v <= 14:
            raise ValueError(f"utc_offset_hours must be in [-12, 14], got {v}.")
        return v


class NotifyConfig(BaseModel):
    """Run summary notification settings."""

    model_config = ConfigDict(frozen=True)

    slack_webhook_url: Optional[str] = None
    timeout_s: float = 10.0


class CurationConfig(BaseModel):
    """Deck-name curation limits."""

    model_config = ConfigDict(frozen=True)

    max_deck_name_length: int = 64
    default_league: str = "open"
    work_months_limit: int = 18


class SchedulerConfig(BaseModel):
    """Daily auto-run scheduling."""

    model_config = ConfigDict(frozen=True)

    daily_time: str = "06:00"

    @field_validator("daily_time")
    @classmethod
    def validate_daily_time(cls, v: str) -> str:
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"daily_time must be HH:MM, got '{v}'.")
        hour, minute = int(parts[0]), int(parts[1])
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"daily_time out of range: '{v}'.")
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/cityleague.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration: the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env + environment.
    ``scraper_enabled`` is the operational kill-switch checked by the trigger.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    source: SourceConfig = SourceConfig()
    acquisition: AcquisitionConfig = AcquisitionConfig()
    probe: ProbeConfig = ProbeConfig()
    snapshot: SnapshotConfig = SnapshotConfig()
    retry: RetryConfig = RetryConfig()
    orchestrator: OrchestratorConfig = OrchestratorConfig()
    notify: NotifyConfig = NotifyConfig()
    curation: CurationConfig = CurationConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    logging: LoggingConfig = LoggingConfig()
    scraper_enabled: bool = True
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent

_TRUTHY = ("1", "true", "yes", "on")


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variables to the raw config dict.

    Supported overrides:
      CITYLEAGUE_DB_PATH          → raw["database"]["db_path"]
      CITYLEAGUE_LOG_LEVEL        → raw["logging"]["level"]
      CITYLEAGUE_DEBUG            → raw["debug"]
      CITYLEAGUE_SCRAPER_ENABLED  → raw["scraper_enabled"]
      SLACK_WEBHOOK_URL           → raw["notify"]["slack_webhook_url"]
    """
    if db_path := os.environ.get("CITYLEAGUE_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("CITYLEAGUE_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("CITYLEAGUE_DEBUG"):
        raw["debug"] = debug.lower() in _TRUTHY

    if enabled := os.environ.get("CITYLEAGUE_SCRAPER_ENABLED"):
        raw["scraper_enabled"] = enabled.lower() in _TRUTHY

    if webhook := os.environ.get("SLACK_WEBHOOK_URL"):
        raw.setdefault("notify", {})["slack_webhook_url"] = webhook

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        source=SourceConfig(**raw.get("source", {})),
        acquisition=AcquisitionConfig(**raw.get("acquisition", {})),
        probe=ProbeConfig(**raw.get("probe", {})),
        snapshot=SnapshotConfig(**raw.get("snapshot", {})),
        retry=RetryConfig(**raw.get("retry", {})),
        orchestrator=OrchestratorConfig(**raw.get("orchestrator", {})),
        notify=NotifyConfig(**raw.get("notify", {})),
        curation=CurationConfig(**raw.get("curation", {})),
        scheduler=SchedulerConfig(**raw.get("scheduler", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        scraper_enabled=raw.get("scraper_enabled", project.get("scraper_enabled", True)),
        debug=raw.get("debug", project.get("debug", False)),
    )
