from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DATA_DIR = ".clipseeker"
DEFAULT_RELAY_PREFIXES: tuple[str, ...] = (
    "https://api.allorigins.win/raw?url=",
    "https://corsproxy.io/?",
    "https://api.codetabs.com/v1/proxy?quest=",
)
DEFAULT_CAPTION_LANGUAGES: tuple[str, ...] = ("en", "en-US", "en-GB")
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("db_path", Path("library.db")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{CLIPSEEKER_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            return json.loads(stripped)
        return [item.strip() for item in stripped.split(",") if item.strip()]
    return value


class AppSettings(BaseSettings):
    """
    Runtime configuration for acquisition, search and the local index.

    Every option is read from `CLIPSEEKER_*` environment variables (or `.env`).
    List options accept either JSON arrays or comma-separated values.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLIPSEEKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for the local index and logs.",
    )
    db_path: Path = Field(
        default=_default_in_data_dir(Path("library.db")),
        description=f"SQLite library path. {_data_dir_default_note(Path('library.db'))}",
    )
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Log directory. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(default="INFO", description="Console log level.")

    # Relays.
    relay_prefixes: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_RELAY_PREFIXES,
        description="Ordered relay prefixes; the URL-encoded target is appended to each.",
    )
    relay_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Upper bound for a single relay attempt.",
    )
    relay_min_body_length: int = Field(
        default=1,
        ge=1,
        description="Bodies shorter than this are treated as a failed relay attempt.",
    )
    page_min_body_length: int = Field(
        default=1000,
        ge=1,
        description="Minimum length for a watch or channel page to count as plausible.",
    )
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
        ),
        description="User agent sent with every upstream request.",
    )

    # Captions.
    caption_languages: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_CAPTION_LANGUAGES,
        description="Ordered caption language candidates; the first one is the primary.",
    )
    caption_fallback_duration_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Duration applied to caption entries that carry none.",
    )

    # Channel scans.
    channel_max_batches: int = Field(
        default=20,
        ge=1,
        description="Hard cap on listing pages fetched for one channel scan.",
    )
    channel_batch_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Pause before each continuation page request.",
    )
    innertube_client_version: str = Field(
        default="2.20231219.04.00",
        description="WEB client version sent to the browse API.",
    )

    # Imports and search.
    add_cooldown_seconds: int = Field(
        default=300,
        ge=0,
        description="Minimum time between single-video imports.",
    )
    search_context_chars: int = Field(
        default=40,
        ge=0,
        description="Characters of context kept on each side of a search hit.",
    )

    @field_validator("relay_prefixes", "caption_languages", mode="before")
    @classmethod
    def _normalize_lists(cls, value: Any) -> Any:
        return _split_csv(value)

    @field_validator("relay_prefixes")
    @classmethod
    def _require_relays(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        normalized = tuple(item.strip() for item in value if item.strip())
        if not normalized:
            raise ValueError("CLIPSEEKER_RELAY_PREFIXES must list at least one relay.")
        return normalized

    @field_validator("caption_languages")
    @classmethod
    def _require_languages(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        normalized = tuple(item.strip() for item in value if item.strip())
        if not normalized:
            raise ValueError("CLIPSEEKER_CAPTION_LANGUAGES must list at least one language.")
        return normalized

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return "INFO"
        return value.strip().upper()

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings() -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    return _resolve_path_fields(settings)
