"""memfeed configuration management."""

import json
import logging
import os
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .xdg import get_xdg_config_path, get_xdg_data_path

logger = logging.getLogger(__name__)

PHOTO_BUCKET = "memories-photos"
VIDEO_BUCKET = "memories-videos"


class Config(BaseModel):
    """memfeed configuration."""

    model_config = ConfigDict(
        extra="allow",
        str_strip_whitespace=True,
    )

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    access_token: Optional[str] = None
    page_size: int = Field(default=20, ge=1, le=100)
    search_page_size: int = Field(default=20, ge=1, le=50)
    signed_url_ttl_seconds: int = Field(default=3600, gt=0)
    detail_signed_url_ttl_seconds: int = Field(default=7200, gt=0)
    signed_url_safety_margin_seconds: float = Field(default=5.0, ge=0)
    photo_bucket: str = PHOTO_BUCKET
    video_bucket: str = VIDEO_BUCKET
    recent_search_limit: int = Field(default=5, ge=1)
    request_timeout: float = Field(default=15.0, gt=0)
    sync_max_retries: int = Field(default=3, ge=1)
    queue_path: Optional[Path] = None
    recent_searches_path: Optional[Path] = None

    @model_validator(mode="after")
    def _check_margin(self):
        if self.signed_url_safety_margin_seconds >= self.signed_url_ttl_seconds:
            raise ValueError("signed_url_safety_margin_seconds must be smaller than signed_url_ttl_seconds")
        return self

    def get_queue_path(self) -> Path:
        return self.queue_path or get_xdg_data_path("queue") / "queued_memories.json"

    def get_recent_searches_path(self) -> Path:
        return self.recent_searches_path or get_xdg_data_path() / "recent_searches.json"


def get_config_path() -> Path:
    return get_xdg_config_path("config.json")


def load_config(path: Optional[Path] = None) -> Config:
    """Load memfeed configuration from JSON file.

    Environment variables in ``supabase_url``, ``supabase_key`` and
    ``access_token`` are expanded (e.g. ``"$SUPABASE_ANON_KEY"``).

    Args:
        path: Path to config.json file. If None, uses default path

    Returns:
        Config object with loaded settings. Returns default config if file doesn't exist.
    """
    if path is None:
        path = get_config_path()

    if not path.exists():
        return Config()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        for key in ("supabase_url", "supabase_key", "access_token"):
            if isinstance(data.get(key), str):
                data[key] = os.path.expandvars(data[key])

        for key in ("queue_path", "recent_searches_path"):
            if data.get(key):
                data[key] = Path(data[key]).expanduser()

        return Config.model_validate(data)

    except json.JSONDecodeError as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return Config()
    except ValueError as e:
        logger.warning("Invalid config at %s: %s", path, e)
        return Config()


def save_config(config: Config, path: Optional[Path] = None) -> None:
    """Save memfeed configuration to JSON file.

    Args:
        config: Config object to save
        path: Path to config.json file. If None, uses default path

    Raises:
        IOError: If file cannot be written
    """
    if path is None:
        path = get_config_path()

    path.parent.mkdir(parents=True, exist_ok=True)

    # Excluding None values keeps the file readable
    config_data = config.model_dump(exclude_none=True, mode="json")

    with open(path, "w", encoding="utf-8") as f:
        json.dump(config_data, f, indent=2)


def update_config(path: Optional[Path], mutate: Callable[[Config], None]) -> Config:
    """Load config, apply a mutation, validate and save it.

    Args:
        path: Path to config.json file. If None, uses default path
        mutate: Callable that modifies the config in place

    Returns:
        The saved config
    """
    config = load_config(path)
    mutate(config)
    config = Config.model_validate(config.model_dump())
    save_config(config, path)
    return config
