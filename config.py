"""
config.py - Runtime settings for the settlement pipeline.

Values come from the process environment, optionally seeded from a `.env`
file in the working directory. Core functions never read settings directly;
the CLI and the API resolve a `Settings` once and pass values down.

    PAYOUT_CAP        per-account payout ceiling (default 800)
    FUZZY_THRESHOLD   minimum character-overlap score for a fuzzy match (0.6)
    LOG_LEVEL         logging level name (INFO)
    PORT              HTTP port for api.py (8000)
"""

from __future__ import annotations

import os

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from allocate import PAYOUT_CAP
from logging_config import get_logger
from match import FUZZY_THRESHOLD

logger = get_logger(__name__)

DEFAULT_PAYOUT_CAP = PAYOUT_CAP
DEFAULT_FUZZY_THRESHOLD = FUZZY_THRESHOLD


class Settings(BaseModel):
    """Resolved runtime settings."""

    payout_cap: float = Field(default=DEFAULT_PAYOUT_CAP, gt=0)
    fuzzy_threshold: float = Field(default=DEFAULT_FUZZY_THRESHOLD, gt=0, le=1)
    log_level: str = "INFO"
    port: int = Field(default=8000, gt=0, lt=65536)

    model_config = ConfigDict(frozen=True)


def _read_dotenv() -> None:
    path = find_dotenv(usecwd=True)
    if not path:
        return
    try:
        load_dotenv(path)
    except UnicodeDecodeError:
        # .env files saved from Chinese-locale Windows editors.
        load_dotenv(path, encoding="gbk")


def load_settings() -> Settings:
    """Build settings from the environment, falling back to defaults on bad values."""
    _read_dotenv()

    raw = {
        "payout_cap": os.getenv("PAYOUT_CAP", "").strip(),
        "fuzzy_threshold": os.getenv("FUZZY_THRESHOLD", "").strip(),
        "log_level": os.getenv("LOG_LEVEL", "").strip(),
        "port": os.getenv("PORT", "").strip(),
    }
    provided = {key: value for key, value in raw.items() if value}

    try:
        settings = Settings(**provided)
    except ValidationError as exc:
        logger.warning(
            "settings_invalid | provided=%s | errors=%s | fallback=defaults",
            sorted(provided),
            exc.error_count(),
        )
        settings = Settings()

    logger.debug(
        "settings_loaded | payout_cap=%.2f | fuzzy_threshold=%.2f | log_level=%s | port=%s",
        settings.payout_cap,
        settings.fuzzy_threshold,
        settings.log_level,
        settings.port,
    )
    return settings
