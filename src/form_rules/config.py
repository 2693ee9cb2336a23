from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_SIMILARITY_THRESHOLD = 0.5
DEFAULT_LOG_LEVEL = "WARNING"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _repo_root() -> Path:
    # `src/form_rules/config.py` lives at `<repo>/src/form_rules/config.py`
    return Path(__file__).resolve().parents[2]


def _env_bool(name: str, default: bool = False) -> bool:
    v = (os.getenv(name) or "").strip().lower()
    if not v:
        return default
    return v in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_log_level(name: str, default: str) -> str:
    raw = (os.getenv(name) or "").strip().upper()
    if raw and isinstance(logging.getLevelName(raw), int):
        return raw
    return default


@dataclass(frozen=True)
class Settings:
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    log_level: str = DEFAULT_LOG_LEVEL
    debug: bool = False

    @property
    def effective_log_level(self) -> int:
        if self.debug:
            return logging.DEBUG
        return logging.getLevelName(self.log_level)


def load_settings(*, env_dir: Optional[Path] = None) -> Settings:
    """
    Read engine settings from the environment.

    `.env` and `.env.local` are loaded first when present (local dev convenience); real
    environment variables always win.
    """
    root = env_dir or _repo_root()
    load_dotenv(root / ".env", override=False)
    load_dotenv(root / ".env.local", override=False)

    threshold = _env_float("FORM_RULES_SIMILARITY_THRESHOLD", DEFAULT_SIMILARITY_THRESHOLD)
    if not 0.0 <= threshold <= 1.0:
        threshold = DEFAULT_SIMILARITY_THRESHOLD

    return Settings(
        similarity_threshold=threshold,
        log_level=_env_log_level("FORM_RULES_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        debug=_env_bool("FORM_RULES_DEBUG", False),
    )


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    settings = settings or load_settings()
    # no-op when the host (server, test runner) already configured the root logger
    logging.basicConfig(format=_LOG_FORMAT)
    logger = logging.getLogger("form_rules")
    logger.setLevel(settings.effective_log_level)
    return logger


__all__ = [
    "DEFAULT_SIMILARITY_THRESHOLD",
    "Settings",
    "configure_logging",
    "load_settings",
]
