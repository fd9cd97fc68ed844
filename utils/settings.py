"""Environment-driven configuration for the sync server."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List


@dataclass
class Settings:
    """Runtime settings read from the environment.

    Attributes:
        log_level: Name of the root logging level (LOG_LEVEL, default INFO).
        cors_origins: Origins allowed to call the HTTP façade (CORS_ORIGINS,
            comma separated, default "*").
    """

    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


def load_settings() -> Settings:
    """Build Settings from environment variables.

    Raises:
        RuntimeError: if LOG_LEVEL does not name a logging level.
    """
    log_level = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise RuntimeError(
            f"LOG_LEVEL={log_level!r} is not a valid logging level "
            "(expected one of DEBUG, INFO, WARNING, ERROR, CRITICAL)."
        )

    raw_origins = os.getenv("CORS_ORIGINS") or "*"
    origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]

    return Settings(log_level=log_level, cors_origins=origins or ["*"])
