"""Process-wide settings read from the environment.

Every value has a development default so the server starts with no
configuration at all.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    db_url: str = field(default_factory=lambda: os.getenv("DUNGEON_DB_URL", "sqlite://database.db"))
    tick_rate: int = field(default_factory=lambda: int(os.getenv("DUNGEON_TICK_RATE", "20")))
    send_timeout: float = field(default_factory=lambda: float(os.getenv("DUNGEON_SEND_TIMEOUT", "1.0")))
    log_level: str = field(default_factory=lambda: os.getenv("DUNGEON_LOG_LEVEL", "INFO").upper())
    cors_origins: List[str] = field(
        default_factory=lambda: _split_origins(os.getenv("DUNGEON_CORS_ORIGINS", "*"))
    )
    host: str = field(default_factory=lambda: os.getenv("DUNGEON_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("DUNGEON_PORT", "8000")))


settings = Settings()

__all__ = ["Settings", "settings"]
