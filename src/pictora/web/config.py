"""Web server configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class WebConfig:
    """Configuration for the web server."""

    host: str = "0.0.0.0"
    port: int = 8000
    db_path: str = ".pictora/tasks.db"
    cors_origins: list[str] | None = None
    debug: bool = False
    generation_config_path: Path | None = None

    @classmethod
    def load(cls) -> WebConfig:
        config = cls()
        config.host = os.environ.get("PICTORA_HOST", config.host)
        config.port = int(os.environ.get("PICTORA_PORT", config.port))
        config.db_path = os.environ.get("PICTORA_DB_PATH", config.db_path)
        config.debug = os.environ.get("PICTORA_DEBUG", "").lower() in ("1", "true")
        origins = os.environ.get("PICTORA_CORS_ORIGINS")
        if origins:
            config.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]
        generation_config = os.environ.get("PICTORA_GENERATION_CONFIG")
        if generation_config:
            config.generation_config_path = Path(generation_config).expanduser()
        return config
