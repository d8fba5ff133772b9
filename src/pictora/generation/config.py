"""Generation configuration.

Loads from ~/.pictora/generation.yaml with environment variable overrides.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY_BASE_URL = "https://api.openai.com/v1"
DEFAULT_PRIMARY_MODEL = "nano-banana"
DEFAULT_SECONDARY_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_SECONDARY_MODEL = "google/gemini-2.5-flash-image-preview"

_TRUTHY = ("1", "true", "yes", "on")


@dataclass
class ProviderSettings:
    """Connection settings for one chat-completions image back end."""

    api_key: str = ""
    base_url: str = ""
    model: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.base_url and self.model)

    def merge(self, data: dict) -> None:
        self.api_key = str(data.get("api_key", self.api_key) or "")
        self.base_url = str(data.get("base_url", self.base_url) or self.base_url)
        self.model = str(data.get("model", self.model) or self.model)


@dataclass
class GenerationConfig:
    """Settings for the generation coordinator and its providers."""

    max_retries: int = 2  # extra attempts after the first
    retry_delay: float = 2.0  # fixed backoff between attempts, seconds
    provider_timeout: float = 60.0  # per provider call, seconds
    progress_interval: float = 1.5  # progress ticker cadence, seconds
    progress_ceiling: int = 95
    placeholder_fallback: bool = False
    archive_images: bool = True
    primary: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(
            base_url=DEFAULT_PRIMARY_BASE_URL, model=DEFAULT_PRIMARY_MODEL
        )
    )
    secondary: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(
            base_url=DEFAULT_SECONDARY_BASE_URL, model=DEFAULT_SECONDARY_MODEL
        )
    )
    app_url: str = "http://localhost:8000"  # sent as HTTP-Referer to OpenRouter
    app_title: str = "Pictora"

    CONFIG_FILE: Path = field(
        default_factory=lambda: Path.home() / ".pictora" / "generation.yaml",
        repr=False,
    )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def load(cls, config_path: Path | None = None) -> GenerationConfig:
        """Load generation config from file and environment variables.

        Priority (highest wins):
          1. Environment variables
          2. Config file (~/.pictora/generation.yaml or custom path)
          3. Defaults
        """
        config = cls()
        file_path = config_path or config.CONFIG_FILE

        if file_path.exists():
            try:
                with open(file_path) as f:
                    data = yaml.safe_load(f) or {}

                config.max_retries = int(data.get("max_retries", config.max_retries))
                config.retry_delay = float(data.get("retry_delay", config.retry_delay))
                config.provider_timeout = float(
                    data.get("provider_timeout", config.provider_timeout)
                )
                config.progress_interval = float(
                    data.get("progress_interval", config.progress_interval)
                )
                config.placeholder_fallback = bool(
                    data.get("placeholder_fallback", config.placeholder_fallback)
                )
                config.archive_images = bool(data.get("archive_images", config.archive_images))
                if isinstance(data.get("primary"), dict):
                    config.primary.merge(data["primary"])
                if isinstance(data.get("secondary"), dict):
                    config.secondary.merge(data["secondary"])
            except (yaml.YAMLError, OSError, ValueError, TypeError, AttributeError):
                logger.warning("Ignoring unreadable generation config at %s", file_path)

        # Provider credentials
        config.primary.api_key = os.environ.get("OPENAI_API_KEY", config.primary.api_key)
        config.primary.base_url = os.environ.get("OPENAI_API_BASE", config.primary.base_url)
        config.primary.model = os.environ.get("PICTORA_PRIMARY_MODEL", config.primary.model)
        config.secondary.api_key = os.environ.get("OPENROUTER_API_KEY", config.secondary.api_key)
        config.secondary.base_url = os.environ.get(
            "OPENROUTER_BASE_URL", config.secondary.base_url
        )
        config.secondary.model = os.environ.get("OPENROUTER_MODEL", config.secondary.model)
        config.app_url = os.environ.get("OPENROUTER_HTTP_REFERER", config.app_url)
        config.app_title = os.environ.get("OPENROUTER_X_TITLE", config.app_title)

        # Coordinator tuning
        if env_retries := os.environ.get("PICTORA_MAX_RETRIES"):
            config.max_retries = int(env_retries)
        if env_delay := os.environ.get("PICTORA_RETRY_DELAY"):
            config.retry_delay = float(env_delay)
        if env_timeout := os.environ.get("PICTORA_PROVIDER_TIMEOUT"):
            config.provider_timeout = float(env_timeout)
        if env_interval := os.environ.get("PICTORA_PROGRESS_INTERVAL"):
            config.progress_interval = float(env_interval)
        if env_fallback := os.environ.get("PICTORA_PLACEHOLDER_FALLBACK"):
            config.placeholder_fallback = env_fallback.lower() in _TRUTHY
        if env_archive := os.environ.get("PICTORA_ARCHIVE_IMAGES"):
            config.archive_images = env_archive.lower() in _TRUTHY

        config.max_retries = max(0, config.max_retries)
        return config
