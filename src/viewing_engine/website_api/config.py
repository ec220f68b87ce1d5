"""Environment-based configuration for the API service."""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class Settings:
    """API configuration loaded from environment variables."""

    def __init__(self):
        # Optional: when set, every /v1 request must be signed or carry the secret
        self.api_secret = os.getenv("VIEWINGS_API_SECRET", "")
        self.host = os.getenv("VIEWINGS_API_HOST", "0.0.0.0")
        self.port = int(os.getenv("VIEWINGS_API_PORT", "8000"))
        self.seed_path = os.getenv("VIEWINGS_SEED_PATH", "")
        self.config_path = os.getenv(
            "VIEWINGS_CONFIG_PATH",
            str(Path.home() / ".viewing-engine" / "config.json"),
        )
        self.debug = os.getenv("VIEWINGS_ENV", "production") != "production"


_settings = None


def _get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Re-read the environment, e.g. after tests change it."""
    global _settings
    _settings = Settings()
    return _settings


class _SettingsProxy:
    """Lazy proxy so settings aren't loaded until first access."""

    def __getattr__(self, name):
        return getattr(_get_settings(), name)


settings = _SettingsProxy()
