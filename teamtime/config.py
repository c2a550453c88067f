"""
TeamTime Workflow Client
Configuration classes for the client factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    cfg = get_config(config_name)
"""

import os

# Same default the SPA ships with (VITE_API_URL fallback)
_DEFAULT_API_URL = "http://localhost:3000/api"
_DEFAULT_SESSION_FILE = os.path.join(os.path.expanduser("~"), ".teamtime", "session.json")


class Config:
    """Base configuration shared across all environments."""

    DEBUG = False
    TESTING = False

    API_BASE_URL = os.getenv("API_BASE_URL", _DEFAULT_API_URL)

    # Timeouts (seconds)
    REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "30"))
    UPLOAD_TIMEOUT = int(os.getenv("UPLOAD_TIMEOUT", "300"))   # large Excel files

    # Import progress polling
    IMPORT_POLL_INTERVAL = float(os.getenv("IMPORT_POLL_INTERVAL", "2"))
    IMPORT_POLL_TIMEOUT = float(os.getenv("IMPORT_POLL_TIMEOUT", "600"))

    # Persisted session (token + cached user/language)
    SESSION_FILE = os.getenv("SESSION_FILE", _DEFAULT_SESSION_FILE)

    LOG_LEVEL = os.getenv("LOG_LEVEL")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    API_BASE_URL = "http://testserver/api"
    SESSION_FILE = None   # in-memory session only
    IMPORT_POLL_INTERVAL = 0
    IMPORT_POLL_TIMEOUT = 5


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Must point at the real backend; no localhost fallback
    API_BASE_URL = os.getenv("API_BASE_URL")

    def __init__(self):
        if not self.API_BASE_URL:
            raise RuntimeError("API_BASE_URL environment variable is required in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(config_name: str | None = None) -> Config:
    """Return an instantiated config for the given environment name."""
    config_name = config_name or os.getenv("APP_ENV", "development")
    if config_name not in config:
        raise ValueError(
            f"Unknown config '{config_name}'. Allowed: {', '.join(sorted(config))}"
        )
    return config[config_name]()
