import os

from finance_tracker.config import settings


def get_env() -> str:
    """Return the current environment string (e.g. 'dev', 'prod', 'test').
    Live env wins over the settings snapshot so tests can flip it per run.
    """
    return (os.getenv("APP_ENV") or os.getenv("ENV") or settings.APP_ENV or "dev").lower()


def is_dev() -> bool:
    """True if running in dev environment."""
    return get_env() == "dev"


def is_prod() -> bool:
    """True if running in production."""
    return get_env() == "prod"


def is_test() -> bool:
    """True if running in test environment (pytest sets APP_ENV=test)."""
    return get_env() in {"test", "testing"}
