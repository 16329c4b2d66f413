import os
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "on"}


def _alias(primary: str, *fallbacks: str, default: str | None = None) -> str | None:
    """
    Get env var with fallback aliases. Primary name wins if present.
    Example: _alias("AUTH_SECRET", "JWT_SECRET", default="dev-secret")
    """
    val = os.getenv(primary)
    if val:
        return val
    for fb in fallbacks:
        v = os.getenv(fb)
        if v:
            return v
    return default


"""CORS allowlist (dev defaults cover the SPA dev server on 3000 and 5173).
Read from env and split on commas; strip whitespace and any stray quotes per item.
"""
_cors_env = os.getenv(
    "CORS_ALLOW_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
)
ALLOW_ORIGINS = [
    o.strip().strip('"').strip("'")
    for o in (_cors_env.split(",") if _cors_env else [])
    if o and o.strip().strip('"').strip("'")
]


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./finance.db"
    # dev | test | prod (ENV accepted as a legacy alias)
    APP_ENV: str = os.getenv("APP_ENV", os.getenv("ENV", "dev"))
    LOG_LEVEL: str = "INFO"

    # --- Auth tokens (HS256) ---
    AUTH_SECRET: str = _alias("AUTH_SECRET", "JWT_SECRET", default="dev-secret") or "dev-secret"
    AUTH_ALG: str = "HS256"
    AUTH_ISSUER: str = "finance-tracker"
    AUTH_AUDIENCE: str = "finance-tracker-app"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # --- Accounts ---
    ALLOW_REGISTRATION: bool = _env_bool("ALLOW_REGISTRATION", True)
    SEED_DEFAULT_CATEGORIES: bool = _env_bool("SEED_DEFAULT_CATEGORIES", True)
    DEFAULT_CURRENCY: str = "USD"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
