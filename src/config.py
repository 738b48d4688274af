"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "HealthSync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Postgres ---
    database_url: str
    db_pool_min_size: int = 2
    db_pool_max_size: int = 20

    # --- Identity ---
    jwks_url: str = ""  # empty disables bearer-token verification
    api_key_hash_secret: str = ""  # empty disables X-API-Key resolution

    # --- CORS ---
    cors_origins: list[str] = ["*"]

    # --- Ingestion ---
    source_timezone: str = "Australia/Brisbane"  # UTC+10, no DST
    sample_source: str = "shortcut"
    steps_bucket_minutes: int = 60
    write_chunk_size: int = 800
    max_samples_per_upload: int = 500_000
    claim_retention_days: int = 365

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
