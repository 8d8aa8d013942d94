"""Core configuration with Pydantic v2 Settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_env: str = "development"
    log_level: str = "INFO"
    log_json: bool = True
    enable_metrics: bool = True

    # Remote product store (single POST endpoint, token in body)
    VINE_API_BASE_URL: str = ""
    VINE_API_TIMEOUT_S: int = 30
    # Transport level retries; the sync layer itself never retries
    VINE_API_RETRIES: int = 0
    VINE_API_BACKOFF: float = 0.3

    # Local key-value snapshot (ledger, settings, expenses, credential)
    LOCAL_STORE_PATH: str = "artifacts/vine/local_store.json"

    # Issued documents (GoBD archive)
    ARCHIVE_BASE_DIR: str = "artifacts"


# Global settings instance
settings = Settings()
