"""Application settings loaded from environment variables using pydantic-settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Ingestion service configuration.

    All settings can be overridden via environment variables.
    Batch and stream sizes are read per request, so tests can build
    small pipelines without touching the environment.
    """

    DATABASE_DIR: str = "./data"
    UPLOAD_DIR: str = "./uploads"
    FRONTEND_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    BATCH_SIZE: int = 10_000
    READ_CHUNK_SIZE: int = 64 * 1024
    MAX_ROW_BYTES: int = 1024 * 1024
    LIST_LIMIT: int = 10
    SYNCHRONOUS_WRITES: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }
