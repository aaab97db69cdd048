from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_FILE_SIZE_MB = 70


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "dokuprime"
    db_username: str = "dokuprime"
    db_password: str = "secret"

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    upload_path: str = "./uploads/documents"
    # Megabytes. Unset, unparseable, zero or negative values all mean the 70 MB default.
    max_file_size_allowed: int = DEFAULT_MAX_FILE_SIZE_MB

    batch_worker_count: int = 10
    batch_status_ttl_seconds: int = 24 * 60 * 60

    extraction_worker_count: int = 3
    extraction_queue_size: int = 100

    external_api_base_url: str = "http://localhost:9534"
    x_api_key: str = ""
    external_api_timeout_seconds: int = 300
    external_api_max_attempts: int = 3

    @field_validator("max_file_size_allowed", mode="before")
    @classmethod
    def _fallback_max_file_size(cls, value: object) -> int:
        """Unparseable or non-positive values fall back to the default limit."""
        try:
            size = int(str(value).strip())
        except (TypeError, ValueError):
            return DEFAULT_MAX_FILE_SIZE_MB
        return size if size > 0 else DEFAULT_MAX_FILE_SIZE_MB

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_allowed * 1024 * 1024
