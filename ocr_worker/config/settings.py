from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "ocr"
    db_username: str = "ocr"
    db_password: str = "secret"
    db_pool_max_size: int = 4
    db_pool_timeout_seconds: float = 30.0

    max_job_attempts: int = 3
    job_poll_interval_seconds: int = 5
    stale_lock_seconds: int = 900

    storage_endpoint_url: str | None = None
    storage_region: str = "auto"
    storage_bucket: str = "ocr"
    storage_access_key_id: str = ""
    storage_secret_access_key: str = ""
    crop_signed_url_ttl_seconds: int = 60 * 60 * 24

    openai_api_key: str = ""
    openai_model_name: str = "gpt-4.1"
    openai_timeout_seconds: int = 60
    openai_base_url: str | None = None

    batch_start_size: int = 500
    batch_poll_interval_seconds: int = 20
    batch_completion_window: str = "24h"

    frame_transformer: str = "pillow"
    work_dir: str = "/tmp/ocr-worker"
