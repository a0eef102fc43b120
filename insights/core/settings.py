from typing import Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Server
    PORT: int = 3000

    # Document store (report data and backing views)
    MONGODB_URI: str = ""
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = 5000

    # Metadata store (report definitions, export jobs, error log)
    DATABASE_URL: str = "sqlite:///./insights.db"

    # CORS
    CORS_ALLOW_LOCALHOST: bool = True
    CORS_EXTRA_ORIGINS: Tuple[str, ...] = ()

    # Caches
    REPORT_CACHE_SIZE: int = 100
    REPORT_CACHE_TTL_SECONDS: float = 600.0  # 10 minutes
    RESULT_CACHE_SIZE: int = 50
    RESULT_CACHE_TTL_SECONDS: float = 60.0
    RESULT_CACHE_ENABLED: bool = True

    # Report reads
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 1000

    # Exports
    EXPORT_STORAGE_ROOT: str = "storage"
    EXPORT_BATCH_SIZE: int = 1000
    EXPORT_MAX_WORKERS: int = 4
    EXPORT_RETENTION_DAYS: int = 7
    EXPORT_ARTIFACT_MAX_AGE_DAYS: int = 7
    EXPORT_SWEEP_INTERVAL_MINUTES: int = 60
    EXPORT_ARTIFACT_SWEEP_HOURS: int = 24
    EXPORT_SHUTDOWN_WAIT: bool = False

    # Background scheduler (retention sweeps)
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "UTC"

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_JSON: bool = True
    LOG_FILE: str = "logs/app.log"
    LOG_MAX_BYTES: int = 5_000_000  # 5 MB
    LOG_BACKUP_COUNT: int = 5

    # Sentry
    SENTRY_DSN: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.0

    # AWS S3 archive storage (optional; local filesystem if not configured)
    AWS_REGION: str = ""
    AWS_ACCESS_KEY_ID: str = ""  # Optional; uses IAM role on EC2
    AWS_SECRET_ACCESS_KEY: str = ""  # Optional; uses IAM role on EC2
    S3_EXPORTS_BUCKET: str = ""  # If empty, archives stay on local disk
    S3_PRESIGNED_URL_SECONDS: int = 3600

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()

# Basic validation for required settings to prevent confusing runtime errors
_missing = []
if not settings.MONGODB_URI:
    _missing.append("MONGODB_URI")

if _missing:
    # Do not crash imports in tools and tests; surface a helpful message instead.
    import warnings

    warnings.warn(
        "Missing required settings in .env: "
        + ", ".join(_missing)
        + ". Report reads and exports will fail until it is set."
    )
