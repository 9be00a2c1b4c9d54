"""Runtime configuration read from the environment."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

ENV_PREFIX = "DOCVAULT_"

# Maximum accepted upload size
MAX_UPLOAD_SIZE = 50 * 1024 * 1024  # 50MB


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Process-wide settings.

    The storage provider is chosen once from ``storage_provider`` when the
    application context is built; each provider reads only its own
    connection parameters.
    """

    # Object store
    storage_provider: str = "local"
    storage_path: Path = field(default_factory=lambda: Path("./storage/documents"))
    s3_bucket: str = ""
    s3_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None

    # Metadata database
    database_url: str = "sqlite:///./docvault.db"

    # Uploads are staged here before a job picks them up
    temp_dir: Path = field(default_factory=lambda: Path("./storage/temp"))
    max_upload_size: int = MAX_UPLOAD_SIZE

    # Ingestion queue
    queue_name: str = "document-upload"
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    visibility_timeout: float = 300.0
    keep_completed: int = 100
    keep_failed: int = 50

    # Worker pool
    worker_concurrency: int = 3
    poll_interval: float = 1.0

    # HTTP API
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``DOCVAULT_*`` environment variables."""
        defaults = cls()
        return cls(
            storage_provider=(_env("STORAGE_PROVIDER") or defaults.storage_provider).lower(),
            storage_path=Path(_env("STORAGE_PATH") or defaults.storage_path).resolve(),
            s3_bucket=_env("S3_BUCKET", defaults.s3_bucket),
            s3_region=_env("S3_REGION", defaults.s3_region),
            s3_endpoint_url=_env("S3_ENDPOINT_URL", defaults.s3_endpoint_url),
            database_url=_env("DATABASE_URL", defaults.database_url),
            temp_dir=Path(_env("TEMP_DIR") or defaults.temp_dir).resolve(),
            max_upload_size=int(_env("MAX_UPLOAD_SIZE", str(defaults.max_upload_size))),
            queue_name=_env("QUEUE_NAME", defaults.queue_name),
            max_attempts=int(_env("MAX_ATTEMPTS", str(defaults.max_attempts))),
            backoff_seconds=float(_env("BACKOFF_SECONDS", str(defaults.backoff_seconds))),
            visibility_timeout=float(
                _env("VISIBILITY_TIMEOUT", str(defaults.visibility_timeout))
            ),
            keep_completed=int(_env("KEEP_COMPLETED", str(defaults.keep_completed))),
            keep_failed=int(_env("KEEP_FAILED", str(defaults.keep_failed))),
            worker_concurrency=int(
                _env("WORKER_CONCURRENCY", str(defaults.worker_concurrency))
            ),
            poll_interval=float(_env("POLL_INTERVAL", str(defaults.poll_interval))),
            api_host=_env("API_HOST", defaults.api_host),
            api_port=int(_env("API_PORT", str(defaults.api_port))),
            log_level=_env("LOG_LEVEL", defaults.log_level),
            log_json=_env_bool("LOG_JSON", defaults.log_json),
        )
