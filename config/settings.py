# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(default=Environment.DEV.value, validation_alias="APP_ENV")
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", validation_alias="REDIS_URL"
    )
    REDIS_SOCKET_TIMEOUT: float = Field(
        default=10.0, validation_alias="REDIS_SOCKET_TIMEOUT"
    )
    # Job records and blob bookkeeping expire after this many seconds.
    PERSISTENCE_TTL_SECONDS: int = Field(
        default=2 * 60 * 60, validation_alias="PERSISTENCE_TTL_SECONDS"
    )

    # CORS & Limits
    ALLOWED_ORIGIN: str = Field(
        default="http://localhost:5173", validation_alias="ALLOWED_ORIGIN"
    )
    RATE_LIMIT_ENABLED: bool = Field(default=True, validation_alias="RATE_LIMIT_ENABLED")
    RATE_LIMIT_TIMES: int = Field(default=600, validation_alias="RATE_LIMIT_TIMES")
    RATE_LIMIT_SECONDS: int = Field(default=60, validation_alias="RATE_LIMIT_SECONDS")
    MAX_FILE_MB: int = Field(default=512, validation_alias="MAX_FILE_MB")
    MAX_CHUNK_BYTES: int = Field(
        default=8 * 1024 * 1024, validation_alias="MAX_CHUNK_BYTES"
    )
    TRUST_PROXY: bool = Field(default=False, validation_alias="TRUST_PROXY")

    # Scratch space & janitor
    SCRATCH_DIR: str = Field(default="temp", validation_alias="SCRATCH_DIR")
    SCRATCH_RETENTION_SECONDS: int = Field(
        default=2 * 60 * 60, validation_alias="SCRATCH_RETENTION_SECONDS"
    )
    JANITOR_INTERVAL_SECONDS: int = Field(
        default=60 * 60, validation_alias="JANITOR_INTERVAL_SECONDS"
    )

    # Timeouts
    CHUNK_TIMEOUT_SECONDS: float = Field(
        default=30.0, validation_alias="CHUNK_TIMEOUT_SECONDS"
    )
    DOWNLOAD_TIMEOUT_SECONDS: float = Field(
        default=60.0, validation_alias="DOWNLOAD_TIMEOUT_SECONDS"
    )
    JOB_TIMEOUT_SECONDS: float = Field(
        default=15 * 60.0, validation_alias="JOB_TIMEOUT_SECONDS"
    )

    # Codecs
    FFMPEG_BINARY: str = Field(default="ffmpeg", validation_alias="FFMPEG_BINARY")
    FFPROBE_BINARY: str = Field(default="ffprobe", validation_alias="FFPROBE_BINARY")
    IMAGE_QUALITY: int = Field(default=90, validation_alias="IMAGE_QUALITY")
    STREAM_CHUNK_BYTES: int = Field(
        default=256 * 1024, validation_alias="STREAM_CHUNK_BYTES"
    )

    # Logging knobs
    LOGGER_NAME: str = "fileshift"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
