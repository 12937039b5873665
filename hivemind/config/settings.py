from __future__ import annotations

from pathlib import Path
from typing import Self

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env once at module import so every BaseSettings subclass sees the env vars
load_dotenv()


class StoreSettings(BaseSettings):
    """Milvus REST connection settings. Env vars prefixed with MILVUS_."""

    model_config = SettingsConfigDict(env_prefix="MILVUS_")

    host: str = "localhost"
    port: int = 19531
    auth: str = "root:Milvus"
    db: str = "default"
    timeout_s: float = Field(5.0, gt=0)
    max_retries: int = Field(3, ge=0, le=10)
    retry_base_delay_s: float = Field(0.2, ge=0)

    @field_validator("port")
    @classmethod
    def _validate_port(cls, v: int) -> int:
        if not (0 < v < 65536):
            raise ValueError(f"MILVUS_PORT must be in 1..65535 (got {v})")
        return v

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class CoordSettings(BaseSettings):
    """Coordination behaviour. Env vars prefixed with HIVEMIND_."""

    model_config = SettingsConfigDict(env_prefix="HIVEMIND_")

    dirname: str = ".hivemind"  # marker directory searched upward from cwd
    cache_dir: Path = Path("/tmp")  # terminal-keyed status/scope cache files
    retention_hours: int = 24  # delivered and undelivered messages alike
    query_limit: int = Field(100, gt=0, le=16384)
    wake_script: Path | None = None  # empty = wake disabled
    wake_message: str = "New message!                "
    preregister: bool = True

    @field_validator("dirname")
    @classmethod
    def _validate_dirname(cls, v: str) -> str:
        if not v or "/" in v or v in {".", ".."}:
            raise ValueError(f"HIVEMIND_DIRNAME must be a single directory name (got '{v}')")
        return v

    @field_validator("wake_script", mode="before")
    @classmethod
    def _empty_wake_script(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.retention_hours <= 0:
            raise ValueError(f"retention_hours must be > 0, got {self.retention_hours}")
        return self

    @property
    def retention_seconds(self) -> int:
        return self.retention_hours * 3600


class LoggingSettings(BaseSettings):
    """Logging output. Env vars prefixed with LOG_."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = "INFO"
    json_output: bool = True
    file: Path | None = None

    @field_validator("level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(allowed)} (got '{v}')")
        return upper

    @field_validator("file", mode="before")
    @classmethod
    def _empty_file(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    store: StoreSettings = Field(default_factory=StoreSettings)
    coord: CoordSettings = Field(default_factory=CoordSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()
