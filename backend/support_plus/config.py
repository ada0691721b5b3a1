import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

DEFAULT_STORAGE_PATH = Path(__file__).resolve().parent / "data" / "local_storage.json"


class Settings(BaseSettings):
    otp_api_url: str = Field("https://otp-valhalla.vercel.app", alias="SUPPORT_PLUS_OTP_API_URL")
    auth_url: Optional[str] = Field(None, alias="SUPPORT_PLUS_AUTH_URL")
    auth_anon_key: Optional[str] = Field(None, alias="SUPPORT_PLUS_AUTH_ANON_KEY")
    catalog_url: str = Field("http://127.0.0.1:8080/mock-data", alias="SUPPORT_PLUS_CATALOG_URL")
    storage_backend: Literal["file", "database"] = Field("file", alias="SUPPORT_PLUS_STORAGE_BACKEND")
    storage_path: Path = Field(DEFAULT_STORAGE_PATH, alias="SUPPORT_PLUS_STORAGE_PATH")
    database_url: Optional[str] = Field(None, alias="SUPPORT_PLUS_DATABASE_URL")
    database_pool_size: int = Field(5, alias="SUPPORT_PLUS_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(5, alias="SUPPORT_PLUS_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="SUPPORT_PLUS_DATABASE_ECHO")
    http_timeout_seconds: float = Field(15.0, alias="SUPPORT_PLUS_HTTP_TIMEOUT_SECONDS", gt=0)
    profile_sync_timeout_seconds: float = Field(20.0, alias="SUPPORT_PLUS_PROFILE_SYNC_TIMEOUT_SECONDS", ge=0)
    debug_endpoints: bool = Field(False, alias="SUPPORT_PLUS_DEBUG_ENDPOINTS")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        populate_by_name = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc
