
from __future__ import annotations
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class BlobSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # e.g. "mem://", "mem://scratch?page_size=100"
    BLOB_URL: str = Field(default="mem://")
    BLOB_LIST_LIMIT_MAX: int = Field(default=1000, ge=1)
    BLOB_SIGNED_URL_EXPIRY_S: int = Field(default=3600, ge=0)
