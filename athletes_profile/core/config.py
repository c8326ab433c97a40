from pydantic_settings import BaseSettings
from typing import List, Union
from pydantic import field_validator
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Athletes Profile Management System"

    # Hosted platform (auth, data, storage)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""

    # Public site origin, used to build the redirect target of emailed links
    SITE_URL: str = "http://localhost:3000"
    PASSWORD_RESET_PATH: str = "/reset-password"

    @property
    def PASSWORD_RESET_REDIRECT_URL(self) -> str:
        return f"{self.SITE_URL.rstrip('/')}{self.PASSWORD_RESET_PATH}"

    # Storage buckets
    ATHLETE_FILES_BUCKET: str = "athlete-files"
    PROFILE_PICTURES_BUCKET: str = "profile-pictures"
    STORAGE_CACHE_CONTROL: str = "3600"

    # Per-client key/value storage (empty = in-memory)
    CLIENT_STORAGE_DIR: str = ""

    # Client contexts held in memory: most recently used kept, idle ones evicted
    CLIENT_CONTEXT_LIMIT: int = 1000
    CLIENT_CONTEXT_IDLE_SECONDS: int = 3600

    # Logging
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # CORS Settings - can be set as JSON string in .env
    BACKEND_CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[List[str], str]) -> List[str]:
        """Parse CORS origins from JSON string or list"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, split by comma
                return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("SUPABASE_URL", "SUPABASE_ANON_KEY", mode="before")
    @classmethod
    def strip_platform_values(cls, v: str) -> str:
        return (v or "").strip()

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
