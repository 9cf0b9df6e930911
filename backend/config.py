from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List, Literal


class Settings(BaseSettings):
    # Which Entity Store adapter the app is composed with
    store_backend: Literal["firestore", "redis", "memory"] = "firestore"
    google_cloud_project: str = ""
    google_application_credentials: str = ""
    firestore_emulator_host: Optional[str] = None
    redis_url: str = "redis://localhost:6379/0"
    redis_prefix: str = "squabbl"
    gemini_api_key: str = ""
    word_model: str = "gemini-2.0-flash-lite"
    # CORS origins - set ALLOWED_ORIGINS env var for production (comma-separated)
    allowed_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    # Extra production origin (e.g. Cloud Run URL); appended to allowed_origins
    extra_origin: str = ""
    log_level: str = "INFO"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
