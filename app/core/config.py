from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    # Fixed 7-day token lifetime; there is no refresh flow.
    access_token_expire_minutes: int = Field(60 * 24 * 7, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    reset_token_expire_minutes: int = Field(60, alias="RESET_TOKEN_EXPIRE_MINUTES")
    reset_token_in_response: bool = Field(False, alias="RESET_TOKEN_IN_RESPONSE")

    timezone: str = Field("Asia/Jakarta", alias="TIMEZONE")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    # Comma separated, e.g. "http://localhost:5173,https://school.example.com"
    cors_origins: str = Field("*", alias="CORS_ORIGINS")

    list_cache_ttl_seconds: int = Field(30, alias="LIST_CACHE_TTL_SECONDS")
    max_upload_mb: int = Field(10, alias="MAX_UPLOAD_MB")

    telegram_bot_token: Optional[str] = Field(None, alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: Optional[str] = Field(None, alias="TELEGRAM_CHAT_ID")
    telegram_timeout: float = Field(10.0, alias="TELEGRAM_TIMEOUT")

    cloudinary_cloud_name: Optional[str] = Field(None, alias="CLOUDINARY_CLOUD_NAME")
    cloudinary_api_key: Optional[str] = Field(None, alias="CLOUDINARY_API_KEY")
    cloudinary_api_secret: Optional[str] = Field(None, alias="CLOUDINARY_API_SECRET")
    cloudinary_folder: str = Field("attendance", alias="CLOUDINARY_FOLDER")

    admin_email: Optional[str] = Field(None, alias="ADMIN_EMAIL")
    admin_password: Optional[str] = Field(None, alias="ADMIN_PASSWORD")
    admin_name: Optional[str] = Field(None, alias="ADMIN_NAME")

    @property
    def cors_origin_list(self) -> List[str]:
        return [s.strip() for s in self.cors_origins.split(",") if s.strip()]

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


settings = Settings()
