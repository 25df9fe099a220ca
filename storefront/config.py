from __future__ import annotations

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "Storefront API"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]
    FRONTEND_URL: str = "http://localhost:3000"

    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "storefront"

    # Object storage
    AWS_REGION: str = "eu-north-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    S3_BUCKET: Optional[str] = None
    S3_ENDPOINT_URL: Optional[str] = None
    PRESIGNED_URL_TTL: int = 3600
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # Push / mail / LLM
    FIREBASE_CREDENTIALS: Optional[str] = None
    RESEND_API_KEY: Optional[str] = None
    MAIL_FROM: str = "Storefront <no-reply@storefront.local>"
    OPENAI_API_KEY: Optional[str] = None
    SEO_MODEL: str = "gpt-4o-mini"

    # Scheduled jobs
    ENABLE_SCHEDULER: bool = False
    SCHEDULER_TIMEZONE: str = "Asia/Kolkata"

    # Business limits
    MAX_ADDRESSES: int = 5
    DEFAULT_LOW_STOCK_ALERT: int = 10
    MAX_VARIANT_STOCK: int = 1_000_000


settings = Settings()
