"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    mpesa_primary_url: str = "https://mpesa-server-vercel.vercel.app"
    mpesa_secondary_url: str
    mpesa_api_key: str | None = None
    mpesa_project_id: str = "reduza-pixel"
    mpesa_reference_prefix: str = "RDP_"
    gateway_timeout_seconds: float = 30.0
    payment_min_amount: float = 1
    payment_max_amount: float = 999999
    email_function_url: str | None = None
    email_function_key: str | None = None
    admin_email: str | None = None
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
