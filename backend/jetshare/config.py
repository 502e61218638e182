"""
JetShare Configuration Module

Loads environment variables for backend configuration.
"""
from pydantic_settings import BaseSettings
from typing import Literal, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Notes:
    - Demo mode routes both payment methods through the in-process mock gateway
    - Provider secrets are environment-based; an unset key also falls back to the mock
    - Handling fee percentage applies to the share amount of every payment
    """

    # Demo Configuration
    demo_mode: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Database
    database_path: str = "./jetshare.db"

    # JetShare business rules
    handling_fee_percentage: float = 7.5
    default_currency: str = "USD"
    allow_card_payments: bool = True
    allow_crypto_payments: bool = True
    profile_ensure_attempts: int = 3

    # Card payments (Stripe)
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: str = "whsec_demo_only_change_me"
    stripe_api_base: str = "https://api.stripe.com"

    # Crypto payments (Coinbase Commerce)
    coinbase_api_key: Optional[str] = None
    coinbase_webhook_secret: str = "coinbase_secret_demo_only_change_me"
    coinbase_api_base: str = "https://api.commerce.coinbase.com"

    # Mock payments (demo mode)
    mock_payment_secret: str = "mockpay_secret_demo_only_change_me"
    payment_redirect_base_url: str = "http://localhost:3000/jetshare/payment"

    gateway_timeout_seconds: float = 15.0
    webhook_tolerance_seconds: int = 300

    # AWS Bedrock Configuration (concierge)
    aws_region: str = "us-east-1"
    aws_bedrock_model_id: str = "us.anthropic.claude-sonnet-4-20250514-v1:0"

    # Concierge conversation storage
    session_storage_type: Literal["file", "s3"] = "file"
    session_storage_dir: str = "./.sessions"
    session_s3_bucket: Optional[str] = None
    session_s3_prefix: str = "sessions/"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
