# app/core/config.py

import os
from functools import lru_cache
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Stripe (payments platform, connected accounts)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"

    # Shopify (storefront)
    SHOPIFY_API_VERSION: str = "2024-01"
    SHOPIFY_WEBHOOK_SECRET: str = ""

    # Etsy (marketplace)
    ETSY_API_KEY: str = ""
    ETSY_API_BASE: str = "https://openapi.etsy.com/v3"
    ETSY_TOKEN_URL: str = "https://api.etsy.com/v3/public/oauth/token"

    # Reconciliation behaviour
    ADAPTER_TIMEOUT_SECONDS: float = 10.0
    FANOUT_CONCURRENCY: int = 5
    CONFLICT_RETRIES: int = 2
    AUTO_REACTIVATE: bool = True  # Reactivate any inactive product once stock returns
    MAPPING_CACHE_TTL_SECONDS: float = 300.0
    DEFAULT_LOW_STOCK_THRESHOLD: int = 10
    RECENT_AUDIT_LIMIT: int = 5

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def get_settings_no_cache():
    """Get settings without caching - useful for testing different environments"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()


def get_stripe_webhook_secret() -> str:
    return get_settings().STRIPE_WEBHOOK_SECRET


def get_shopify_webhook_secret() -> str:
    return get_settings().SHOPIFY_WEBHOOK_SECRET
