"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LendingConfig(BaseSettings):
    """Lending back-office configuration"""

    # Backend configuration
    backend_type: str = "memory"  # memory or supabase
    backend_url: str = ""
    backend_anon_key: str = ""
    backend_timeout: float = 10.0
    storage_bucket: str = "documents"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    default_annual_interest_rate: str = "96"  # APR percent, 8% monthly
    currency: str = "EUR"
    locale: str = "es_ES"
    overdue_grace_days: int = 0

    # Contract parties
    business_name: str = "B.M Contigo"
    lender_name: str = "Bienvenido N. Feliz T."
    lender_id_number: str = "18476199T"
    lender_city: str = "Madrid"

    # AI text helpers (Gemini REST API)
    gemini_api_key: str = ""  # Empty = helpers return fallback text
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_timeout: float = 15.0

    class Config:
        env_prefix = "LENDING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LendingConfig()


def get_config() -> LendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendingConfig:
    """Reload configuration from environment"""
    global config
    config = LendingConfig()
    return config
