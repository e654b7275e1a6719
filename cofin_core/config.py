"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class CofinConfig(BaseSettings):
    """COFIN back-office configuration"""
    
    # Document store
    data_path: str = "data/db.json"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    cors_origins: str = "*"  # Comma separated
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Business rules
    default_country_code: str = "+242"  # Used when seeding a new document
    expose_otp_code: bool = True  # Demo mode: return codeDemo from /api/otp/send
    strict_operation_types: bool = False  # Reject operation types without a posting rule
    
    class Config:
        env_prefix = "COFIN_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = CofinConfig()


def get_config() -> CofinConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CofinConfig:
    """Reload configuration from environment"""
    global config
    config = CofinConfig()
    return config
