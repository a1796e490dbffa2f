"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class TokenLedgerConfig(BaseSettings):
    """Token ledger configuration"""
    
    # Token issuance
    token_name: str = "ERC-BEGGIN"
    token_symbol: str = "ERCB"
    token_decimals: int = 18
    initial_supply: int = 21_000_000  # Whole tokens, scaled by 10**token_decimals at issuance
    issuer_account: str = "issuer"
    
    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "token_ledger.db"
    table_prefix: str = "token"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr
    
    # Feature flags
    enable_audit_logging: bool = True
    
    class Config:
        env_prefix = "TOKEN_LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = TokenLedgerConfig()


def get_config() -> TokenLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> TokenLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = TokenLedgerConfig()
    return config
