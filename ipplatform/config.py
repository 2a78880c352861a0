"""
IP Platform - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and connection strings are loaded from environment variables.

Security: No secrets are hardcoded. Use .env for local development.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    
    Attributes:
        SECRET_KEY: JWT signing key (loaded once into the credential signer)
        ACCESS_TOKEN_EXPIRE_MINUTES: Lifetime of self-contained access tokens
        REFRESH_TOKEN_EXPIRE_DAYS: Refresh session lifetime without remember-me
        REMEMBER_ME_EXPIRE_DAYS: Refresh session lifetime with remember-me
        PASSWORD_RESET_EXPIRE_MINUTES: Lifetime of one-shot reset tokens
        DATABASE_URL: Row store connection string
        SMTP_HOST: Outbound mail relay; notifications are only logged when unset
    """
    
    # Security
    SECRET_KEY: str = ""  # Must be set via environment; startup fails without it
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15  # Short-lived tokens
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    REMEMBER_ME_EXPIRE_DAYS: int = 30
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    BCRYPT_ROUNDS: int = 12
    
    # Database (PostgreSQL for production, SQLite for development)
    DATABASE_URL: str = "sqlite:///./ipplatform.db"
    
    # Expiry sweep for refresh sessions and reset tokens
    TOKEN_CLEANUP_ENABLED: bool = True
    TOKEN_CLEANUP_INTERVAL_HOURS: int = 24
    
    # Default admin, seeded on first startup
    ADMIN_DEFAULT_USERNAME: str = "admin"
    ADMIN_DEFAULT_PASSWORD: str = ""  # Must be set via environment
    ADMIN_DEFAULT_EMAIL: str = "admin@ipplatform.local"
    ADMIN_DEFAULT_NAME: str = "System Admin"
    
    # Outbound mail
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    MAIL_FROM: str = "noreply@ipplatform.local"
    FRONTEND_URL: str = "http://localhost:3000"
    
    # Analyst identity documents
    MAX_DOCUMENT_SIZE_BYTES: int = 5 * 1024 * 1024
    
    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
