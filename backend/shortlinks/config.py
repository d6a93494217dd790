from typing import Optional
from urllib.parse import urlparse

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database
    DATABASE_URL: str = "sqlite:///./shortlinks.db"

    # Security
    SECRET_KEY: str = "shortlinks-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours
    BCRYPT_ROUNDS: int = 12

    # Rate Limiting
    RATE_LIMIT_PER_HOUR: int = 100
    DAILY_LINK_LIMIT: int = 0  # per owner, 0 disables the quota

    # Short codes
    SHORT_CODE_LENGTH: int = 6
    CODE_STRATEGY: str = "random"  # "random" or "counter"
    CODE_MAX_ATTEMPTS: int = 10

    # Domain
    BASE_URL: str = "https://lnk.example"

    # Destination filtering
    BLOCK_SPAM_URLS: bool = True

    # Click recording
    CLICK_QUEUE_SIZE: int = 10000
    CLICK_BATCH_SIZE: int = 100
    GEO_LOOKUP_ENABLED: bool = False
    GEO_LOOKUP_URL: str = "http://ip-api.com/json/{ip}"
    GEO_LOOKUP_TIMEOUT: float = 2.0

    # Store retries at the HTTP boundary
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_BASE_DELAY: float = 0.05

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None
    LOG_JSON: bool = False

    class Config:
        env_file = ".env"

    @property
    def default_domain(self) -> str:
        """Host name of BASE_URL, served as the shared default domain"""
        return (urlparse(self.BASE_URL).hostname or "").lower()


settings = Settings()
