import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_SECRET = "dev-secret-change"


@dataclass
class Settings:
    port: int = 8000
    database_url: Optional[str] = None
    database_name: str = "NightQueenGlow"
    jwt_secret: str = DEFAULT_SECRET
    token_ttl_minutes: int = 60
    cart_write_retries: int = 5
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        settings = cls(
            port=int(os.getenv("PORT", 8000)),
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME", "NightQueenGlow"),
            jwt_secret=os.getenv("JWT_ACCESS_SECRET", DEFAULT_SECRET),
            token_ttl_minutes=int(os.getenv("TOKEN_TTL_MINUTES", 60)),
            cart_write_retries=int(os.getenv("CART_WRITE_RETRIES", 5)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
        if settings.jwt_secret == DEFAULT_SECRET:
            logger.warning("JWT_ACCESS_SECRET is not set, using the development secret")
        return settings
