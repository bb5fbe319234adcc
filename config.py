"""Application settings loaded once from the environment"""
import os
import logging
from dataclasses import dataclass
from typing import Optional, Tuple
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_MONGODB_URI = "mongodb://localhost:27017"
DEFAULT_MAX_UPLOAD_SIZE = 1 * 1024 * 1024  # 1MB limit


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration. Built once at startup and handed to create_app().
    """
    mongodb_uri: str = DEFAULT_MONGODB_URI
    db_name: str = "money_tracker"
    collection_name: str = "transactions"
    max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE
    cors_origins: Tuple[str, ...] = ("*",)
    rate_limit: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()  # searches current dir and parents

        mongodb_uri = os.getenv("MONGODB_URI")
        if not mongodb_uri:
            logger.warning(f"MONGODB_URI not set, falling back to {DEFAULT_MONGODB_URI}")
            mongodb_uri = DEFAULT_MONGODB_URI

        max_upload_size = DEFAULT_MAX_UPLOAD_SIZE
        raw_size = os.getenv("MAX_UPLOAD_SIZE")
        if raw_size:
            try:
                max_upload_size = int(raw_size)
            except ValueError:
                logger.error(f"Ignoring invalid MAX_UPLOAD_SIZE={raw_size!r}; using {DEFAULT_MAX_UPLOAD_SIZE}")

        origins = tuple(o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip())

        return cls(
            mongodb_uri=mongodb_uri,
            db_name=os.getenv("DB_NAME", "money_tracker"),
            collection_name=os.getenv("COLLECTION_NAME", "transactions"),
            max_upload_size=max_upload_size,
            cors_origins=origins or ("*",),
            rate_limit=os.getenv("RATE_LIMIT") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
