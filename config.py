"""
Runtime settings for the LocalAid API, read from environment variables.
"""
import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    database_url: Optional[str] = None
    database_name: str = "localaid"
    jwt_secret: str = "localaid-dev-secret"
    jwt_expires_days: int = Field(30, ge=1)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    cloudinary_url: Optional[str] = None
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    karma_reward: int = Field(10, ge=0)
    default_radius_km: float = Field(10.0, gt=0)
    port: int = 8000
    log_level: str = "INFO"


def load_settings() -> Settings:
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME", "localaid"),
        jwt_secret=os.getenv("JWT_SECRET", "localaid-dev-secret"),
        jwt_expires_days=int(os.getenv("JWT_EXPIRES_DAYS", 30)),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        cloudinary_url=os.getenv("CLOUDINARY_URL"),
        cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
        cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY"),
        cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        karma_reward=int(os.getenv("KARMA_REWARD", 10)),
        default_radius_km=float(os.getenv("DEFAULT_RADIUS_KM", 10)),
        port=int(os.getenv("PORT", 8000)),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
