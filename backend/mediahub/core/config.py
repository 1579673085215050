from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # App settings
    APP_NAME: str = "MediaHub API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_V1_STR: str = "/api/v1"

    # Token settings: access and refresh tokens are signed with different secrets
    ACCESS_TOKEN_SECRET: str
    REFRESH_TOKEN_SECRET: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 10

    # Password hashing work factor (bcrypt log2 rounds)
    BCRYPT_ROUNDS: int = 12

    # Cookie flags for the token cookies
    COOKIE_SECURE: bool = True
    COOKIE_SAMESITE: str = "strict"

    # MongoDB
    MONGO_URI: Optional[str] = None
    MONGO_DB: str = "mediahub"

    # Pagination bounds
    PAGE_SIZE_DEFAULT: int = 10
    PAGE_SIZE_MAX: int = 100

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:5173",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TTL_DAYS: int = 7

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()

# Validate required settings
if not settings.ACCESS_TOKEN_SECRET:
    raise ValueError("ACCESS_TOKEN_SECRET environment variable is required")

if not settings.REFRESH_TOKEN_SECRET:
    raise ValueError("REFRESH_TOKEN_SECRET environment variable is required")

if settings.ACCESS_TOKEN_SECRET == settings.REFRESH_TOKEN_SECRET:
    raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ")

if not 4 <= settings.BCRYPT_ROUNDS <= 31:
    raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")

if not 1 <= settings.PAGE_SIZE_DEFAULT <= settings.PAGE_SIZE_MAX:
    raise ValueError("PAGE_SIZE_DEFAULT must be between 1 and PAGE_SIZE_MAX")
