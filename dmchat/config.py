# dmchat/config.py
from pydantic_settings import BaseSettings
from functools import lru_cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./dmchat.db"

    # API configuration
    API_PREFIX: str = "/api"
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    # Supabase configuration (auth tokens and attachment storage)
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_JWT_SECRET: str = ""
    JWT_AUDIENCE: str = "authenticated"
    STORAGE_BUCKET: str = "attachments"

    # Message encryption at rest: urlsafe base64 of a 32 byte AES key
    MESSAGE_ENCRYPTION_KEY: str = ""

    class Config:
        env_file = ".env"

    @property
    def cors_origins(self):
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings():
    return Settings()
