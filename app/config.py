"""Environment configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early to ensure environment variables are set
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    search_root: Path = Path(".")
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"
    allowed_origins: str = "*"

    result_limit: int = Field(default=100, ge=1, le=1000)
    search_timeout_seconds: float = Field(default=3.0, gt=0.0)
    max_depth: int | None = Field(default=None, ge=0)
    include_directories: bool = False

    recent_capacity: int = Field(default=50, ge=1)
    recent_store_path: Path | None = None

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse allowed origins as a list."""
        return [o.strip() for o in self.allowed_origins.split(",")]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
