from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Image cache
    IMAGE_CACHE_DIR: Path = Path("image_cache/plant-images")
    IMAGE_CACHE_MAX_AGE_DAYS: int = 7
    IMAGE_CACHE_MAX_SIZE_MB: int = 50
    IMAGE_PRELOAD_THROTTLE_MS: int = 100
    IMAGE_FETCH_TIMEOUT_SECONDS: float = 10.0
    IMAGE_FETCH_USER_AGENT: str = (
        "Mozilla/5.0 (X11; Linux x86_64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )
    # Comma-separated; subdomains match. "*" allows any host.
    IMAGE_ALLOWED_HOSTS: str = (
        "images.unsplash.com,images.pexels.com,cdn.pixabay.com,supabase.co"
    )

    # Identification history
    IDENTIFICATION_HISTORY_PATH: Path = Path("data/plant-identification-history.json")
    IDENTIFICATION_HISTORY_LIMIT: int = 50

    # App
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "http://localhost:8081,http://localhost:19006"

    @property
    def origins(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def image_cache_max_size_bytes(self) -> int:
        return self.IMAGE_CACHE_MAX_SIZE_MB * 1024 * 1024

    @property
    def image_allowed_hosts(self) -> Optional[List[str]]:
        hosts = [h.strip() for h in self.IMAGE_ALLOWED_HOSTS.split(",") if h.strip()]
        return None if "*" in hosts else hosts


settings = Settings()
