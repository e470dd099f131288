from pydantic_settings import BaseSettings
from typing import Optional
import logging
from pathlib import Path

# Set up logging
logger = logging.getLogger(__name__)

# Default store location, relative to the working directory
DEFAULT_DATA_DIR = Path("data")
DEFAULT_DB_FILE = DEFAULT_DATA_DIR / "media_store.db"

DEFAULT_ANNOUNCEMENT = (
    "This site only provides search over video metadata. All content comes from "
    "third-party sites. This site does not host any video files and is not "
    "responsible for the accuracy, legality or completeness of any content."
)


class StorageSettings(BaseSettings):
    """Storage settings from environment (for container config)."""
    # Store location
    sqlite_db_path: Path = DEFAULT_DB_FILE
    # Bootstrap owner account, only used when the store file is created
    admin_username: Optional[str] = None
    admin_password: Optional[str] = None
    # Site defaults for the admin config (overridable per deployment)
    site_name: str = "MediaStore"
    announcement: str = DEFAULT_ANNOUNCEMENT
    search_max_page: int = 5
    site_interface_cache_time: int = 7200
    douban_proxy_type: str = "cmliussss-cdn-tencent"
    douban_proxy: str = ""
    douban_image_proxy_type: str = "cmliussss-cdn-tencent"
    douban_image_proxy: str = ""
    disable_yellow_filter: bool = False
    fluid_search: bool = True
    # Per-user search history cap
    search_history_limit: int = 20
    # Lock contention handling
    retry_attempts: int = 3
    retry_base_delay: float = 0.1  # seconds, multiplied by the attempt number
    busy_timeout: float = 5.0  # seconds the driver waits on a locked file
    # bcrypt work factor for stored passwords
    password_hash_rounds: int = 12
    # Backend log level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def has_bootstrap_credentials(self) -> bool:
        return bool(self.admin_username and self.admin_password)


# In-memory cache of settings
_cached_settings: StorageSettings | None = None


def get_settings() -> StorageSettings:
    """Get the process-wide storage settings, loading them on first use."""
    global _cached_settings

    if _cached_settings is None:
        _cached_settings = StorageSettings()
        logger.info("Loaded storage settings, store at %s", _cached_settings.sqlite_db_path)
    return _cached_settings


def clear_settings_cache() -> None:
    """Clear the cached settings (forces reload)."""
    global _cached_settings
    _cached_settings = None
    logger.info("Settings cache cleared")


def log_config_status(settings: StorageSettings) -> None:
    """Log the current configuration status for debugging."""
    db_path = settings.sqlite_db_path
    logger.info("SQLITE_DB_PATH: %s", db_path)
    logger.info("Store directory exists: %s", db_path.parent.exists())
    logger.info("Store file exists: %s", db_path.exists())
    logger.info("Bootstrap credentials configured: %s", settings.has_bootstrap_credentials())
