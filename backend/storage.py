"""
Async storage facade.

Storage is the contract the rest of the application uses: auth, admin
routes and export/import all go through these methods. Each call runs its
repository work in a worker thread inside a single transaction, and lock
contention is retried by with_retry().

Build one Storage per application from a StorageEngine:

    storage = Storage(StorageEngine(get_settings()))

The engine is opened (and on first run bootstrapped) by the constructor,
before any worker thread touches it.
"""
import logging
from typing import Callable, Dict, List, Optional, TypeVar

from admin_config import AdminConfigAggregator
from config import StorageSettings, get_settings, log_config_status
from database import StorageEngine
from documents import SkipConfigRepository, favorite_repository, play_record_repository
from log_utils import configure_logging
from retry import with_retry
from schemas import (
    AdminConfig,
    ApiSource,
    Category,
    Favorite,
    LiveSource,
    PlayRecord,
    SkipConfig,
    SkipConfigKey,
    UserGroupInfo,
    UserInfo,
)
from search_history import SearchHistoryRepository
from sources import ApiSourceRepository, CategoryRepository, LiveSourceRepository
from users import UserGroupRepository, UserRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Storage:
    """All persistence operations, exposed as coroutines."""

    def __init__(self, engine: StorageEngine):
        self.engine = engine
        self.settings = engine.settings
        engine.open()

        self.play_records = play_record_repository()
        self.favorites = favorite_repository()
        self.skip_configs = SkipConfigRepository()
        self.search_history = SearchHistoryRepository(self.settings.search_history_limit)
        self.users = UserRepository(self.settings.password_hash_rounds)
        self.user_groups = UserGroupRepository()
        self.api_sources = ApiSourceRepository()
        self.live_sources = LiveSourceRepository()
        self.categories = CategoryRepository()
        self.admin_config = AdminConfigAggregator(
            self.settings,
            users=self.users,
            user_groups=self.user_groups,
            api_sources=self.api_sources,
            live_sources=self.live_sources,
            categories=self.categories,
        )

    async def _run(self, operation: Callable[..., T], *args) -> T:
        """Run operation(session, *args) in one transaction, retrying on contention."""
        def unit_of_work() -> T:
            with self.engine.transaction() as session:
                return operation(session, *args)

        return await with_retry(
            unit_of_work,
            max_attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay,
        )

    # ---------- play records ----------

    async def get_play_record(self, username: str, key: str) -> Optional[PlayRecord]:
        return await self._run(self.play_records.get, username, key)

    async def set_play_record(self, username: str, key: str, record: PlayRecord) -> None:
        await self._run(self.play_records.set, username, key, record)

    async def get_all_play_records(self, username: str) -> Dict[str, PlayRecord]:
        return await self._run(self.play_records.get_all, username)

    async def delete_play_record(self, username: str, key: str) -> None:
        await self._run(self.play_records.delete, username, key)

    # ---------- favorites ----------

    async def get_favorite(self, username: str, key: str) -> Optional[Favorite]:
        return await self._run(self.favorites.get, username, key)

    async def set_favorite(self, username: str, key: str, favorite: Favorite) -> None:
        await self._run(self.favorites.set, username, key, favorite)

    async def get_all_favorites(self, username: str) -> Dict[str, Favorite]:
        return await self._run(self.favorites.get_all, username)

    async def delete_favorite(self, username: str, key: str) -> None:
        await self._run(self.favorites.delete, username, key)

    # ---------- skip configs ----------

    async def get_skip_config(self, username: str, source: str, episode_id: str) -> Optional[SkipConfig]:
        return await self._run(self.skip_configs.get, username, SkipConfigKey(source, episode_id))

    async def set_skip_config(self, username: str, source: str, episode_id: str, config: SkipConfig) -> None:
        await self._run(self.skip_configs.set, username, SkipConfigKey(source, episode_id), config)

    async def delete_skip_config(self, username: str, source: str, episode_id: str) -> None:
        await self._run(self.skip_configs.delete, username, SkipConfigKey(source, episode_id))

    async def get_all_skip_configs(self, username: str) -> Dict[SkipConfigKey, SkipConfig]:
        return await self._run(self.skip_configs.get_all, username)

    # ---------- search history ----------

    async def get_search_history(self, username: str) -> List[str]:
        return await self._run(self.search_history.get, username)

    async def add_search_history(self, username: str, keyword: str) -> None:
        await self._run(self.search_history.add, username, keyword)

    async def delete_search_history(self, username: str, keyword: Optional[str] = None) -> None:
        await self._run(self.search_history.delete, username, keyword)

    # ---------- users ----------

    async def register_user(self, username: str, password: str) -> None:
        await self._run(self.users.register, username, password)

    async def verify_user(self, username: str, password: str) -> bool:
        return await self._run(self.users.verify, username, password)

    async def user_exists(self, username: str) -> bool:
        return await self._run(self.users.exists, username)

    async def change_password(self, username: str, new_password: str) -> bool:
        return await self._run(self.users.change_password, username, new_password)

    async def delete_user(self, username: str) -> bool:
        return await self._run(self.users.delete, username)

    async def get_user(self, username: str, include_password: bool = False) -> Optional[UserInfo]:
        return await self._run(self.users.get, username, include_password)

    async def get_all_users(self, include_password: bool = False) -> List[UserInfo]:
        return await self._run(self.users.list_all, include_password)

    async def set_all_users(self, users: List[UserInfo]) -> int:
        return await self._run(self.users.replace_all, users)

    # ---------- user groups ----------

    async def get_all_user_groups(self) -> List[UserGroupInfo]:
        return await self._run(self.user_groups.list_all)

    async def set_all_user_groups(self, groups: List[UserGroupInfo]) -> None:
        await self._run(self.user_groups.replace_all, groups)

    # ---------- sources ----------

    async def get_all_api_sources(self) -> List[ApiSource]:
        return await self._run(self.api_sources.list_all)

    async def set_all_api_sources(self, sources: List[ApiSource]) -> None:
        await self._run(self.api_sources.replace_all, sources)

    async def get_all_live_sources(self) -> List[LiveSource]:
        return await self._run(self.live_sources.list_all)

    async def set_all_live_sources(self, sources: List[LiveSource]) -> None:
        await self._run(self.live_sources.replace_all, sources)

    async def get_all_categories(self) -> List[Category]:
        return await self._run(self.categories.list_all)

    async def set_all_categories(self, categories: List[Category]) -> None:
        await self._run(self.categories.replace_all, categories)

    # ---------- admin config ----------

    async def get_admin_config(self) -> AdminConfig:
        return await self._run(self.admin_config.read)

    async def set_admin_config(self, config: AdminConfig) -> None:
        await self._run(self.admin_config.write, config)

    async def clear_all_data(self) -> None:
        await self._run(self.admin_config.clear_all_data)


def create_storage(settings: Optional[StorageSettings] = None) -> Storage:
    """Build a Storage for the application, from the environment unless settings are given."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    log_config_status(settings)
    return Storage(StorageEngine(settings))
