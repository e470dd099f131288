"""
Admin config aggregation.

The admin config is not stored as one value. Three parts live in the
admin_config key-value table (config file, subscription, site settings);
users, user groups, api sources, live sources and categories come from their
own tables. read() assembles the object, write() splits it back up.
"""
import json
import logging
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session

from config import StorageSettings
from errors import DocumentDecodeError
from models import AdminSetting, User
from schemas import AdminConfig, ConfigSubscription, SiteConfig, UserConfig
from sources import ApiSourceRepository, CategoryRepository, LiveSourceRepository
from users import UserGroupRepository, UserRepository

logger = logging.getLogger(__name__)

# Key-value row names
CONFIG_FILE_KEY = "config_file"
SUBSCRIPTION_KEY = "config_subscription"
SITE_CONFIG_KEY = "site_config"

ModelT = TypeVar("ModelT", bound=BaseModel)


def default_site_config(settings: StorageSettings) -> SiteConfig:
    """Site settings used until an admin saves their own."""
    return SiteConfig(
        site_name=settings.site_name,
        announcement=settings.announcement,
        search_downstream_max_page=settings.search_max_page,
        site_interface_cache_time=settings.site_interface_cache_time,
        douban_proxy_type=settings.douban_proxy_type,
        douban_proxy=settings.douban_proxy,
        douban_image_proxy_type=settings.douban_image_proxy_type,
        douban_image_proxy=settings.douban_image_proxy,
        disable_yellow_filter=settings.disable_yellow_filter,
        fluid_search=settings.fluid_search,
    )


def _overlay(base: ModelT, raw: str) -> ModelT:
    """
    Parse a stored JSON object on top of base. Keys the stored object lacks
    (written by an older release) keep the value from base.
    """
    stored = json.loads(raw)
    if not isinstance(stored, dict):
        raise ValueError(f"expected a JSON object, got {type(stored).__name__}")
    return type(base).model_validate({**base.model_dump(by_alias=True), **stored})


class AdminConfigAggregator:
    """Builds and decomposes AdminConfig on top of the repositories."""

    def __init__(
        self,
        settings: StorageSettings,
        users: Optional[UserRepository] = None,
        user_groups: Optional[UserGroupRepository] = None,
        api_sources: Optional[ApiSourceRepository] = None,
        live_sources: Optional[LiveSourceRepository] = None,
        categories: Optional[CategoryRepository] = None,
    ):
        self.settings = settings
        self.users = users or UserRepository(settings.password_hash_rounds)
        self.user_groups = user_groups or UserGroupRepository()
        self.api_sources = api_sources or ApiSourceRepository()
        self.live_sources = live_sources or LiveSourceRepository()
        self.categories = categories or CategoryRepository()

    def defaults(self) -> AdminConfig:
        return AdminConfig(
            config_subscription=ConfigSubscription(),
            config_file="",
            site_config=default_site_config(self.settings),
            user_config=UserConfig(users=[]),
            source_config=[],
            custom_categories=[],
            live_config=[],
        )

    def read(self, session: Session) -> AdminConfig:
        """
        Assemble the admin config.

        Raises:
            DocumentDecodeError: If a stored subscription or site settings
                value is not a JSON object or holds a value of the wrong
                type. The whole read fails in that case. Keys missing from
                a stored value keep their defaults.
        """
        config = self.defaults()

        for row in session.query(AdminSetting).all():
            try:
                if row.name == CONFIG_FILE_KEY:
                    config.config_file = row.value
                elif row.name == SUBSCRIPTION_KEY:
                    config.config_subscription = _overlay(config.config_subscription, row.value)
                elif row.name == SITE_CONFIG_KEY:
                    config.site_config = _overlay(config.site_config, row.value)
                else:
                    # Older releases also kept the collections here; the tables win
                    logger.debug("Ignoring admin config row '%s'", row.name)
            except (ValueError, ValidationError) as e:
                logger.error("Failed to parse admin config row '%s': %s", row.name, e)
                raise DocumentDecodeError(AdminSetting.__tablename__, row.name, e) from e

        config.user_config = UserConfig(
            users=self.users.list_all(session),
            tags=self.user_groups.list_all(session),
        )
        config.source_config = self.api_sources.list_all(session)
        config.live_config = self.live_sources.list_all(session)
        config.custom_categories = self.categories.list_all(session)
        return config

    def _put(self, session: Session, name: str, value: str) -> None:
        stmt = insert(AdminSetting).values(name=name, value=value)
        session.execute(
            stmt.on_conflict_do_update(
                index_elements=[AdminSetting.name],
                set_={"value": stmt.excluded.value},
            )
        )

    def write(self, session: Session, config: AdminConfig) -> None:
        """
        Store the admin config. Parts that are None (or an empty config file)
        are left as they are. Run inside one transaction so a failure leaves
        the stored config unchanged.
        """
        if config.config_file:
            self._put(session, CONFIG_FILE_KEY, config.config_file)

        if config.config_subscription is not None:
            self._put(session, SUBSCRIPTION_KEY, config.config_subscription.model_dump_json(by_alias=True))

        if config.site_config is not None:
            self._put(session, SITE_CONFIG_KEY, config.site_config.model_dump_json(by_alias=True))

        if config.user_config is not None:
            if config.user_config.users is not None:
                self.users.replace_all(session, config.user_config.users)
            if config.user_config.tags is not None:
                self.user_groups.replace_all(session, config.user_config.tags)

        if config.source_config is not None:
            self.api_sources.replace_all(session, config.source_config)

        if config.custom_categories is not None:
            self.categories.replace_all(session, config.custom_categories)

        if config.live_config is not None:
            self.live_sources.replace_all(session, config.live_config)

        logger.info("Admin config saved")

    def clear_all_data(self, session: Session) -> None:
        """
        Remove every user (and through the cascade all per-user data) and
        every admin key-value row. Source tables are kept.
        """
        users = session.query(User).delete(synchronize_session=False)
        settings_rows = session.query(AdminSetting).delete(synchronize_session=False)
        logger.warning("Cleared all data: %s user(s), %s admin config row(s)", users, settings_rows)
