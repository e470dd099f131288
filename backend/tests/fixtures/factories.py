"""
Factory functions for creating test data.

Document factories return pydantic documents with sensible defaults that can
be overridden. create_user() writes an account row and commits it.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from models import User
from schemas import (
    AdminConfig,
    ApiSource,
    Category,
    ConfigSubscription,
    Favorite,
    LiveSource,
    PlayRecord,
    SiteConfig,
    SkipConfig,
    UserConfig,
    UserGroupInfo,
    UserInfo,
)
from users import hash_password


# Bootstrap owner every test store is created with
OWNER_USERNAME = "owner"
OWNER_PASSWORD = "owner-secret"

# Counter for generating unique IDs
_counter = {"value": 0}


def _next_id() -> int:
    """Generate a unique incrementing ID."""
    _counter["value"] += 1
    return _counter["value"]


# -----------------------------------------------------------------------------
# Users
# -----------------------------------------------------------------------------

def create_user(
    session: Session,
    username: str = None,
    password: str = "password",
    role: str = "user",
    banned: bool = False,
    tags: Optional[str] = None,
    enabled_apis: Optional[str] = None,
) -> User:
    """Create a User row.

    Args:
        session: Database session
        username: Account name (generated when omitted)
        password: Plaintext password, stored as a bcrypt hash
        role: user, admin or owner
        banned: Banned flag
        tags: Raw JSON text for the tags column
        enabled_apis: Raw JSON text for the enabled_apis column

    Returns:
        Created and committed User instance
    """
    counter = _next_id()
    user = User(
        username=username or f"user{counter}",
        password=hash_password(password, rounds=4),
        role=role,
        banned=banned,
        tags=tags,
        enabled_apis=enabled_apis,
    )
    session.add(user)
    session.commit()
    return user


# -----------------------------------------------------------------------------
# Per-user documents
# -----------------------------------------------------------------------------

def make_play_record(**overrides) -> PlayRecord:
    counter = _next_id()
    values = dict(
        title=f"Test Title {counter}",
        source_name="Test Source",
        cover=f"https://img.example.com/{counter}.jpg",
        year="2024",
        index=1,
        total_episodes=12,
        play_time=300,
        total_time=1500,
        save_time=1_700_000_000_000 + counter,
        search_title=f"Test Title {counter}",
    )
    values.update(overrides)
    return PlayRecord(**values)


def make_favorite(**overrides) -> Favorite:
    counter = _next_id()
    values = dict(
        title=f"Favorite {counter}",
        source_name="Test Source",
        cover=f"https://img.example.com/fav{counter}.jpg",
        year="2023",
        total_episodes=24,
        save_time=1_700_000_000_000 + counter,
        search_title=f"Favorite {counter}",
        origin="vod",
    )
    values.update(overrides)
    return Favorite(**values)


def make_skip_config(**overrides) -> SkipConfig:
    values = dict(enable=True, intro_time=85.0, outro_time=-120.0)
    values.update(overrides)
    return SkipConfig(**values)


# -----------------------------------------------------------------------------
# Admin config
# -----------------------------------------------------------------------------

def make_site_config(**overrides) -> SiteConfig:
    values = dict(
        site_name="Test Site",
        announcement="Welcome",
        search_downstream_max_page=3,
        site_interface_cache_time=600,
        douban_proxy_type="direct",
        douban_proxy="",
        douban_image_proxy_type="direct",
        douban_image_proxy="",
        disable_yellow_filter=True,
        fluid_search=False,
    )
    values.update(overrides)
    return SiteConfig(**values)


def make_api_source(key: str = None, **overrides) -> ApiSource:
    key = key or f"src{_next_id()}"
    values = dict(
        key=key,
        name=f"Source {key}",
        api=f"https://{key}.example.com/api.php/provide/vod",
        detail=None,
        from_="config",
        disabled=False,
    )
    values.update(overrides)
    return ApiSource(**values)


def make_live_source(key: str = None, **overrides) -> LiveSource:
    key = key or f"live{_next_id()}"
    values = dict(
        key=key,
        name=f"Live {key}",
        url=f"https://{key}.example.com/playlist.m3u",
        ua="TestAgent/1.0",
        epg=f"https://{key}.example.com/epg.xml",
        from_="custom",
        channel_number=100,
        disabled=False,
    )
    values.update(overrides)
    return LiveSource(**values)


def make_category(query: str = None, type: str = "movie", **overrides) -> Category:
    query = query or f"query{_next_id()}"
    values = dict(query=query, type=type, name=f"Category {query}", from_="custom", disabled=False)
    values.update(overrides)
    return Category(**values)


def make_admin_config(
    users: Optional[List[UserInfo]] = None,
    tags: Optional[List[UserGroupInfo]] = None,
    **overrides,
) -> AdminConfig:
    """A fully populated admin config for round-trip tests."""
    values = dict(
        config_subscription=ConfigSubscription(
            url="https://config.example.com/sub.json", auto_update=True, last_check="2024-05-01T00:00:00Z"
        ),
        config_file='{"cache_time": 7200, "api_site": {}}',
        site_config=make_site_config(),
        user_config=UserConfig(
            users=users if users is not None else [],
            tags=tags if tags is not None else [UserGroupInfo(name="vip", enabled_apis=["src-a"])],
        ),
        source_config=[make_api_source("src-a"), make_api_source("src-b", disabled=True, detail="https://b.example.com")],
        custom_categories=[make_category("Top", "movie"), make_category("Top", "tv", name=None)],
        live_config=[make_live_source("live-a"), make_live_source("live-b", ua=None, epg=None, channel_number=None)],
    )
    values.update(overrides)
    return AdminConfig(**values)
