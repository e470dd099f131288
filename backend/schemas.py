"""
Pydantic document shapes for the media store.

Per-user documents (play records, favorites, skip configs) belong to the
caller; the store only guarantees they come back equal to what was saved.
Unknown fields are kept so newer clients can add data without a schema
change.

Admin config shapes serialize with the field names used by the web client
and by earlier store files (``SiteName``, ``ConfigSubscribtion``,
``enabledApis``, ``from`` ...). Snake-case names are accepted on input.
"""
from typing import List, Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "admin", "owner"]
Origin = Literal["config", "custom"]
CategoryType = Literal["movie", "tv"]


# -----------------------------------------------------------------------------
# Per-user documents
# -----------------------------------------------------------------------------

class PlayRecord(BaseModel):
    """Playback progress for one title."""
    model_config = ConfigDict(extra="allow")

    title: str = ""
    source_name: str = ""
    cover: str = ""
    year: str = ""
    index: int = 0  # episode number, 1-based
    total_episodes: int = 0
    play_time: float = 0  # seconds watched
    total_time: float = 0  # seconds
    save_time: int = 0  # unix ms
    search_title: str = ""


class Favorite(BaseModel):
    """A favorited title."""
    model_config = ConfigDict(extra="allow")

    title: str = ""
    source_name: str = ""
    cover: str = ""
    year: str = ""
    total_episodes: int = 0
    save_time: int = 0  # unix ms
    search_title: str = ""
    origin: Optional[str] = None  # "vod" or "live"


class SkipConfig(BaseModel):
    """Intro/outro skip markers for one episode."""
    model_config = ConfigDict(extra="allow")

    enable: bool = False
    intro_time: float = 0  # seconds
    outro_time: float = 0  # seconds


class SkipConfigKey(NamedTuple):
    """Structured key for a skip config: the source plus the episode id."""
    source: str
    episode_id: str


# -----------------------------------------------------------------------------
# Users and groups
# -----------------------------------------------------------------------------

class UserInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str
    role: Role = "user"
    banned: bool = False
    tags: List[str] = Field(default_factory=list)
    enabled_apis: List[str] = Field(default_factory=list, alias="enabledApis")
    # Only filled when explicitly requested; holds the bcrypt hash
    password: Optional[str] = None


class UserGroupInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    enabled_apis: List[str] = Field(default_factory=list, alias="enabledApis")


# -----------------------------------------------------------------------------
# Sources
# -----------------------------------------------------------------------------

class ApiSource(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    name: str
    api: str
    detail: Optional[str] = None
    from_: Origin = Field("custom", alias="from")
    disabled: bool = False


class LiveSource(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    name: str
    url: str
    ua: Optional[str] = None
    epg: Optional[str] = None
    from_: Origin = Field("custom", alias="from")
    channel_number: Optional[int] = Field(None, alias="channelNumber")
    disabled: bool = False


class Category(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    type: CategoryType
    name: Optional[str] = None
    from_: Origin = Field("custom", alias="from")
    disabled: bool = False


# -----------------------------------------------------------------------------
# Admin config
# -----------------------------------------------------------------------------

class ConfigSubscription(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field("", alias="URL")
    auto_update: bool = Field(False, alias="AutoUpdate")
    last_check: str = Field("", alias="LastCheck")


class SiteConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    site_name: str = Field(alias="SiteName")
    announcement: str = Field(alias="Announcement")
    search_downstream_max_page: int = Field(alias="SearchDownstreamMaxPage")
    site_interface_cache_time: int = Field(alias="SiteInterfaceCacheTime")
    douban_proxy_type: str = Field(alias="DoubanProxyType")
    douban_proxy: str = Field(alias="DoubanProxy")
    douban_image_proxy_type: str = Field(alias="DoubanImageProxyType")
    douban_image_proxy: str = Field(alias="DoubanImageProxy")
    disable_yellow_filter: bool = Field(alias="DisableYellowFilter")
    fluid_search: bool = Field(alias="FluidSearch")


class UserConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    users: List[UserInfo] = Field(default_factory=list, alias="Users")
    tags: Optional[List[UserGroupInfo]] = Field(None, alias="Tags")


class AdminConfig(BaseModel):
    """
    The admin configuration as one object.

    On read every field is filled. On write, a field left as None (or an
    empty config_file) is not touched in the store.
    """
    model_config = ConfigDict(populate_by_name=True)

    # The alias keeps the historical spelling used by existing clients and store files
    config_subscription: Optional[ConfigSubscription] = Field(None, alias="ConfigSubscribtion")
    config_file: str = Field("", alias="ConfigFile")
    site_config: Optional[SiteConfig] = Field(None, alias="SiteConfig")
    user_config: Optional[UserConfig] = Field(None, alias="UserConfig")
    source_config: Optional[List[ApiSource]] = Field(None, alias="SourceConfig")
    custom_categories: Optional[List[Category]] = Field(None, alias="CustomCategories")
    live_config: Optional[List[LiveSource]] = Field(None, alias="LiveConfig")
