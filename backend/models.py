"""
SQLAlchemy ORM models for the media store.

Table names match the store files written by earlier releases so an
existing database opens without conversion. JSON documents are kept in
TEXT columns; their shape belongs to the caller (see schemas.py).
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, Index, ForeignKey, UniqueConstraint, text
from sqlalchemy.orm import relationship
from database import Base


# =============================================================================
# Users (aggregate root for all per-user tables)
# =============================================================================

class User(Base):
    """
    User account. Deleting a row cascades to play records, favorites,
    search history and skip configs at the database level.
    """
    __tablename__ = "users"

    username = Column(Text, primary_key=True)
    password = Column(Text, nullable=False)  # bcrypt hash
    role = Column(Text, nullable=False, default="user", server_default="user")  # user, admin, owner
    banned = Column(Boolean, nullable=False, default=False, server_default=text("0"))
    tags = Column(Text, nullable=True)  # JSON array of user group names
    enabled_apis = Column(Text, nullable=True)  # JSON array of api source keys

    # passive_deletes leaves the cascade to the ON DELETE clause
    play_records = relationship("PlayRecordRow", back_populates="user", passive_deletes=True)
    favorites = relationship("FavoriteRow", back_populates="user", passive_deletes=True)
    search_history = relationship("SearchHistoryRow", back_populates="user", passive_deletes=True)
    skip_configs = relationship("SkipConfigRow", back_populates="user", passive_deletes=True)

    def __repr__(self):
        return f"<User(username={self.username}, role={self.role}, banned={self.banned})>"


# =============================================================================
# Per-user documents
# =============================================================================

class PlayRecordRow(Base):
    """Playback progress for one title, keyed by (username, record_key)."""
    __tablename__ = "play_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, ForeignKey("users.username", ondelete="CASCADE"), nullable=False)
    record_key = Column(Text, nullable=False)  # "<source>+<id>" as chosen by the caller
    data = Column(Text, nullable=False)  # JSON document

    user = relationship("User", back_populates="play_records")

    __table_args__ = (
        UniqueConstraint("username", "record_key"),
        Index("idx_play_records_username", username),
    )

    def __repr__(self):
        return f"<PlayRecordRow(username={self.username}, key={self.record_key})>"


class FavoriteRow(Base):
    """A favorited title, keyed by (username, favorite_key)."""
    __tablename__ = "favorites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, ForeignKey("users.username", ondelete="CASCADE"), nullable=False)
    favorite_key = Column(Text, nullable=False)
    data = Column(Text, nullable=False)  # JSON document

    user = relationship("User", back_populates="favorites")

    __table_args__ = (
        UniqueConstraint("username", "favorite_key"),
        Index("idx_favorites_username", username),
    )

    def __repr__(self):
        return f"<FavoriteRow(username={self.username}, key={self.favorite_key})>"


class SearchHistoryRow(Base):
    """
    One search keyword. A keyword appears at most once per user; re-adding it
    replaces the row so it becomes the newest.
    """
    __tablename__ = "search_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, ForeignKey("users.username", ondelete="CASCADE"), nullable=False)
    keyword = Column(Text, nullable=False)
    created_at = Column(Integer, nullable=False, server_default=text("(strftime('%s', 'now'))"))  # unix seconds

    user = relationship("User", back_populates="search_history")

    __table_args__ = (
        Index("idx_search_history_username", username),
        Index("idx_search_history_username_created", username, created_at.desc()),
    )

    def __repr__(self):
        return f"<SearchHistoryRow(username={self.username}, keyword={self.keyword}, created_at={self.created_at})>"


class SkipConfigRow(Base):
    """Intro/outro skip markers for one episode, keyed by (username, config_key)."""
    __tablename__ = "skip_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, ForeignKey("users.username", ondelete="CASCADE"), nullable=False)
    config_key = Column(Text, nullable=False)  # escaped "<source>+<episode id>"
    data = Column(Text, nullable=False)  # JSON document

    user = relationship("User", back_populates="skip_configs")

    __table_args__ = (
        UniqueConstraint("username", "config_key"),
        Index("idx_skip_configs_username", username),
    )

    def __repr__(self):
        return f"<SkipConfigRow(username={self.username}, key={self.config_key})>"


# =============================================================================
# Global admin configuration
# =============================================================================

class AdminSetting(Base):
    """
    Key-value rows for the parts of the admin config that have no table of
    their own: config_file, config_subscription and site_config.
    """
    __tablename__ = "admin_config"

    name = Column(Text, primary_key=True)
    value = Column(Text, nullable=False)

    def __repr__(self):
        return f"<AdminSetting(name={self.name})>"


class UserGroupRow(Base):
    """
    A user group (tag). Users reference groups by name only, there is no
    foreign key between the two tables.
    """
    __tablename__ = "user_groups"

    name = Column(Text, primary_key=True)
    value = Column(Text, nullable=False)  # JSON array of enabled api source keys

    def __repr__(self):
        return f"<UserGroupRow(name={self.name})>"


class ApiSourceRow(Base):
    """A content (API) source."""
    __tablename__ = "api_sources"

    key = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    api = Column(Text, nullable=False)  # endpoint URL
    detail = Column(Text, nullable=True)  # optional detail page URL
    from_source = Column(Text, nullable=False)  # "config" or "custom"
    disabled = Column(Boolean, nullable=False, default=False, server_default=text("0"))

    __table_args__ = (
        Index("idx_api_sources_disabled", disabled),
    )

    def __repr__(self):
        return f"<ApiSourceRow(key={self.key}, name={self.name}, disabled={self.disabled})>"


class LiveSourceRow(Base):
    """A live channel source (M3U playlist plus optional EPG)."""
    __tablename__ = "live_sources"

    key = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    user_agent = Column(Text, nullable=True)
    epg = Column(Text, nullable=True)  # EPG URL
    from_source = Column(Text, nullable=False)  # "config" or "custom"
    channel_number = Column(Integer, nullable=True)
    disabled = Column(Boolean, nullable=False, default=False, server_default=text("0"))

    __table_args__ = (
        Index("idx_live_sources_disabled", disabled),
    )

    def __repr__(self):
        return f"<LiveSourceRow(key={self.key}, name={self.name}, disabled={self.disabled})>"


class CategoryRow(Base):
    """A custom category filter, unique on (query, type)."""
    __tablename__ = "categories"

    query = Column(Text, primary_key=True)
    type = Column(Text, primary_key=True)  # "movie" or "tv"
    name = Column(Text, nullable=True)
    from_source = Column(Text, nullable=False)  # "config" or "custom"
    disabled = Column(Boolean, nullable=False, default=False, server_default=text("0"))

    __table_args__ = (
        Index("idx_categories_disabled", disabled),
        Index("idx_categories_from_source", from_source),
    )

    def __repr__(self):
        return f"<CategoryRow(query={self.query}, type={self.type}, disabled={self.disabled})>"
