"""
Per-user JSON document repositories: play records, favorites, skip configs.

Each repository stores one document per (username, key) pair. Documents are
serialized with a pydantic TypeAdapter for the declared document type, so a
value read back compares equal to the value written. A stored value that no
longer parses raises DocumentDecodeError rather than reading as missing.
"""
import logging
from typing import Dict, Generic, Optional, Type, TypeVar

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session

from errors import DocumentDecodeError
from models import FavoriteRow, PlayRecordRow, SkipConfigRow
from schemas import Favorite, PlayRecord, SkipConfig, SkipConfigKey

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DocumentRepository(Generic[T]):
    """Generic get/set/get_all/delete over a (username, key) -> JSON table."""

    def __init__(self, model, key_column: str, document_type: Type[T]):
        self.model = model
        self.key_column = key_column
        self._key = getattr(model, key_column)
        self._adapter = TypeAdapter(document_type)

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    def encode(self, document: T) -> str:
        return self._adapter.dump_json(document, by_alias=True).decode("utf-8")

    def decode(self, raw: str, username: str, key: str) -> T:
        try:
            return self._adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("Corrupt document in %s for %s/%s", self.table_name, username, key)
            raise DocumentDecodeError(self.table_name, f"{username}/{key}", e) from e

    def get(self, session: Session, username: str, key: str) -> Optional[T]:
        row = (
            session.query(self.model.data)
            .filter(self.model.username == username, self._key == key)
            .first()
        )
        if row is None:
            return None
        return self.decode(row.data, username, key)

    def set(self, session: Session, username: str, key: str, document: T) -> None:
        """Insert or replace the document in a single statement."""
        stmt = insert(self.model).values(
            username=username, **{self.key_column: key}, data=self.encode(document)
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[self.model.username, self._key],
            set_={"data": stmt.excluded.data},
        )
        session.execute(stmt)

    def get_all(self, session: Session, username: str) -> Dict[str, T]:
        rows = (
            session.query(self._key, self.model.data)
            .filter(self.model.username == username)
            .all()
        )
        return {row[0]: self.decode(row[1], username, row[0]) for row in rows}

    def delete(self, session: Session, username: str, key: str) -> bool:
        """Delete one document. Returns True if a row was removed."""
        deleted = (
            session.query(self.model)
            .filter(self.model.username == username, self._key == key)
            .delete(synchronize_session=False)
        )
        return deleted > 0


# -----------------------------------------------------------------------------
# Skip config keys
# -----------------------------------------------------------------------------

SKIP_KEY_SEPARATOR = "+"

# "%" first so already-escaped text is never escaped twice
_ESCAPES = (("%", "%25"), ("+", "%2B"))


def _escape_part(part: str) -> str:
    for raw, escaped in _ESCAPES:
        part = part.replace(raw, escaped)
    return part


def _unescape_part(part: str) -> str:
    for raw, escaped in reversed(_ESCAPES):
        part = part.replace(escaped, raw)
    return part


def encode_skip_key(key: SkipConfigKey) -> str:
    """
    Build the stored key "<source>+<episode id>".

    "%" and "+" inside either part are percent-escaped, so two different
    pairs can never produce the same stored key. Parts without those
    characters are stored as-is.
    """
    return f"{_escape_part(key.source)}{SKIP_KEY_SEPARATOR}{_escape_part(key.episode_id)}"


def decode_skip_key(stored: str) -> SkipConfigKey:
    source, sep, episode_id = stored.partition(SKIP_KEY_SEPARATOR)
    if not sep:
        raise ValueError(f"Skip config key {stored!r} has no separator")
    return SkipConfigKey(_unescape_part(source), _unescape_part(episode_id))


class SkipConfigRepository(DocumentRepository[SkipConfig]):
    """Skip configs keyed by a structured (source, episode id) pair."""

    def __init__(self):
        super().__init__(SkipConfigRow, "config_key", SkipConfig)

    def get(self, session: Session, username: str, key: SkipConfigKey) -> Optional[SkipConfig]:
        return super().get(session, username, encode_skip_key(key))

    def set(self, session: Session, username: str, key: SkipConfigKey, document: SkipConfig) -> None:
        super().set(session, username, encode_skip_key(key), document)

    def delete(self, session: Session, username: str, key: SkipConfigKey) -> bool:
        return super().delete(session, username, encode_skip_key(key))

    def get_all(self, session: Session, username: str) -> Dict[SkipConfigKey, SkipConfig]:
        configs = {}
        for stored_key, document in super().get_all(session, username).items():
            try:
                configs[decode_skip_key(stored_key)] = document
            except ValueError as e:
                raise DocumentDecodeError(self.table_name, f"{username}/{stored_key}", e) from e
        return configs


def play_record_repository() -> DocumentRepository[PlayRecord]:
    return DocumentRepository(PlayRecordRow, "record_key", PlayRecord)


def favorite_repository() -> DocumentRepository[Favorite]:
    return DocumentRepository(FavoriteRow, "favorite_key", Favorite)
