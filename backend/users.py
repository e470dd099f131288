"""
User accounts and user groups.

Passwords are stored as bcrypt hashes; register/verify/change_password take
and compare plaintext, hashing happens here.

Tag and enabled-source lists are JSON text columns. Unlike per-user
documents, a list that fails to parse is logged and read as empty so one
bad row cannot lock every admin out of the user list.
"""
import json
import logging
from typing import Iterable, List, Optional, get_args

import bcrypt
from sqlalchemy import insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from models import User, UserGroupRow
from schemas import Role, UserGroupInfo, UserInfo

logger = logging.getLogger(__name__)

DEFAULT_HASH_ROUNDS = 12

ROLES = get_args(Role)


def hash_password(password: str, rounds: int = DEFAULT_HASH_ROUNDS) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    """Compare a plaintext password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash (e.g. a row the migration has not reached yet)
        logger.warning("Stored password is not a valid bcrypt hash")
        return False


def _decode_string_list(raw: Optional[str], what: str, owner: str) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError as e:
        logger.warning("Failed to parse %s for %s, using empty list: %s", what, owner, e)
        return []
    if not isinstance(value, list):
        logger.warning("Ignoring non-list %s for %s", what, owner)
        return []
    return [str(item) for item in value]


def _encode_string_list(values: Optional[Iterable[str]]) -> str:
    return json.dumps(list(values or []))


class UserRepository:
    """CRUD for user accounts. Deleting a user cascades to all per-user data."""

    def __init__(self, hash_rounds: int = DEFAULT_HASH_ROUNDS):
        self.hash_rounds = hash_rounds

    def register(self, session: Session, username: str, password: str) -> None:
        """
        Create a regular user.

        Raises IntegrityError (ConstraintViolationError once the transaction
        wrapper translates it) if the username is taken.
        """
        session.execute(
            insert(User).values(
                username=username,
                password=hash_password(password, self.hash_rounds),
                role="user",
                banned=False,
            )
        )
        logger.info("Registered user '%s'", username)

    def create_owner(self, session: Session, username: str, password: str) -> None:
        session.execute(
            insert(User).values(
                username=username,
                password=hash_password(password, self.hash_rounds),
                role="owner",
                banned=False,
            )
        )
        logger.info("Created owner account '%s'", username)

    def verify(self, session: Session, username: str, password: str) -> bool:
        row = session.query(User.password).filter(User.username == username).first()
        if row is None:
            return False
        return check_password(password, str(row.password))

    def exists(self, session: Session, username: str) -> bool:
        return session.query(User.username).filter(User.username == username).first() is not None

    def change_password(self, session: Session, username: str, new_password: str) -> bool:
        """Returns False if the user does not exist."""
        updated = (
            session.query(User)
            .filter(User.username == username)
            .update({User.password: hash_password(new_password, self.hash_rounds)}, synchronize_session=False)
        )
        return updated > 0

    def delete(self, session: Session, username: str) -> bool:
        """Delete a user and, through ON DELETE CASCADE, everything they own."""
        deleted = (
            session.query(User)
            .filter(User.username == username)
            .delete(synchronize_session=False)
        )
        if deleted:
            logger.info("Deleted user '%s' and their data", username)
        return deleted > 0

    def _to_info(self, user: User, include_password: bool) -> UserInfo:
        role = user.role or "user"
        if role not in ROLES:
            logger.warning("Unknown role %s for %s, treating as user", role, user.username)
            role = "user"
        return UserInfo(
            username=str(user.username),
            role=role,
            banned=bool(user.banned),
            tags=_decode_string_list(user.tags, "tags", user.username),
            enabled_apis=_decode_string_list(user.enabled_apis, "enabled sources", user.username),
            password=str(user.password) if include_password else None,
        )

    def get(self, session: Session, username: str, include_password: bool = False) -> Optional[UserInfo]:
        user = session.query(User).filter(User.username == username).first()
        if user is None:
            return None
        return self._to_info(user, include_password)

    def list_all(self, session: Session, include_password: bool = False) -> List[UserInfo]:
        return [self._to_info(user, include_password) for user in session.query(User).all()]

    def replace_all(self, session: Session, users: Iterable[UserInfo]) -> int:
        """
        Update role, banned flag, tags and enabled sources for each given user.

        Never creates accounts: entries with no matching username are
        skipped. Passwords are never touched. Returns the number of rows
        updated.
        """
        updated = 0
        for info in users:
            updated += (
                session.query(User)
                .filter(User.username == info.username)
                .update(
                    {
                        User.role: info.role or "user",
                        User.banned: bool(info.banned),
                        User.tags: _encode_string_list(info.tags),
                        User.enabled_apis: _encode_string_list(info.enabled_apis),
                    },
                    synchronize_session=False,
                )
            )
        return updated


class UserGroupRepository:
    """User groups (tags): name -> enabled api source keys."""

    def list_all(self, session: Session) -> List[UserGroupInfo]:
        return [
            UserGroupInfo(
                name=str(row.name),
                enabled_apis=_decode_string_list(row.value, "enabled sources", f"group {row.name}"),
            )
            for row in session.query(UserGroupRow).all()
        ]

    def replace_all(self, session: Session, groups: Iterable[UserGroupInfo]) -> None:
        """Upsert each group and drop groups missing from the list."""
        groups = list(groups)
        for group in groups:
            stmt = sqlite_insert(UserGroupRow).values(
                name=group.name, value=_encode_string_list(group.enabled_apis)
            )
            session.execute(
                stmt.on_conflict_do_update(
                    index_elements=[UserGroupRow.name],
                    set_={"value": stmt.excluded.value},
                )
            )

        names = [group.name for group in groups]
        removed = (
            session.query(UserGroupRow)
            .filter(UserGroupRow.name.not_in(names))
            .delete(synchronize_session=False)
        )
        if removed:
            logger.info("Removed %s user group(s) no longer in the config", removed)
