"""
Unit tests for user accounts and user groups.
"""
import logging

import pytest

from errors import ConstraintViolationError
from log_utils import install_safe_logging
from models import FavoriteRow, PlayRecordRow, SearchHistoryRow, SkipConfigRow, User
from schemas import UserGroupInfo, UserInfo
from tests.fixtures.factories import (
    OWNER_PASSWORD,
    OWNER_USERNAME,
    create_user,
    make_favorite,
    make_play_record,
    make_skip_config,
)
from users import check_password, hash_password


class TestPasswordHashing:

    def test_hash_verifies(self):
        hashed = hash_password("s3cret", rounds=4)

        assert hashed.startswith("$2")
        assert check_password("s3cret", hashed) is True
        assert check_password("wrong", hashed) is False

    def test_same_password_hashes_differently(self):
        assert hash_password("pw", rounds=4) != hash_password("pw", rounds=4)

    def test_non_bcrypt_value_does_not_verify(self):
        assert check_password("plain", "plain") is False


class TestRegisterAndVerify:

    @pytest.mark.asyncio
    async def test_register_then_verify(self, storage):
        await storage.register_user("alice", "pw1")

        assert await storage.user_exists("alice") is True
        assert await storage.verify_user("alice", "pw1") is True
        assert await storage.verify_user("alice", "nope") is False

    @pytest.mark.asyncio
    async def test_password_is_not_stored_in_plaintext(self, storage):
        await storage.register_user("alice", "pw1")

        user = await storage.get_user("alice", include_password=True)

        assert user.password != "pw1"
        assert user.password.startswith("$2")

    @pytest.mark.asyncio
    async def test_registered_user_has_default_role(self, storage):
        await storage.register_user("alice", "pw1")

        user = await storage.get_user("alice")

        assert user.role == "user"
        assert user.banned is False
        assert user.tags == []
        assert user.enabled_apis == []
        assert user.password is None

    @pytest.mark.asyncio
    async def test_duplicate_register_fails_and_keeps_original(self, storage):
        await storage.register_user("alice", "pw1")

        with pytest.raises(ConstraintViolationError):
            await storage.register_user("alice", "pw2")

        assert await storage.verify_user("alice", "pw1") is True
        assert await storage.verify_user("alice", "pw2") is False

    @pytest.mark.asyncio
    async def test_unknown_user(self, storage):
        assert await storage.user_exists("ghost") is False
        assert await storage.verify_user("ghost", "anything") is False
        assert await storage.get_user("ghost") is None

    @pytest.mark.asyncio
    async def test_bootstrap_owner_can_log_in(self, storage):
        assert await storage.verify_user(OWNER_USERNAME, OWNER_PASSWORD) is True
        assert (await storage.get_user(OWNER_USERNAME)).role == "owner"


class TestChangePasswordAndDelete:

    @pytest.mark.asyncio
    async def test_change_password(self, storage):
        await storage.register_user("alice", "old")

        assert await storage.change_password("alice", "new") is True

        assert await storage.verify_user("alice", "new") is True
        assert await storage.verify_user("alice", "old") is False

    @pytest.mark.asyncio
    async def test_change_password_for_unknown_user(self, storage):
        assert await storage.change_password("ghost", "new") is False

    @pytest.mark.asyncio
    async def test_delete_cascades_to_user_data(self, storage, test_engine):
        await storage.register_user("alice", "pw")
        await storage.set_play_record("alice", "k", make_play_record())
        await storage.set_favorite("alice", "k", make_favorite())
        await storage.set_skip_config("alice", "s", "e", make_skip_config())
        await storage.add_search_history("alice", "kw")

        assert await storage.delete_user("alice") is True

        assert await storage.user_exists("alice") is False
        with test_engine.transaction() as session:
            for model in (PlayRecordRow, FavoriteRow, SkipConfigRow, SearchHistoryRow):
                assert session.query(model).filter(model.username == "alice").count() == 0

    @pytest.mark.asyncio
    async def test_delete_leaves_other_users_alone(self, storage):
        await storage.register_user("alice", "pw")
        await storage.set_favorite(OWNER_USERNAME, "k", make_favorite())

        await storage.delete_user("alice")

        assert await storage.get_favorite(OWNER_USERNAME, "k") is not None

    @pytest.mark.asyncio
    async def test_delete_unknown_user(self, storage):
        assert await storage.delete_user("ghost") is False


class TestUserListing:

    @pytest.mark.asyncio
    async def test_lists_every_user(self, storage, test_session):
        create_user(test_session, username="bob", role="admin", tags='["vip"]', enabled_apis='["src-a"]')

        users = {u.username: u for u in await storage.get_all_users()}

        assert set(users) == {OWNER_USERNAME, "bob"}
        assert users["bob"].role == "admin"
        assert users["bob"].tags == ["vip"]
        assert users["bob"].enabled_apis == ["src-a"]
        assert all(u.password is None for u in users.values())

    @pytest.mark.asyncio
    async def test_include_password(self, storage):
        users = await storage.get_all_users(include_password=True)

        assert all(u.password and u.password.startswith("$2") for u in users)

    @pytest.mark.asyncio
    async def test_unparseable_tags_read_as_empty(self, storage, test_session, caplog):
        """A corrupt tag list is logged and read as empty instead of failing the listing."""
        create_user(test_session, username="bob", tags="not json", enabled_apis='{"a": 1}')

        with caplog.at_level(logging.WARNING, logger="users"):
            bob = await storage.get_user("bob")

        assert bob.tags == []
        assert bob.enabled_apis == []
        assert "bob" in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_role_reads_as_user(self, storage, test_session, caplog):
        """A role this release does not know is logged and read as a plain user."""
        create_user(test_session, username="bob", role="guest")

        with caplog.at_level(logging.WARNING, logger="users"):
            users = {u.username: u for u in await storage.get_all_users()}

        assert users["bob"].role == "user"
        assert "guest" in caplog.text
        config = await storage.get_admin_config()
        assert {u.username for u in config.user_config.users} == {OWNER_USERNAME, "bob"}

    @pytest.mark.asyncio
    async def test_unknown_role_is_logged_on_one_line(self, storage, test_session, caplog):
        create_user(test_session, username="bob", role="guest\nCRITICAL forged entry")
        original_factory = logging.getLogRecordFactory()
        install_safe_logging()
        try:
            with caplog.at_level(logging.WARNING, logger="users"):
                await storage.get_user("bob")
        finally:
            logging.setLogRecordFactory(original_factory)

        assert "guest\\nCRITICAL forged entry" in caplog.text



class TestSetAllUsers:

    @pytest.mark.asyncio
    async def test_updates_existing_users(self, storage):
        await storage.register_user("alice", "pw")

        updated = await storage.set_all_users([
            UserInfo(username="alice", role="admin", banned=True, tags=["vip"], enabled_apis=["src-a"]),
        ])

        assert updated == 1
        alice = await storage.get_user("alice")
        assert alice.role == "admin"
        assert alice.banned is True
        assert alice.tags == ["vip"]
        assert alice.enabled_apis == ["src-a"]

    @pytest.mark.asyncio
    async def test_never_creates_accounts(self, storage):
        updated = await storage.set_all_users([UserInfo(username="newcomer", role="admin")])

        assert updated == 0
        assert await storage.user_exists("newcomer") is False

    @pytest.mark.asyncio
    async def test_keeps_password_and_unlisted_users(self, storage):
        await storage.register_user("alice", "pw")
        await storage.register_user("bob", "pw")

        await storage.set_all_users([UserInfo(username="alice", banned=True, password="ignored")])

        assert await storage.verify_user("alice", "pw") is True
        assert await storage.user_exists("bob") is True

    @pytest.mark.asyncio
    async def test_accepts_wire_names(self, storage):
        await storage.register_user("alice", "pw")

        await storage.set_all_users([UserInfo.model_validate({"username": "alice", "enabledApis": ["x"]})])

        assert (await storage.get_user("alice")).enabled_apis == ["x"]


class TestUserGroups:

    @pytest.mark.asyncio
    async def test_empty_by_default(self, storage):
        assert await storage.get_all_user_groups() == []

    @pytest.mark.asyncio
    async def test_set_then_get(self, storage):
        groups = [
            UserGroupInfo(name="vip", enabled_apis=["a", "b"]),
            UserGroupInfo(name="kids", enabled_apis=[]),
        ]

        await storage.set_all_user_groups(groups)

        stored = sorted(await storage.get_all_user_groups(), key=lambda g: g.name)
        assert stored == sorted(groups, key=lambda g: g.name)

    @pytest.mark.asyncio
    async def test_set_replaces_the_collection(self, storage):
        await storage.set_all_user_groups([
            UserGroupInfo(name="vip", enabled_apis=["a"]),
            UserGroupInfo(name="old", enabled_apis=["b"]),
        ])

        await storage.set_all_user_groups([UserGroupInfo(name="vip", enabled_apis=["c"])])

        assert await storage.get_all_user_groups() == [UserGroupInfo(name="vip", enabled_apis=["c"])]

    @pytest.mark.asyncio
    async def test_empty_list_removes_all(self, storage):
        await storage.set_all_user_groups([UserGroupInfo(name="vip")])

        await storage.set_all_user_groups([])

        assert await storage.get_all_user_groups() == []


class TestUserModel:

    def test_repr(self, test_session):
        user = test_session.query(User).filter(User.username == OWNER_USERNAME).one()

        assert OWNER_USERNAME in repr(user)
