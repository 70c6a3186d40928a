"""
UserHandle tiers, session data and the user-data snapshot.
"""

import pytest

from concierge.faults import StoreUnavailableFault, UserNotFoundFault
from concierge.user import Tier, UserHandle, UserRecordAccess


async def logged_in(users, sessions, user_id="alice"):
    await users.register({"user_id": user_id, "moniker": "Alice", "email": "a@example.com"})
    session = await sessions.create(user_id, timeout=60)
    return UserHandle(
        user_id,
        "key-1",
        session=session,
        user_data=await users.get(user_id),
        record_access=UserRecordAccess(users, user_id),
    )


# ============================================================================
# Tiers
# ============================================================================


class TestTiers:

    def test_visitor(self):
        user = UserHandle("k", "k")
        assert user.tier is Tier.VISITOR
        assert user.is_visitor and not user.is_guest and not user.is_logged_in
        assert user.session_id is None
        assert user.get_session_data() is None
        assert user.get_user_field("moniker") is None

    @pytest.mark.asyncio
    async def test_guest(self, sessions):
        session = await sessions.create("guest_1", timeout=60)
        user = UserHandle("guest_1", "k", session=session)
        assert user.tier is Tier.GUEST
        assert user.session_id == session.id
        assert user.user_data is None
        assert user.moniker is None

    @pytest.mark.asyncio
    async def test_logged_in(self, users, sessions):
        user = await logged_in(users, sessions)
        assert user.tier is Tier.LOGGED_IN
        assert user.moniker == "Alice"
        assert user.email == "a@example.com"
        assert user.user_status == "active"
        assert user.access_level == "member"

    def test_user_data_needs_session(self, users):
        with pytest.raises(ValueError):
            UserHandle("alice", "k", user_data={}, record_access=UserRecordAccess(users, "alice"))

    @pytest.mark.asyncio
    async def test_record_access_only_for_logged_in(self, users, sessions):
        session = await sessions.create("guest_1", timeout=60)
        with pytest.raises(ValueError):
            UserHandle("guest_1", "k", session=session, record_access=UserRecordAccess(users, "guest_1"))

    @pytest.mark.asyncio
    async def test_to_dict(self, users, sessions):
        user = await logged_in(users, sessions)
        out = user.to_dict()
        assert out["tier"] == "logged_in"
        assert out["user_key"] == "key-1"
        assert out["user_data"]["moniker"] == "Alice"


# ============================================================================
# Session data
# ============================================================================


class TestSessionData:

    @pytest.mark.asyncio
    async def test_visitor_has_no_session_data(self):
        assert await UserHandle("k", "k").update_session_data({"a": 1}) is None

    @pytest.mark.asyncio
    async def test_updates_merge(self, sessions):
        session = await sessions.create("guest_1", timeout=60)
        user = UserHandle("guest_1", "k", session=session)

        assert await user.update_session_data({"a": 1}) is True
        assert await user.update_session_data({"b": 2}) is True
        assert user.get_session_data() == {"a": 1, "b": 2}
        assert (await sessions.get(session.id)).get_data() == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_update_overwrites_present_keys(self, sessions):
        session = await sessions.create("guest_1", timeout=60, data={"a": 1, "b": 1})
        user = UserHandle("guest_1", "k", session=session)
        await user.update_session_data({"b": 2})
        assert user.get_session_data() == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_returned_data_is_a_copy(self, sessions):
        session = await sessions.create("guest_1", timeout=60, data={"cart": ["x"]})
        user = UserHandle("guest_1", "k", session=session)
        user.get_session_data()["cart"].append("y")
        assert user.get_session_data() == {"cart": ["x"]}

    @pytest.mark.asyncio
    async def test_failed_save_reports_false(self, sessions, monkeypatch):
        session = await sessions.create("guest_1", timeout=60)
        user = UserHandle("guest_1", "k", session=session)

        async def broken_save(_session):
            raise StoreUnavailableFault(store_name="session file", cause="disk full")

        monkeypatch.setattr(sessions, "save", broken_save)
        assert await user.update_session_data({"a": 1}) is False

    @pytest.mark.asyncio
    async def test_failed_save_keeps_previous_data(self, sessions, monkeypatch):
        session = await sessions.create("guest_1", timeout=60, data={"cart": ["x"]})
        user = UserHandle("guest_1", "k", session=session)

        async def broken_save(_session):
            raise StoreUnavailableFault(store_name="session file", cause="disk full")

        monkeypatch.setattr(sessions, "save", broken_save)
        assert await user.update_session_data({"cart": ["y"], "theme": "dark"}) is False
        assert user.get_session_data() == {"cart": ["x"]}
        assert (await sessions.get(session.id)).get_data() == {"cart": ["x"]}


# ============================================================================
# User data
# ============================================================================


class TestUserData:

    @pytest.mark.asyncio
    async def test_guest_cannot_touch_user_data(self, sessions):
        session = await sessions.create("guest_1", timeout=60)
        user = UserHandle("guest_1", "k", session=session)
        assert await user.update_user_data({"moniker": "x"}) is None
        assert await user.refresh_user_data() is None

    @pytest.mark.asyncio
    async def test_update_writes_through(self, users, sessions):
        user = await logged_in(users, sessions)
        assert await user.update_user_data({"moniker": "Al"}) is True
        assert user.moniker == "Al"
        assert (await users.get("alice"))["moniker"] == "Al"

    @pytest.mark.asyncio
    async def test_update_cannot_change_identity_or_password(self, users, sessions):
        user = await logged_in(users, sessions)
        assert await user.update_user_data({"user_id": "mallory", "password": "x"}) is False
        record = await users.get("alice")
        assert "password" not in record
        assert user.user_id == "alice"

    @pytest.mark.asyncio
    async def test_failed_update_leaves_snapshot(self, users, sessions):
        user = await logged_in(users, sessions)
        await users.delete("alice")
        assert await user.update_user_data({"moniker": "Al"}) is False
        assert user.moniker == "Alice"

    @pytest.mark.asyncio
    async def test_refresh_picks_up_external_changes(self, users, sessions):
        user = await logged_in(users, sessions)
        await users.update("alice", {"moniker": "Changed"})
        assert user.moniker == "Alice"
        assert await user.refresh_user_data() is True
        assert user.moniker == "Changed"

    @pytest.mark.asyncio
    async def test_snapshot_copy(self, users, sessions):
        user = await logged_in(users, sessions)
        user.user_data["moniker"] = "tampered"
        assert user.moniker == "Alice"

    @pytest.mark.asyncio
    async def test_record_access_reads_fields(self, users):
        await users.register({"user_id": "alice", "moniker": "Alice"})
        access = UserRecordAccess(users, "alice")
        assert await access.read("moniker", "nope") == {"moniker": "Alice"}
        with pytest.raises(UserNotFoundFault):
            await UserRecordAccess(users, "ghost").read()
