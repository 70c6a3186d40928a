"""
Concierge participation lifecycle: visitors, guests, logins, restores, logouts.
"""

import pytest

from concierge import Concierge, KeyMap
from concierge.faults import SessionNotFoundFault, StoreUnavailableFault
from tests.conftest import ALICE_CREDENTIALS, alice


async def login_alice(concierge, **session_opts):
    await concierge.add_user(alice())
    result = await concierge.login_user(ALICE_CREDENTIALS, session_opts or None)
    assert result.success, result.message
    return result.user


# ============================================================================
# Visitors
# ============================================================================


class TestAdmitVisitor:

    @pytest.mark.asyncio
    async def test_visitor_has_key_only(self, concierge, keymap):
        result = await concierge.admit_visitor()
        assert result.success
        assert result.is_visitor
        user = result.user
        assert user.is_visitor
        assert user.session_id is None
        assert len(user.user_key) >= 13
        assert len(keymap) == 0

    @pytest.mark.asyncio
    async def test_keys_are_unique(self, concierge):
        keys = {(await concierge.admit_visitor()).user.user_key for _ in range(50)}
        assert len(keys) == 50


# ============================================================================
# Guests
# ============================================================================


class TestCheckinGuest:

    @pytest.mark.asyncio
    async def test_guest_gets_session_and_key(self, concierge, keymap, sessions):
        result = await concierge.checkin_guest()
        assert result.success and result.is_guest
        user = result.user
        assert user.is_guest
        entry = keymap.get(user.user_key)
        assert entry.user_id == user.user_id
        assert entry.session_id == user.session_id
        assert user.user_id != user.user_key
        assert (await sessions.get(user.session_id)).user_id == user.user_id

    @pytest.mark.asyncio
    async def test_default_guest_timeout(self, concierge, clock, sessions):
        user = (await concierge.checkin_guest()).user
        clock.advance(1799)
        assert (await sessions.get(user.session_id)).is_active()
        clock.advance(2)
        assert (await concierge.restore_user(user.user_key)).success is False

    @pytest.mark.asyncio
    async def test_custom_timeout_and_seed_data(self, concierge, clock):
        result = await concierge.checkin_guest(
            timeout=10,
            data={"cart": [], "password": "leak"},
        )
        user = result.user
        assert user.get_session_data() == {"cart": []}
        clock.advance(11)
        assert (await concierge.restore_user(user.user_key)).message == "Session expired"

    @pytest.mark.asyncio
    async def test_session_failure_has_no_side_effects(self, concierge, sessions, keymap, monkeypatch):
        async def unavailable(*args, **kwargs):
            raise StoreUnavailableFault(store_name="session file", cause="read-only filesystem")

        monkeypatch.setattr(sessions, "create", unavailable)
        result = await concierge.checkin_guest()
        assert not result.success
        assert result.code == "STORE_UNAVAILABLE"
        assert "read-only filesystem" in result.message
        assert len(keymap) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", ["x", True, -5])
    async def test_invalid_timeout(self, concierge, keymap, timeout):
        result = await concierge.checkin_guest(timeout=timeout)
        assert not result.success
        assert result.code == "VALIDATION_FAILED"
        assert result.message.startswith("timeout must be")
        assert len(keymap) == 0


# ============================================================================
# Login
# ============================================================================


class TestLoginUser:

    @pytest.mark.asyncio
    async def test_login(self, concierge, keymap):
        user = await login_alice(concierge)
        assert user.is_logged_in
        assert user.moniker == "Alice"
        assert user.user_key != "alice"
        assert keymap.get(user.user_key).session_id == user.session_id

    @pytest.mark.asyncio
    async def test_missing_credentials(self, concierge):
        result = await concierge.login_user({"user_id": "alice"})
        assert not result.success
        assert result.message == "Missing user_id or password"
        assert result.code == "VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_unknown_user(self, concierge):
        result = await concierge.login_user({"user_id": "ghost", "password": "pw"})
        assert not result.success
        assert result.message == "User not found"

    @pytest.mark.asyncio
    async def test_wrong_password_relays_auth_message(self, concierge):
        await concierge.add_user(alice())
        result = await concierge.login_user({"user_id": "alice", "password": "nope"})
        assert not result.success
        assert result.code == "AUTH_FAILED"
        assert result.message == "Invalid user_id or password"

    @pytest.mark.asyncio
    async def test_non_string_password(self, concierge, keymap):
        await concierge.add_user(alice())
        result = await concierge.login_user({"user_id": "alice", "password": 12345})
        assert not result.success
        assert result.code == "AUTH_FAILED"
        assert len(keymap) == 0

    @pytest.mark.asyncio
    async def test_invalid_session_timeout(self, concierge, sessions, keymap):
        await concierge.add_user(alice())
        result = await concierge.login_user(ALICE_CREDENTIALS, {"timeout": "x"})
        assert not result.success
        assert result.code == "VALIDATION_FAILED"
        assert len(keymap) == 0

    @pytest.mark.asyncio
    async def test_relogin_replaces_previous_session(self, concierge, sessions, keymap):
        first = await login_alice(concierge)
        second = (await concierge.login_user(ALICE_CREDENTIALS)).user

        assert first.session_id != second.session_id
        assert first.user_key != second.user_key
        with pytest.raises(SessionNotFoundFault):
            await sessions.get(first.session_id)
        # The first key stays until the next synchronization.
        assert first.user_key in keymap

    @pytest.mark.asyncio
    async def test_session_opts(self, concierge, clock):
        user = await login_alice(concierge, timeout=5, data={"theme": "dark", "confirm_password": "x"})
        assert user.get_session_data() == {"theme": "dark"}
        clock.advance(6)
        assert not (await concierge.restore_user(user.user_key)).success

    @pytest.mark.asyncio
    async def test_session_opts_cannot_spoof_owner(self, concierge, sessions):
        user = await login_alice(concierge, data={"user_id": "mallory"})
        assert user.get_session_data() == {}
        assert (await sessions.get(user.session_id)).user_id == "alice"

    @pytest.mark.asyncio
    async def test_indefinite_session(self, auth, sessions, users, clock):
        concierge = Concierge(auth, sessions, users, KeyMap(), session_timeout=None)
        user = await login_alice(concierge)
        clock.advance(10 ** 7)
        assert (await concierge.restore_user(user.user_key)).success


# ============================================================================
# Restore
# ============================================================================


class TestRestoreUser:

    @pytest.mark.asyncio
    async def test_restore_guest(self, concierge):
        guest = (await concierge.checkin_guest()).user
        result = await concierge.restore_user(guest.user_key)
        assert result.success
        assert result.message == "Guest restored"
        assert result.is_guest
        restored = result.user
        assert (restored.user_id, restored.user_key, restored.session_id) == (
            guest.user_id,
            guest.user_key,
            guest.session_id,
        )
        assert restored.is_guest

    @pytest.mark.asyncio
    async def test_restore_logged_in(self, concierge):
        user = await login_alice(concierge)
        result = await concierge.restore_user(user.user_key)
        assert result.success
        assert result.message == "User restored"
        restored = result.user
        assert (restored.user_id, restored.user_key, restored.session_id) == (
            user.user_id,
            user.user_key,
            user.session_id,
        )
        assert restored.is_logged_in
        assert restored.moniker == "Alice"

    @pytest.mark.asyncio
    async def test_restore_sees_saved_session_data(self, concierge):
        guest = (await concierge.checkin_guest()).user
        await guest.update_session_data({"cart": ["x"]})
        restored = (await concierge.restore_user(guest.user_key)).user
        assert restored.get_session_data() == {"cart": ["x"]}

    @pytest.mark.asyncio
    async def test_unknown_key(self, concierge):
        result = await concierge.restore_user("no-such-key")
        assert not result.success
        assert result.message == "user_key not found"
        assert result.code == "USER_KEY_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_empty_key(self, concierge):
        result = await concierge.restore_user("")
        assert not result.success
        assert result.code == "VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_expired_session_removes_key(self, concierge, keymap, clock):
        guest = (await concierge.checkin_guest(timeout=60)).user
        clock.advance(61)
        result = await concierge.restore_user(guest.user_key)
        assert not result.success
        assert result.code == "SESSION_EXPIRED"
        assert guest.user_key not in keymap

    @pytest.mark.asyncio
    async def test_missing_session_removes_key(self, concierge, keymap, sessions):
        guest = (await concierge.checkin_guest()).user
        await sessions.delete(guest.session_id)
        result = await concierge.restore_user(guest.user_key)
        assert result.message == "Session expired"
        assert guest.user_key not in keymap

    @pytest.mark.asyncio
    async def test_orphaned_key_after_relogin(self, concierge, keymap):
        first = await login_alice(concierge)
        await concierge.login_user(ALICE_CREDENTIALS)
        assert not (await concierge.restore_user(first.user_key)).success
        assert first.user_key not in keymap

    @pytest.mark.asyncio
    async def test_store_failure_keeps_key(self, concierge, keymap, sessions, monkeypatch):
        guest = (await concierge.checkin_guest()).user

        async def unavailable(session_id):
            raise StoreUnavailableFault(store_name="session file", cause="io error")

        monkeypatch.setattr(sessions, "get", unavailable)
        result = await concierge.restore_user(guest.user_key)
        assert result.code == "STORE_UNAVAILABLE"
        assert guest.user_key in keymap


# ============================================================================
# Logout
# ============================================================================


class TestLogoutUser:

    @pytest.mark.asyncio
    async def test_logout(self, concierge, keymap, sessions):
        user = await login_alice(concierge)
        result = await concierge.logout_user(user.session_id)
        assert result.success
        assert result.message == "Logout successful"
        assert result.user_id == "alice"
        assert result.session_id == user.session_id
        assert user.user_key not in keymap
        with pytest.raises(SessionNotFoundFault):
            await sessions.get(user.session_id)

    @pytest.mark.asyncio
    async def test_second_logout_fails(self, concierge):
        user = await login_alice(concierge)
        await concierge.logout_user(user.session_id)
        result = await concierge.logout_user(user.session_id)
        assert not result.success
        assert result.message == "Session not found for logout"

    @pytest.mark.asyncio
    async def test_logout_guest(self, concierge, keymap):
        guest = (await concierge.checkin_guest()).user
        assert (await concierge.logout_user(guest.session_id)).success
        assert len(keymap) == 0

    @pytest.mark.asyncio
    async def test_logout_requires_session_id(self, concierge):
        result = await concierge.logout_user("")
        assert not result.success
        assert result.message == "No session provided for logout"


# ============================================================================
# Guest conversion
# ============================================================================


class TestLoginGuest:

    @pytest.mark.asyncio
    async def test_cart_moves_to_new_user(self, concierge, keymap, sessions):
        guest = (await concierge.checkin_guest()).user
        await guest.update_session_data({"cart": ["x"]})

        result = await concierge.login_guest(alice(), guest.user_key)
        assert result.success
        assert result.message == "Guest converted to logged-in user"

        user = result.user
        assert user.is_logged_in
        assert user.user_id == "alice"
        assert user.get_session_data() == {"cart": ["x"]}
        assert (await sessions.get(user.session_id)).get_data() == {"cart": ["x"]}

        with pytest.raises(SessionNotFoundFault):
            await sessions.get(guest.session_id)
        assert guest.user_key not in keymap
        assert user.user_key in keymap

    @pytest.mark.asyncio
    async def test_guest_keys_win(self, concierge):
        guest = (await concierge.checkin_guest()).user
        await guest.update_session_data({"theme": "guest"})

        real_login = concierge._login

        async def login_with_seed(credentials, session_opts=None):
            return await real_login(credentials, {"data": {"theme": "user", "lang": "en"}})

        concierge._login = login_with_seed
        user = (await concierge.login_guest(alice(), guest.user_key)).user
        assert user.get_session_data() == {"theme": "guest", "lang": "en"}

    @pytest.mark.asyncio
    async def test_unknown_guest_key(self, concierge, users):
        result = await concierge.login_guest(alice(), "nope")
        assert not result.success
        assert result.message == "Guest user_key not found"
        assert await users.list() == []

    @pytest.mark.asyncio
    async def test_existing_user_id(self, concierge, keymap):
        await concierge.add_user(alice())
        guest = (await concierge.checkin_guest()).user
        result = await concierge.login_guest(alice(moniker="Other"), guest.user_key)
        assert not result.success
        assert result.code == "USER_EXISTS"
        # The guest keeps their session and key.
        assert guest.user_key in keymap

    @pytest.mark.asyncio
    async def test_missing_password(self, concierge, users):
        guest = (await concierge.checkin_guest()).user
        record = alice()
        del record["password"]
        result = await concierge.login_guest(record, guest.user_key)
        assert result.message == "Missing required field: password"
        assert await users.list() == []

    @pytest.mark.asyncio
    async def test_expired_guest(self, concierge, clock, users):
        guest = (await concierge.checkin_guest(timeout=10)).user
        clock.advance(11)
        result = await concierge.login_guest(alice(), guest.user_key)
        assert not result.success
        assert result.code == "SESSION_EXPIRED"
        assert await users.list() == []

    @pytest.mark.asyncio
    async def test_non_string_password(self, concierge, users, keymap):
        guest = (await concierge.checkin_guest()).user
        result = await concierge.login_guest(alice(password=12345), guest.user_key)
        assert not result.success
        assert result.code == "PASSWORD_REJECTED"
        assert await users.list() == []
        assert guest.user_key in keymap
