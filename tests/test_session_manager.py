"""
Tests for SessionManager: validation, login/logout and session restore.
"""
from datetime import timedelta

import pytest

from salesync.services.credential_store import LAST_IDENTITY_KEY
from salesync.services.errors import (
    AuthRequired,
    IdentityTaken,
    InvalidCredentials,
    ValidationError,
)
from salesync.services.models import Identity, PendingOperation
from salesync.services.pending_log import PENDING_OPS_BACKUP_KEY

from conftest import make_record, make_token


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   ", None])
    async def test_empty_name_rejected_locally(self, session, remote, name):
        with pytest.raises(ValidationError):
            await session.register(name, "secret1")
        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_short_secret_rejected_locally(self, session, remote):
        with pytest.raises(ValidationError):
            await session.login("alice", "12345")
        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_name_is_trimmed(self, session, remote):
        identity = await session.register("  alice ", "secret1")
        assert identity.display_name == "alice"
        assert "alice" in remote.users


class TestRegisterLogin:
    @pytest.mark.asyncio
    async def test_register_starts_session(self, session, context):
        identity = await session.register("alice", "secret1")

        assert session.is_authenticated()
        assert session.identity == identity
        credential, saved = context.credential_store.load()
        assert credential == session.credential
        assert saved == identity

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, session):
        await session.register("alice", "secret1")
        session.logout()
        with pytest.raises(IdentityTaken):
            await session.register("alice", "another1")
        assert not session.is_authenticated()

    @pytest.mark.asyncio
    async def test_login_failures_are_indistinguishable(self, session):
        await session.register("alice", "secret1")
        session.logout()

        with pytest.raises(InvalidCredentials) as wrong_secret:
            await session.login("alice", "wrong-secret")
        with pytest.raises(InvalidCredentials) as unknown_user:
            await session.login("nobody", "secret1")

        assert wrong_secret.value.message == unknown_user.value.message
        assert not session.is_authenticated()

    @pytest.mark.asyncio
    async def test_login_publishes_session_event(self, session, context):
        seen = []
        context.event_bus.subscribe("session", seen.append)
        identity = await session.register("alice", "secret1")
        assert seen == [{"event": "login", "identity_id": identity.id}]

    def test_require_identity_without_session(self, session):
        with pytest.raises(AuthRequired):
            session.require_identity()


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_erases_local_data(self, session, context, store):
        identity = await session.register("alice", "secret1")
        context.cache.cache_data(identity.id, [make_record("m1")])
        context.pending_log.append(PendingOperation.delete("m2", identity.id))
        store.set(PENDING_OPS_BACKUP_KEY, "[unreadable")

        session.logout()

        assert not session.is_authenticated()
        assert context.credential_store.load() is None
        assert context.cache.get_cached_data(identity.id) == []
        assert context.pending_log.count() == 0
        assert store.get(LAST_IDENTITY_KEY) is None
        assert store.get(PENDING_OPS_BACKUP_KEY) is None

    def test_logout_without_session_never_fails(self, session):
        session.logout()
        assert not session.is_authenticated()

    @pytest.mark.asyncio
    async def test_next_identity_sees_nothing(self, session, context):
        alice = await session.register("alice", "secret1")
        context.cache.cache_data(alice.id, [make_record("m1")])
        session.logout()

        bob = await session.register("bob", "secret1")
        assert context.cache.get_cached_data(bob.id) == []
        assert context.cache.get_cached_data(alice.id) == []


class TestIdentitySwitch:
    @pytest.mark.asyncio
    async def test_switch_without_logout_erases_previous_data(self, session, context):
        alice = await session.register("alice", "secret1")
        context.cache.cache_data(alice.id, [make_record("m1")])
        context.pending_log.append(PendingOperation.delete("m1", alice.id))

        # invalidate keeps local data, so the next login must do the erase
        session.invalidate("token rejected")
        await session.register("bob", "secret1")

        assert context.cache.get_cached_data(alice.id) == []
        assert context.pending_log.count() == 0

    @pytest.mark.asyncio
    async def test_same_identity_keeps_data_across_invalidation(self, session, context):
        alice = await session.register("alice", "secret1")
        context.cache.cache_data(alice.id, [make_record("m1")])
        context.pending_log.append(PendingOperation.delete("m1", alice.id))

        session.invalidate("token rejected")
        assert not session.is_authenticated()
        await session.login("alice", "secret1")

        assert [r.record_id for r in context.cache.get_cached_data(alice.id)] == ["m1"]
        assert context.pending_log.count() == 1


class TestRestore:
    @pytest.mark.asyncio
    async def test_nothing_persisted(self, session, remote):
        assert await session.restore_session() is None
        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_restores_valid_session(self, session, context):
        identity = await session.register("alice", "secret1")
        credential = session.credential
        session.context.clear()

        restored = await session.restore_session()

        assert restored == identity
        assert session.credential == credential
        assert session.is_authenticated()

    @pytest.mark.asyncio
    async def test_expired_credential_cleared_without_round_trip(self, session, context, remote):
        identity = Identity(7, "alice")
        context.credential_store.save(make_token(7, "alice", timedelta(seconds=-1)), identity)

        assert await session.restore_session() is None
        assert context.credential_store.load() is None
        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_rejected_credential_cleared(self, session, context, remote):
        await session.register("alice", "secret1")
        remote.revoked.add(session.credential)
        session.context.clear()

        assert await session.restore_session() is None
        assert context.credential_store.load() is None
        assert not session.is_authenticated()

    @pytest.mark.asyncio
    async def test_unreachable_remote_restores_offline(self, session, context, remote):
        identity = await session.register("alice", "secret1")
        session.context.clear()
        remote.unavailable = True

        assert await session.restore_session() == identity
        assert session.is_authenticated()

    @pytest.mark.asyncio
    async def test_context_start_restores_session(self, session, context):
        identity = await session.register("alice", "secret1")
        session.context.clear()

        assert await context.start(poll=False) == identity
        await context.close()
