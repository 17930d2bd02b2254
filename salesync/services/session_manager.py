"""
session_manager.py - Identity and credential lifecycle

SessionManager owns the current credential/identity pair (held in a
SessionContext), gates every sync operation on it, and erases all local
data belonging to an identity when that identity logs out.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .api_client import RemoteDataService
from .credential_store import CredentialStore, is_expired
from .errors import AuthRequired, RemoteRejected, RemoteUnavailable, ValidationError
from .event_bus import SESSION, EventBus
from .local_cache import LocalCache
from .models import Identity
from .pending_log import PendingOperationLog

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("SessionManager")

MIN_SECRET_LENGTH = 6


def validate_username(name) -> str:
    """Return the trimmed name, or raise ValidationError."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Please enter a valid username")
    return name.strip()


def validate_password(secret) -> str:
    if not isinstance(secret, str) or len(secret) < MIN_SECRET_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_SECRET_LENGTH} characters")
    return secret


@dataclass
class SessionContext:
    """Credential and identity, always set and cleared together."""
    credential: Optional[str] = None
    identity: Optional[Identity] = None
    # bumped on every set/clear so in-flight work can tell its session ended
    generation: int = 0

    def set(self, credential: str, identity: Identity):
        self.credential, self.identity = credential, identity
        self.generation += 1

    def clear(self):
        self.credential, self.identity = None, None
        self.generation += 1

    @property
    def is_authenticated(self) -> bool:
        return self.credential is not None and self.identity is not None


class SessionManager:

    def __init__(
        self,
        remote: RemoteDataService,
        credential_store: CredentialStore,
        cache: LocalCache,
        pending_log: PendingOperationLog,
        event_bus: Optional[EventBus] = None,
        context: Optional[SessionContext] = None,
    ):
        self.remote = remote
        self.credential_store = credential_store
        self.cache = cache
        self.pending_log = pending_log
        self.event_bus = event_bus
        self.context = context or SessionContext()

    # ==================== Queries ====================

    def is_authenticated(self) -> bool:
        return self.context.is_authenticated

    @property
    def identity(self) -> Optional[Identity]:
        return self.context.identity

    @property
    def credential(self) -> Optional[str]:
        return self.context.credential

    @property
    def generation(self) -> int:
        return self.context.generation

    def require_identity(self) -> Identity:
        """
        Return the active identity.

        Raises:
            AuthRequired: If no session is active
        """
        if not self.context.is_authenticated:
            raise AuthRequired()
        return self.context.identity

    def credential_expired(self) -> bool:
        return self.context.credential is not None and is_expired(self.context.credential)

    # ==================== Lifecycle ====================

    async def register(self, name: str, secret: str) -> Identity:
        """
        Create a remote identity and start a session for it.

        Args:
            name: Username, trimmed before use
            secret: Password of at least MIN_SECRET_LENGTH characters

        Returns:
            The new Identity

        Raises:
            ValidationError: Bad input, nothing sent to the remote service
            IdentityTaken: The name is already registered
        """
        name = validate_username(name)
        secret = validate_password(secret)
        # IdentityTaken and other remote errors propagate untouched
        credential, identity = await self.remote.register(name, secret)
        self._begin_session(credential, identity)
        logger.info(f"Registered identity {identity.id}")
        self._publish("login", identity)
        return identity

    async def login(self, name: str, secret: str) -> Identity:
        """
        Start a session for an existing identity.

        Args:
            name: Username, trimmed before use
            secret: Password

        Raises:
            InvalidCredentials: Unknown name or wrong password (indistinguishable)
        """
        name = validate_username(name)
        secret = validate_password(secret)
        credential, identity = await self.remote.login(name, secret)
        self._begin_session(credential, identity)
        logger.info(f"Identity {identity.id} logged in")
        self._publish("login", identity)
        return identity

    def logout(self):
        """
        Clear the session and every piece of local data. Never fails.

        Engine operations still in flight see the session generation
        change and drop their local writes; SyncEngine.logout() also
        waits for them to finish first.
        """
        identity = self.context.identity
        self.context.clear()
        self.credential_store.clear()
        self.credential_store.clear_last_identity_id()
        if identity is not None:
            self.cache.clear_user_cache(identity.id)
        self.cache.clear_all_cache()
        self.pending_log.clear(include_backup=True)
        logger.info("Logged out, local data erased")
        self._publish("logout", identity)

    def invalidate(self, reason: str = ""):
        """
        Force a re-login after the remote service rejected the credential.

        Cache and pending log are kept so the same identity can resume.
        """
        identity = self.context.identity
        self.context.clear()
        self.credential_store.clear()
        logger.warning(f"Session invalidated: {reason}")
        self._publish("invalidated", identity)

    async def restore_session(self) -> Optional[Identity]:
        """Restore a persisted session on start. One round trip at most, no retries."""
        saved = self.credential_store.load()
        if saved is None:
            return None
        credential, saved_identity = saved

        if is_expired(credential):
            logger.info("Persisted credential expired")
            self.credential_store.clear()
            return None

        try:
            identity = await self.remote.validate_credential(credential)
        except RemoteUnavailable as e:
            # Offline start: trust the unexpired persisted session.
            logger.warning(f"Could not validate session ({e.message}); restoring offline")
            identity = saved_identity
        except (AuthRequired, RemoteRejected) as e:
            logger.info(f"Persisted session rejected: {e.message}")
            self.credential_store.clear()
            return None

        self._begin_session(credential, identity)
        self._publish("restored", identity)
        return identity

    # ==================== Internals ====================

    def _begin_session(self, credential: str, identity: Identity):
        last_id = self.credential_store.get_last_identity_id()
        if last_id is not None and last_id != identity.id:
            logger.info(f"Identity changed ({last_id} -> {identity.id}); erasing local data")
            self.cache.clear_all_cache()
            self.pending_log.clear(include_backup=True)
        self.context.set(credential, identity)
        self.credential_store.save(credential, identity)
        self.credential_store.set_last_identity_id(identity.id)

    def _publish(self, event: str, identity: Optional[Identity]):
        if self.event_bus is not None:
            self.event_bus.publish(SESSION, {
                "event": event,
                "identity_id": identity.id if identity else None,
            })
