"""
credential_store.py - Persisted session credential and identity

The credential is an opaque bearer token. Its embedded expiry is read
(never verified) so an expired session can be detected without a
round trip to the remote service.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

import jwt

from .local_db import KeyValueStore
from .models import Identity

logger = logging.getLogger("CredentialStore")

AUTH_TOKEN_KEY = "salesync_auth_token"
AUTH_USER_KEY = "salesync_auth_user"
LAST_IDENTITY_KEY = "salesync_last_identity"


def read_expiry(credential: str) -> Optional[datetime]:
    """Return the credential's 'exp' claim, or None if it has none or is not a JWT."""
    try:
        claims = jwt.decode(credential, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    exp = claims.get("exp")
    if exp is None:
        return None
    try:
        return datetime.fromtimestamp(float(exp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def is_expired(credential: str, now: Optional[datetime] = None) -> bool:
    expiry = read_expiry(credential)
    if expiry is None:
        return False
    return expiry <= (now or datetime.now(timezone.utc))


class CredentialStore:
    """Persists the current credential and identity across restarts."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def save(self, credential: str, identity: Identity):
        # Both keys in one write: never a credential without its identity.
        self.store.set_many({
            AUTH_TOKEN_KEY: credential,
            AUTH_USER_KEY: json.dumps(identity.to_dict()),
        })

    def load(self) -> Optional[Tuple[str, Identity]]:
        """Return (credential, identity), or None unless both are present and readable."""
        credential = self.store.get(AUTH_TOKEN_KEY)
        raw_user = self.store.get(AUTH_USER_KEY)
        if not credential or not raw_user:
            return None
        try:
            identity = Identity.from_dict(json.loads(raw_user))
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Persisted identity unreadable, discarding session: {e}")
            self.clear()
            return None
        return credential, identity

    def clear(self):
        self.store.remove_many([AUTH_TOKEN_KEY, AUTH_USER_KEY])

    # ==================== Last Identity Marker ====================

    def get_last_identity_id(self) -> Optional[int]:
        value = self.store.get(LAST_IDENTITY_KEY)
        try:
            return int(value) if value is not None else None
        except ValueError:
            return None

    def set_last_identity_id(self, identity_id: int):
        self.store.set(LAST_IDENTITY_KEY, str(identity_id))

    def clear_last_identity_id(self):
        self.store.remove(LAST_IDENTITY_KEY)
