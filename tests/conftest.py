"""Shared test fixtures."""
import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import jwt
import pytest

from salesync.config import Settings
from salesync.services import MemoryKeyValueStore, Record, build_context
from salesync.services.api_client import RemoteDataService
from salesync.services.errors import (
    AuthRequired,
    IdentityTaken,
    InvalidCredentials,
    RecordNotFound,
    RemoteUnavailable,
    SessionExpired,
)
from salesync.services.models import Identity

TOKEN_SECRET = "test-signing-secret"


def make_token(identity_id: int, username: str, expires_in: timedelta = timedelta(days=7)) -> str:
    exp = datetime.now(timezone.utc) + expires_in
    return jwt.encode(
        {"id": identity_id, "username": username, "exp": exp},
        TOKEN_SECRET,
        algorithm="HS256",
    )


def make_record(record_id: str = "m1", name: str = "Jan", **kwargs) -> Record:
    return Record(record_id=record_id, display_name=name, **kwargs)


class FakeRemoteDataService(RemoteDataService):
    """
    In-memory stand-in for the remote service.

    unavailable=True makes every call fail like a dead network; errors
    maps a method name to an exception raised on each call to it.
    """

    def __init__(self):
        self.users: Dict[str, tuple] = {}
        self.records: Dict[int, Dict[str, Record]] = {}
        self.revoked = set()
        self.unavailable = False
        self.errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_user_id = 1
        self._next_row_id = 1

    async def _enter(self, method: str, *args):
        self.calls.append((method,) + args)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if self.unavailable:
            raise RemoteUnavailable("Network error: connection refused")
        if method in self.errors:
            raise self.errors[method]

    def _identity_for(self, credential: str) -> Identity:
        if credential in self.revoked:
            raise AuthRequired("Token invalid")
        try:
            claims = jwt.decode(credential, TOKEN_SECRET, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            raise SessionExpired()
        except jwt.InvalidTokenError:
            raise AuthRequired("Token invalid")
        return Identity(claims["id"], claims["username"])

    def listed(self, identity_id: int) -> List[str]:
        return list(self.records.get(identity_id, {}))

    async def register(self, name, secret):
        await self._enter("register", name)
        if name in self.users:
            raise IdentityTaken()
        identity = Identity(self._next_user_id, name)
        self._next_user_id += 1
        self.users[name] = (identity, secret)
        return make_token(identity.id, name), identity

    async def login(self, name, secret):
        await self._enter("login", name)
        user = self.users.get(name)
        if user is None or user[1] != secret:
            raise InvalidCredentials()
        identity = user[0]
        return make_token(identity.id, name), identity

    async def validate_credential(self, credential):
        await self._enter("validate_credential")
        return self._identity_for(credential)

    async def list_records(self, credential):
        await self._enter("list_records")
        identity = self._identity_for(credential)
        return list(self.records.get(identity.id, {}).values())

    async def upsert_record(self, credential, record):
        await self._enter("upsert_record", record.record_id)
        identity = self._identity_for(credential)
        bucket = self.records.setdefault(identity.id, {})
        existing = bucket.get(record.record_id)
        if existing is not None:
            row_id = existing.remote_id
        else:
            row_id = self._next_row_id
            self._next_row_id += 1
        bucket[record.record_id] = replace(record, remote_id=row_id)
        return row_id

    async def delete_record(self, credential, record_id):
        await self._enter("delete_record", record_id)
        identity = self._identity_for(credential)
        bucket = self.records.get(identity.id, {})
        if record_id not in bucket:
            raise RecordNotFound()
        del bucket[record_id]

    async def ping(self):
        return not self.unavailable


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def remote():
    return FakeRemoteDataService()


@pytest.fixture
def context(store, remote):
    ctx = build_context(Settings(), store=store, remote=remote)
    ctx.engine.start()
    return ctx


@pytest.fixture
def session(context):
    return context.session


@pytest.fixture
def engine(context):
    return context.engine


@pytest.fixture
def monitor(context):
    return context.monitor
