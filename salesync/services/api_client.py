"""
api_client.py - Remote Data Service client

RemoteDataService is the contract the sync engine and session manager
consume. HttpRemoteDataService implements it over the remote REST API
with aiohttp; every call carries a timeout, and timeouts are reported
exactly like network failures.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import aiohttp

from .credential_store import is_expired
from .errors import (
    AuthRequired,
    IdentityTaken,
    InvalidCredentials,
    NotAuthorizedForResource,
    RecordNotFound,
    RemoteRejected,
    RemoteUnavailable,
    SessionExpired,
)
from .models import Identity, Record

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("RemoteClient")


class RemoteDataService:
    """
    Contract of the remote data service.

    Successful calls return values; failures raise SaleSyncError
    subclasses (RemoteUnavailable for network/timeout/5xx).
    """

    async def register(self, name: str, secret: str) -> Tuple[str, Identity]:
        raise NotImplementedError

    async def login(self, name: str, secret: str) -> Tuple[str, Identity]:
        raise NotImplementedError

    async def validate_credential(self, credential: str) -> Identity:
        raise NotImplementedError

    async def list_records(self, credential: str) -> List[Record]:
        raise NotImplementedError

    async def upsert_record(self, credential: str, record: Record) -> Optional[int]:
        raise NotImplementedError

    async def delete_record(self, credential: str, record_id: str):
        raise NotImplementedError

    async def ping(self) -> bool:
        raise NotImplementedError

    async def close(self):
        pass


class HttpRemoteDataService(RemoteDataService):

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

        logger.info(f"Remote client initialized with endpoint: {self.base_url}")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        credential: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Dict[str, Any]]:
        """Send one request; return (status, json body). Only transport failures raise here."""
        url = f"{self.base_url}{path}"
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        try:
            async with self._get_session().request(
                method,
                url,
                json=payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
                status = response.status
        except asyncio.TimeoutError:
            logger.error(f"{method} {path} timed out")
            raise RemoteUnavailable("Request timed out")
        except aiohttp.ClientError as e:
            logger.error(f"{method} {path} connection error: {e}")
            raise RemoteUnavailable(f"Network error: {e}")

        if not isinstance(body, dict):
            body = {}
        if status >= 500:
            logger.error(f"{method} {path} failed with HTTP {status}")
            raise RemoteUnavailable(body.get("error") or f"HTTP {status}")
        return status, body

    @staticmethod
    def _raise_for_status(status: int, body: Dict[str, Any], credential: Optional[str] = None):
        if 200 <= status < 300 and body.get("success", True):
            return
        message = body.get("error")
        if status == 401:
            if credential and is_expired(credential):
                raise SessionExpired()
            raise AuthRequired(message)
        if status == 403:
            raise NotAuthorizedForResource(message)
        if status == 404:
            raise RecordNotFound(message)
        if status == 409:
            raise IdentityTaken(message)
        raise RemoteRejected(message or f"HTTP {status}")

    @staticmethod
    def _parse_session(body: Dict[str, Any]) -> Tuple[str, Identity]:
        token = body.get("token")
        user = body.get("user")
        if not token or not isinstance(user, dict):
            raise RemoteRejected("Malformed session response")
        return token, Identity.from_dict(user)

    # ==================== Sessions ====================

    async def register(self, name: str, secret: str) -> Tuple[str, Identity]:
        status, body = await self._request(
            "POST", "/auth/register", payload={"username": name, "password": secret}
        )
        self._raise_for_status(status, body)
        return self._parse_session(body)

    async def login(self, name: str, secret: str) -> Tuple[str, Identity]:
        status, body = await self._request(
            "POST", "/auth/login", payload={"username": name, "password": secret}
        )
        if not (200 <= status < 300 and body.get("success", True)):
            # unknown user and wrong password look the same to the caller
            raise InvalidCredentials()
        return self._parse_session(body)

    async def validate_credential(self, credential: str) -> Identity:
        status, body = await self._request("GET", "/auth/me", credential=credential)
        self._raise_for_status(status, body, credential)
        user = body.get("user")
        if not isinstance(user, dict):
            raise RemoteRejected("Malformed identity response")
        return Identity.from_dict(user)

    # ==================== Records ====================

    async def list_records(self, credential: str) -> List[Record]:
        status, body = await self._request("GET", "/data", credential=credential)
        self._raise_for_status(status, body, credential)
        return [Record.from_dict(item) for item in body.get("data") or []]

    async def upsert_record(self, credential: str, record: Record) -> Optional[int]:
        status, body = await self._request(
            "POST", "/data", credential=credential, payload=record.to_dict()
        )
        self._raise_for_status(status, body, credential)
        logger.info(f"Record '{record.record_id}' upserted")
        return body.get("id")

    async def delete_record(self, credential: str, record_id: str):
        status, body = await self._request(
            "DELETE", f"/data/{quote(record_id, safe='')}", credential=credential
        )
        self._raise_for_status(status, body, credential)
        logger.info(f"Record '{record_id}' deleted")

    # ==================== Health ====================

    async def ping(self) -> bool:
        try:
            status, _ = await self._request("GET", "/health")
        except RemoteUnavailable:
            return False
        return 200 <= status < 300
