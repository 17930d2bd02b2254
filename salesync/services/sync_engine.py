"""
sync_engine.py - Offline-first Sync Engine

This module routes every mutation and read either to the remote service
or to the local cache, queues mutations that cannot be delivered, and
replays the queue in order when the connection is restored.

Operations for the active identity never interleave: each one holds a
single asyncio.Lock for its whole read-modify-write of cache and log.
Reconnect-triggered replays queue behind any in-flight operation.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from .api_client import RemoteDataService
from .errors import (
    AuthRequired,
    NotAuthorizedForResource,
    OfflineNoCache,
    RecordNotFound,
    RemoteRejected,
    RemoteUnavailable,
    SaleSyncError,
    SessionEnded,
    SessionExpired,
)
from .event_bus import REACHABILITY, SESSION, SYNC_STATUS, EventBus
from .local_cache import LocalCache
from .models import (
    Identity,
    OperationKind,
    PendingOperation,
    Record,
    SyncOutcome,
    SyncReport,
    SyncStatus,
    utcnow,
)
from .network_monitor import NetworkMonitor
from .pending_log import PendingOperationLog
from .session_manager import SessionManager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("SyncEngine")


def _upsert_into(records: List[Record], record: Record) -> List[Record]:
    """Return a new list with record replacing the entry of the same id (or appended)."""
    result = []
    replaced = False
    for existing in records:
        if existing.record_id == record.record_id:
            result.append(record)
            replaced = True
        else:
            result.append(existing)
    if not replaced:
        result.append(record)
    return result


def _remove_from(records: List[Record], record_id: str) -> List[Record]:
    return [r for r in records if r.record_id != record_id]


class SyncEngine:
    """
    Keeps the local cache and the remote service consistent.

    Status transitions: idle -> syncing -> {idle, error}. Whenever the
    monitor reports the remote unreachable the status reads 'offline'.
    """

    def __init__(
        self,
        session: SessionManager,
        remote: RemoteDataService,
        cache: LocalCache,
        pending_log: PendingOperationLog,
        monitor: NetworkMonitor,
        event_bus: Optional[EventBus] = None,
    ):
        self.session = session
        self.remote = remote
        self.cache = cache
        self.pending_log = pending_log
        self.monitor = monitor
        self.event_bus = event_bus or monitor.event_bus or EventBus()
        if monitor.event_bus is None:
            monitor.event_bus = self.event_bus

        self._status = SyncStatus.IDLE if monitor.is_reachable() else SyncStatus.OFFLINE
        self._lock = asyncio.Lock()
        self.last_sync_time: Optional[datetime] = None
        self._unsubscribers: List[Callable[[], None]] = []

    # ==================== Lifecycle ====================

    def start(self):
        """Subscribe to reachability and session events. Idempotent."""
        if self._unsubscribers:
            return
        self._unsubscribers = [
            self.event_bus.subscribe(REACHABILITY, self._on_reachability_changed),
            self.event_bus.subscribe(REACHABILITY, self._on_reconnect),
            self.event_bus.subscribe(SESSION, self._on_session_event),
        ]
        logger.info("SyncEngine started")

    def stop(self):
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # ==================== Status ====================

    @property
    def status(self) -> SyncStatus:
        if not self.monitor.is_reachable():
            return SyncStatus.OFFLINE
        return self._status

    def _set_status(self, status: SyncStatus):
        if not self.monitor.is_reachable():
            status = SyncStatus.OFFLINE
        if status is self._status:
            return
        previous = self._status
        self._status = status
        logger.info(f"Sync status: {previous.value} -> {status.value}")
        self.event_bus.publish(SYNC_STATUS, {
            "status": status.value,
            "previous": previous.value,
        })

    def _mark_synced(self):
        self.last_sync_time = utcnow()
        self._set_status(SyncStatus.IDLE)

    def get_sync_status(self) -> Dict:
        return {
            "status": self.status.value,
            "is_syncing": self._lock.locked(),
            "pending_count": self.pending_log.count(),
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "online": self.monitor.is_reachable(),
        }

    # ==================== Event Handlers ====================

    def _on_reachability_changed(self, payload: Dict):
        if payload.get("reachable"):
            self._set_status(SyncStatus.IDLE)
        else:
            self._set_status(SyncStatus.OFFLINE)

    async def _on_reconnect(self, payload: Dict):
        if not payload.get("reachable"):
            return
        if not self.session.is_authenticated():
            logger.info("Reconnect detected, no active session - nothing to replay")
            return
        logger.info("Reconnect detected - replaying pending operations")
        try:
            await self.sync_pending_operations()
        except (AuthRequired, SessionEnded) as e:
            logger.warning(f"Replay stopped: {e.message}")

    def _on_session_event(self, payload: Dict):
        if payload.get("event") == "logout":
            self.last_sync_time = None
            self._set_status(SyncStatus.IDLE)

    # ==================== Helpers ====================

    def _live_credential(self) -> str:
        """Credential for a remote call; expired ones fail without a round trip."""
        credential = self.session.credential
        if credential is None:
            raise AuthRequired()
        if self.session.credential_expired():
            raise SessionExpired()
        return credential

    async def _call_remote(self, generation: int, awaitable: Awaitable):
        """
        Await a remote call on behalf of the session `generation`.

        If that session ended while the call was in flight, whatever the
        call returned or raised is replaced by SessionEnded so no local
        state is written for an identity that is gone.
        """
        try:
            return await awaitable
        finally:
            if self.session.generation != generation:
                logger.warning("Session ended during a remote call; discarding its result")
                raise SessionEnded()

    def _fail_auth(self, error: AuthRequired):
        self._set_status(SyncStatus.ERROR)
        self.session.invalidate(error.message)

    def _cached_or_raise(self, identity: Identity) -> List[Record]:
        records = self.cache.get_cached_data(identity.id)
        if not records:
            raise OfflineNoCache()
        logger.info(f"Serving {len(records)} cached records")
        return records

    # ==================== Session ====================

    async def logout(self):
        """Log out once any in-flight operation has finished."""
        async with self._lock:
            self.session.logout()

    # ==================== Upload ====================

    async def upload_record(self, record: Record) -> SyncOutcome:
        """
        Save a record locally and push it to the remote service.

        The cache is updated first. When the remote is unreachable the
        upload is queued for replay instead.

        Args:
            record: Record to upsert, keyed by record_id

        Returns:
            SyncOutcome; deferred=True means saved locally only

        Raises:
            AuthRequired: No session, or the remote rejected the credential
            RemoteRejected: The remote refused the record (cache rolled back)
            SessionEnded: Logged out while the upload was in flight
        """
        async with self._lock:
            identity = self.session.require_identity()
            return await self._upload(identity, self.session.generation, record)

    async def _upload(self, identity: Identity, generation: int, record: Record) -> SyncOutcome:
        previous = self.cache.get_cached_data(identity.id)
        self.cache.cache_data(identity.id, _upsert_into(previous, record))
        operation = PendingOperation.upload(record, identity.id)

        if not self.monitor.is_reachable():
            self.pending_log.append(operation)
            self._set_status(SyncStatus.OFFLINE)
            return SyncOutcome.saved_locally(record.record_id)

        self._set_status(SyncStatus.SYNCING)
        try:
            remote_id = await self._call_remote(
                generation, self.remote.upsert_record(self._live_credential(), record)
            )
        except RemoteUnavailable as e:
            logger.warning(f"Upload of '{record.record_id}' deferred: {e.message}")
            self.pending_log.append(operation)
            self._set_status(SyncStatus.ERROR)
            return SyncOutcome.saved_locally(record.record_id, "remote unavailable")
        except AuthRequired as e:
            self.pending_log.append(operation)
            self._fail_auth(e)
            raise
        except (RemoteRejected, NotAuthorizedForResource) as e:
            logger.error(f"Upload of '{record.record_id}' rejected: {e.message}")
            self.cache.cache_data(identity.id, previous)
            self._set_status(SyncStatus.ERROR)
            raise

        if isinstance(remote_id, int) and remote_id != record.remote_id:
            synced = replace(record, remote_id=remote_id)
            self.cache.cache_data(identity.id, _upsert_into(previous, synced))
        self._mark_synced()
        return SyncOutcome.synced(record.record_id)

    # ==================== Delete ====================

    async def delete_record(self, record_id: str) -> SyncOutcome:
        """
        Remove a record locally and from the remote service.

        A record already absent remotely counts as deleted.

        Args:
            record_id: Key of the record to delete

        Returns:
            SyncOutcome; deferred=True means queued for replay

        Raises:
            AuthRequired: No session, or the remote rejected the credential
            NotAuthorizedForResource: The record belongs to someone else
            SessionEnded: Logged out while the delete was in flight
        """
        async with self._lock:
            identity = self.session.require_identity()
            return await self._delete(identity, self.session.generation, record_id)

    async def _delete(self, identity: Identity, generation: int, record_id: str) -> SyncOutcome:
        previous = self.cache.get_cached_data(identity.id)
        self.cache.cache_data(identity.id, _remove_from(previous, record_id))
        operation = PendingOperation.delete(record_id, identity.id)

        if not self.monitor.is_reachable():
            self.pending_log.append(operation)
            self._set_status(SyncStatus.OFFLINE)
            return SyncOutcome.saved_locally(record_id)

        self._set_status(SyncStatus.SYNCING)
        try:
            await self._call_remote(
                generation, self.remote.delete_record(self._live_credential(), record_id)
            )
        except RecordNotFound:
            logger.info(f"Record '{record_id}' already absent remotely")
        except RemoteUnavailable as e:
            logger.warning(f"Delete of '{record_id}' deferred: {e.message}")
            self.pending_log.append(operation)
            self._set_status(SyncStatus.ERROR)
            return SyncOutcome.saved_locally(record_id, "remote unavailable")
        except AuthRequired as e:
            self.pending_log.append(operation)
            self._fail_auth(e)
            raise
        except (RemoteRejected, NotAuthorizedForResource) as e:
            logger.error(f"Delete of '{record_id}' rejected: {e.message}")
            self.cache.cache_data(identity.id, previous)
            self._set_status(SyncStatus.ERROR)
            raise

        self._mark_synced()
        return SyncOutcome.synced(record_id)

    # ==================== Download ====================

    async def download_all_data(self) -> List[Record]:
        """
        Fetch the identity's full record set.

        A successful remote read replaces the cache wholesale (cloud wins).
        Offline or on remote failure the cached set is returned instead.

        Returns:
            List of Record for the active identity

        Raises:
            AuthRequired: No session, or the remote rejected the credential
            OfflineNoCache: Remote not usable and nothing cached
            SessionEnded: Logged out while the download was in flight
        """
        async with self._lock:
            identity = self.session.require_identity()
            generation = self.session.generation

            if not self.monitor.is_reachable():
                self._set_status(SyncStatus.OFFLINE)
                return self._cached_or_raise(identity)

            self._set_status(SyncStatus.SYNCING)
            try:
                records = await self._call_remote(
                    generation, self.remote.list_records(self._live_credential())
                )
            except AuthRequired as e:
                self._fail_auth(e)
                raise
            except (RemoteUnavailable, RemoteRejected, NotAuthorizedForResource) as e:
                logger.warning(f"Download failed, falling back to cache: {e.message}")
                self._set_status(SyncStatus.ERROR)
                return self._cached_or_raise(identity)

            self.cache.cache_data(identity.id, records)
            self._mark_synced()
            logger.info(f"Downloaded {len(records)} records for identity {identity.id}")
            return records

    # ==================== Replay ====================

    async def sync_pending_operations(self) -> SyncReport:
        """
        Replay the pending log against the remote service in enqueue order.

        The log is cleared only if every replayed operation succeeded;
        otherwise it is left intact for the next attempt. Operations
        queued by another identity are never sent.

        Returns:
            SyncReport with synced/failed counts (skipped=True when offline)

        Raises:
            AuthRequired: No session, or the remote rejected the credential
            SessionEnded: Logged out while the replay was in flight
        """
        if not self.monitor.is_reachable():
            return SyncReport(skipped=True)

        async with self._lock:
            identity = self.session.require_identity()
            generation = self.session.generation
            if not self.monitor.is_reachable():
                return SyncReport(skipped=True)

            operations = self.pending_log.drain()
            if not operations:
                return SyncReport()

            owned = [op for op in operations if op.identity_id in (None, identity.id)]
            if len(owned) != len(operations):
                logger.warning(
                    f"Ignoring {len(operations) - len(owned)} operations queued by another identity"
                )

            logger.info(f"Replaying {len(owned)} pending operations...")
            self._set_status(SyncStatus.SYNCING)
            synced = failed = 0

            for operation in owned:
                try:
                    await self._replay(generation, operation)
                    synced += 1
                except SessionEnded:
                    raise
                except AuthRequired as e:
                    self._fail_auth(e)
                    raise
                except SaleSyncError as e:
                    failed += 1
                    logger.error(
                        f"Replay of {operation.kind.value} '{operation.record_id}' failed: {e.message}"
                    )

            if failed == 0:
                self.pending_log.clear()
                self._mark_synced()
            else:
                self._set_status(SyncStatus.ERROR)

            logger.info(f"Replay complete: {synced} synced, {failed} failed")
            return SyncReport(synced=synced, failed=failed)

    async def _replay(self, generation: int, operation: PendingOperation):
        credential = self._live_credential()
        if operation.kind is OperationKind.UPLOAD:
            await self._call_remote(
                generation, self.remote.upsert_record(credential, operation.payload)
            )
            return
        try:
            await self._call_remote(
                generation, self.remote.delete_record(credential, operation.payload)
            )
        except RecordNotFound:
            pass
