"""
context.py - Wiring of the sync client

SyncContext owns one instance of every service for the process and
defines their start/stop order.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..config import Settings
from .api_client import HttpRemoteDataService, RemoteDataService
from .credential_store import CredentialStore
from .event_bus import EventBus
from .local_cache import LocalCache
from .local_db import KeyValueStore, SqliteKeyValueStore
from .models import Identity
from .network_monitor import NetworkMonitor
from .pending_log import PendingOperationLog
from .session_manager import SessionManager
from .sync_engine import SyncEngine

logger = logging.getLogger("SyncContext")


@dataclass
class SyncContext:
    settings: Settings
    store: KeyValueStore
    remote: RemoteDataService
    event_bus: EventBus
    credential_store: CredentialStore
    cache: LocalCache
    pending_log: PendingOperationLog
    monitor: NetworkMonitor
    session: SessionManager
    engine: SyncEngine
    _monitor_task: Optional[asyncio.Task] = field(default=None, repr=False)

    async def start(self, poll: bool = True) -> Optional[Identity]:
        """Subscribe the engine, restore any persisted session, start polling."""
        self.engine.start()
        identity = await self.session.restore_session()
        if identity:
            logger.info(f"Session restored for identity {identity.id}")
        if poll and self._monitor_task is None:
            self._monitor_task = asyncio.create_task(
                self.monitor.run(self.remote.ping, self.settings.probe_interval)
            )
        return identity

    async def close(self):
        self.monitor.stop()
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None
        self.engine.stop()
        await self.event_bus.join()
        await self.remote.close()


def build_context(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    remote: Optional[RemoteDataService] = None,
    initial_reachable: bool = True,
) -> SyncContext:
    settings = settings or Settings()
    store = store if store is not None else SqliteKeyValueStore(settings.db_path)
    remote = remote if remote is not None else HttpRemoteDataService(
        settings.server_url, timeout=settings.request_timeout
    )

    event_bus = EventBus()
    credential_store = CredentialStore(store)
    cache = LocalCache(store)
    pending_log = PendingOperationLog(store)
    monitor = NetworkMonitor(
        event_bus,
        initial_reachable=initial_reachable,
        max_failures_before_offline=settings.max_failures_before_offline,
    )
    session = SessionManager(remote, credential_store, cache, pending_log, event_bus)
    engine = SyncEngine(session, remote, cache, pending_log, monitor, event_bus)

    return SyncContext(
        settings=settings,
        store=store,
        remote=remote,
        event_bus=event_bus,
        credential_store=credential_store,
        cache=cache,
        pending_log=pending_log,
        monitor=monitor,
        session=session,
        engine=engine,
    )
