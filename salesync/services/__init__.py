"""
Services module for salesync.

Provides the local cache, pending-operation log, session handling,
reachability monitoring and the sync engine.
"""

from .api_client import HttpRemoteDataService, RemoteDataService
from .context import SyncContext, build_context
from .credential_store import CredentialStore
from .event_bus import EventBus
from .local_cache import LocalCache
from .local_db import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from .models import (
    Identity,
    OperationKind,
    PendingOperation,
    Record,
    SyncOutcome,
    SyncReport,
    SyncStatus,
)
from .network_monitor import NetworkMonitor
from .pending_log import PendingOperationLog
from .session_manager import SessionContext, SessionManager
from .sync_engine import SyncEngine

__all__ = [
    'HttpRemoteDataService',
    'RemoteDataService',
    'SyncContext',
    'build_context',
    'CredentialStore',
    'EventBus',
    'LocalCache',
    'KeyValueStore',
    'MemoryKeyValueStore',
    'SqliteKeyValueStore',
    'Identity',
    'OperationKind',
    'PendingOperation',
    'Record',
    'SyncOutcome',
    'SyncReport',
    'SyncStatus',
    'NetworkMonitor',
    'PendingOperationLog',
    'SessionContext',
    'SessionManager',
    'SyncEngine',
]
