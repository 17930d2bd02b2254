"""
models.py - Core data types for the sync client

Identity, Record and PendingOperation are plain dataclasses with
to_dict()/from_dict() helpers that produce the JSON form used both on
the wire and in the local key-value store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

DEFAULT_COLOR = "#4A90A4"


class SyncStatus(Enum):
    """Synchronization phase, consumed read-only by presentation code."""
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


class OperationKind(Enum):
    UPLOAD = "upload"
    DELETE = "delete"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO-8601 (None passes through)."""
    if value is None:
        return None
    return value.isoformat()


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 string back into a datetime.

    Accepts datetimes unchanged, a trailing 'Z' for UTC and the
    'YYYY-MM-DD HH:MM:SS' form the remote service emits.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass(frozen=True)
class Identity:
    """The authenticated owner of a set of records."""
    id: int
    display_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.display_name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        return cls(id=int(data["id"]), display_name=str(data.get("username", "")))


@dataclass
class Record:
    """One period's worth of business data, upsertable by (identity, record_id)."""
    record_id: str
    display_name: str
    color_tag: str = DEFAULT_COLOR
    config: Any = field(default_factory=dict)
    grouped_payload: Any = field(default_factory=list)
    raw_payload: Any = field(default_factory=list)
    imported_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    remote_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "monthId": self.record_id,
            "monthName": self.display_name,
            "color": self.color_tag,
            "config": self.config,
            "groupedData": self.grouped_payload,
            "rawData": self.raw_payload,
            "importedAt": format_datetime(self.imported_at),
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
        }
        if self.remote_id is not None:
            data["id"] = self.remote_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        remote_id = data.get("id")
        return cls(
            record_id=str(data["monthId"]),
            display_name=str(data.get("monthName", "")),
            color_tag=data.get("color") or DEFAULT_COLOR,
            config=data.get("config") if data.get("config") is not None else {},
            grouped_payload=data.get("groupedData") if data.get("groupedData") is not None else [],
            raw_payload=data.get("rawData") if data.get("rawData") is not None else [],
            imported_at=parse_datetime(data.get("importedAt")),
            created_at=parse_datetime(data.get("createdAt")),
            updated_at=parse_datetime(data.get("updatedAt")),
            remote_id=int(remote_id) if remote_id is not None else None,
        )


@dataclass(frozen=True)
class PendingOperation:
    """A mutation waiting for remote confirmation."""
    kind: OperationKind
    payload: Union[Record, str]
    identity_id: Optional[int] = None
    enqueued_at: datetime = field(default_factory=utcnow)

    @classmethod
    def upload(cls, record: Record, identity_id: Optional[int] = None) -> "PendingOperation":
        return cls(OperationKind.UPLOAD, record, identity_id)

    @classmethod
    def delete(cls, record_id: str, identity_id: Optional[int] = None) -> "PendingOperation":
        return cls(OperationKind.DELETE, record_id, identity_id)

    @property
    def record_id(self) -> str:
        if isinstance(self.payload, Record):
            return self.payload.record_id
        return self.payload

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.kind.value,
            "identityId": self.identity_id,
            "timestamp": format_datetime(self.enqueued_at),
        }
        if self.kind is OperationKind.UPLOAD:
            data["data"] = self.payload.to_dict()
        else:
            data["monthId"] = self.payload
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingOperation":
        kind = OperationKind(data["type"])
        if kind is OperationKind.UPLOAD:
            payload: Union[Record, str] = Record.from_dict(data["data"])
        else:
            payload = str(data["monthId"])
        identity_id = data.get("identityId")
        return cls(
            kind=kind,
            payload=payload,
            identity_id=int(identity_id) if identity_id is not None else None,
            enqueued_at=parse_datetime(data.get("timestamp")) or utcnow(),
        )


@dataclass(frozen=True)
class SyncOutcome:
    """
    Result of a mutation.

    ok is True for both outcomes; deferred tells the caller the change is
    only saved locally and will reach the remote service on replay.
    """
    ok: bool
    deferred: bool
    record_id: Optional[str] = None
    message: str = ""

    @classmethod
    def synced(cls, record_id: str) -> "SyncOutcome":
        return cls(ok=True, deferred=False, record_id=record_id, message="Synced")

    @classmethod
    def saved_locally(cls, record_id: str, reason: str = "offline") -> "SyncOutcome":
        return cls(
            ok=True,
            deferred=True,
            record_id=record_id,
            message=f"Saved locally ({reason}), will sync when online",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.ok,
            "deferred": self.deferred,
            "record_id": self.record_id,
            "message": self.message,
        }


@dataclass(frozen=True)
class SyncReport:
    synced: int = 0
    failed: int = 0
    skipped: bool = False

    @property
    def success(self) -> bool:
        return self.failed == 0 and not self.skipped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "synced": self.synced,
            "failed": self.failed,
            "skipped": self.skipped,
        }
