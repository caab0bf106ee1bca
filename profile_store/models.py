"""Profiling record types shared by the storage backends.

A :class:`ProfileRecord` is one profiled request.  The storage layer only
cares about ``id`` and ``started``; everything else travels as an opaque
JSON document.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ListResultsOrder(str, Enum):
    """Sort direction for :meth:`RedisProfileStorage.list`."""

    ASCENDING = "ascending"
    DESCENDING = "descending"


def to_utc(moment: datetime) -> datetime:
    """Normalize *moment* to an aware UTC datetime.

    Naive values are taken as local time, the same way
    :meth:`datetime.astimezone` treats them.
    """
    return moment.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ProfileRecord:
    """Snapshot of one profiling session.

    Attributes:
        id:            Unique record identifier.
        started:       When profiling began (stored as UTC).
        name:          Short label, usually the request path.
        duration_ms:   Total duration in milliseconds.
        machine_name:  Host that served the request.
        user:          User label the profiler attributed the request to.
        payload:       Remaining session data (timings, custom steps, ...).
    """

    id: uuid.UUID = field(default_factory=uuid.uuid4)
    started: datetime = field(default_factory=utcnow)
    name: str = ""
    duration_ms: float = 0.0
    machine_name: str = ""
    user: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.started = to_utc(self.started)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "started": self.started.isoformat(),
            "name": self.name,
            "duration_ms": self.duration_ms,
            "machine_name": self.machine_name,
            "user": self.user,
            "payload": self.payload,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProfileRecord:
        return cls(
            id=uuid.UUID(str(data["id"])),
            started=datetime.fromisoformat(str(data["started"])),
            name=str(data.get("name", "")),
            duration_ms=float(data.get("duration_ms", 0.0)),
            machine_name=str(data.get("machine_name", "")),
            user=str(data.get("user", "")),
            payload=dict(data.get("payload") or {}),
        )

    @classmethod
    def from_json(cls, text: str) -> ProfileRecord:
        """Decode a record produced by :meth:`to_json`.

        Raises ``ValueError`` (``json.JSONDecodeError`` included),
        ``KeyError`` or ``TypeError`` when *text* is not a record.
        """
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("profile record must be a JSON object")
        return cls.from_dict(data)
