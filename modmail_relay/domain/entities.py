from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Mapping, Optional

DB_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class ThreadStatus(IntEnum):
    OPEN = 1
    CLOSED = 2


class ThreadMessageType(IntEnum):
    SYSTEM = 1
    CHAT = 2
    FROM_USER = 3
    TO_USER = 4


def parse_db_datetime(value: Any) -> datetime:
    """MySQL hands back datetimes, other DB-API drivers may hand back strings."""
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.strptime(str(value), DB_DATETIME_FORMAT)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass(frozen=True)
class Thread:
    id: str
    status: ThreadStatus
    user_id: int
    user_name: str
    channel_id: Optional[int]
    created_at: datetime

    @property
    def is_open(self) -> bool:
        return self.status == ThreadStatus.OPEN

    def close(self) -> Thread:
        return replace(self, status=ThreadStatus.CLOSED)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Thread:
        return cls(
            id=str(row["id"]),
            status=ThreadStatus(int(row["status"])),
            user_id=int(row["user_id"]),
            user_name=row["user_name"],
            channel_id=int(row["channel_id"]) if row["channel_id"] is not None else None,
            created_at=parse_db_datetime(row["created_at"]),
        )


@dataclass(frozen=True)
class ThreadMessage:
    id: int
    thread_id: str
    message_type: ThreadMessageType
    user_id: Optional[int]
    user_name: str
    body: str
    is_anonymous: bool
    dm_message_id: Optional[int]
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ThreadMessage:
        return cls(
            id=int(row["id"]),
            thread_id=str(row["thread_id"]),
            message_type=ThreadMessageType(int(row["message_type"])),
            user_id=int(row["user_id"]) if row["user_id"] is not None else None,
            user_name=row["user_name"],
            body=row["body"],
            is_anonymous=bool(row["is_anonymous"]),
            dm_message_id=int(row["dm_message_id"]) if row["dm_message_id"] is not None else None,
            created_at=parse_db_datetime(row["created_at"]),
        )
