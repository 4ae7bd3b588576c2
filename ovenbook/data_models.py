# data_models.py
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

RESOURCE_STATUSES = ("active", "maintenance")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Identity:
    """A caller as seen by the authorization gate."""
    id: int
    email: Optional[str]
    name: str
    is_admin: bool = False

    @classmethod
    def from_record(cls, record) -> "Identity":
        return cls(
            id=record["id"],
            email=record["email"],
            name=record["full_name"] or "Unknown User",
            is_admin=bool(record["is_admin"]),
        )


@dataclass
class Session:
    """A login, passed explicitly to whatever acts on the caller's behalf."""
    id: str
    identity: Identity
    expires_at: datetime


@dataclass
class Resource:
    id: int
    name: str
    status: str
    version: int = 0

    @property
    def bookable(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_record(cls, record) -> "Resource":
        return cls(id=record["id"], name=record["name"], status=record["status"], version=record["version"])


@dataclass
class Reservation:
    """A booked window on a resource."""
    id: int
    resource_id: int
    user_id: int
    start_time: datetime
    end_time: datetime
    title: str
    created_at: datetime

    @classmethod
    def from_record(cls, record) -> "Reservation":
        return cls(
            id=record["id"],
            resource_id=record["resource_id"],
            user_id=record["user_id"],
            start_time=as_utc(record["start_time"]),
            end_time=as_utc(record["end_time"]),
            title=record["title"],
            created_at=as_utc(record["created_at"]),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start": self.start_time.isoformat(),
            "end": self.end_time.isoformat(),
            "userId": self.user_id,
            "createdAt": self.created_at.isoformat(),
        }
