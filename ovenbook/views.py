# views.py
from datetime import datetime
from typing import AsyncIterator, Callable, List, Optional

import sqlalchemy
from databases import Database

from ovenbook.data_models import Reservation, as_utc, utcnow
from ovenbook.models import reservations, resources, users
from ovenbook.realtime import ReservationFeed


class ReadViews:
    """Read-only projections for calendars and the admin dashboard."""

    def __init__(
        self,
        database: Database,
        clock: Callable[[], datetime] = utcnow,
        feed: Optional[ReservationFeed] = None,
        poll_seconds: float = 5.0,
    ):
        self.database = database
        self.clock = clock
        self.feed = feed or ReservationFeed()
        self.poll_seconds = poll_seconds

    async def list_for_resource(self, resource_id: int) -> List[dict]:
        """All bookings on a resource, past and future; clients filter for display."""
        query = (
            reservations.select()
            .where(reservations.c.resource_id == resource_id)
            .order_by(reservations.c.start_time)
        )
        return [Reservation.from_record(r).to_dict() for r in await self.database.fetch_all(query)]

    async def list_upcoming_all(self) -> List[dict]:
        """Every booking that has not started yet, with owner and resource names joined in."""
        query = sqlalchemy.select(
            reservations.c.id,
            reservations.c.title,
            reservations.c.start_time,
            reservations.c.end_time,
            reservations.c.user_id,
            users.c.full_name.label("user_name"),
            users.c.email.label("user_email"),
            resources.c.name.label("resource_name"),
        ).select_from(
            reservations.outerjoin(users, reservations.c.user_id == users.c.id)
            .outerjoin(resources, reservations.c.resource_id == resources.c.id)
        ).where(
            reservations.c.start_time >= self.clock()
        ).order_by(sqlalchemy.asc(reservations.c.start_time))

        rows = await self.database.fetch_all(query)
        return [
            {
                "id": row["id"],
                "title": row["title"],
                "start": as_utc(row["start_time"]).isoformat(),
                "end": as_utc(row["end_time"]).isoformat(),
                "userId": row["user_id"],
                "userName": row["user_name"] or "Unknown User",
                "userEmail": row["user_email"] or "N/A",
                "resourceName": row["resource_name"] or "Unknown Resource",
            }
            for row in rows
        ]

    async def watch_resource(self, resource_id: int) -> AsyncIterator[List[dict]]:
        """
        Yield the booking list for a resource, then a fresh copy each time it changes.

        Wakes on ledger notifications, and otherwise re-reads every
        `poll_seconds`. Every new iteration starts from the current snapshot;
        the stream ends when the consumer stops iterating.
        """
        last = None
        while True:
            snapshot = await self.list_for_resource(resource_id)
            if snapshot != last:
                last = snapshot
                yield snapshot
            await self.feed.wait(resource_id, self.poll_seconds)
