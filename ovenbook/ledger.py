# ledger.py
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import sqlalchemy
from databases import Database

from ovenbook.config import BookingPolicy
from ovenbook.data_models import Identity, Reservation, Resource, as_utc, utcnow
from ovenbook.database import run_in_transaction
from ovenbook.errors import ConflictError, NotFound, TransactionConflict, Unauthorized, ValidationFailed
from ovenbook.models import reservations, resources, users
from ovenbook.overlap import find_conflict
from ovenbook.realtime import ReservationFeed

logger = logging.getLogger(__name__)


def describe_duration(delta: timedelta) -> str:
    """'7 days', '1 hour', '30 minutes'."""
    seconds = int(delta.total_seconds())
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size and seconds % size == 0:
            count = seconds // size
            return f"{count} {unit}" + ("s" if count != 1 else "")
    return f"{seconds} seconds"


def annotate_title(label: str, name: str) -> str:
    """Append the booker's name, without stacking it on an already annotated label."""
    label = (label or "").strip()
    suffix = f" (by {name})"
    if label.endswith(suffix):
        label = label[: -len(suffix)]
    return f"{label}{suffix}"


class ReservationLedger:
    """
    Creates, edits and cancels reservations.

    Create and update run the resource check, the overlap check and the write
    in one transaction. The transaction opens by write-locking the resource
    row, so writers on one resource queue behind each other. Each of them also
    bumps the resource's `version` with a conditional update, so two
    transactions that read the same snapshot of a resource cannot both commit;
    the loser is re-run from the start and then sees the winner's reservation.

    The active-booking quota is checked before the transaction opens, so two
    simultaneous creates by the same caller can both get through it. Set
    `BookingPolicy.strict_quota` to check it again inside the transaction,
    after also locking the caller's identity row; that serializes one caller's
    creates even when they target different resources.
    """

    def __init__(
        self,
        database: Database,
        policy: Optional[BookingPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        feed: Optional[ReservationFeed] = None,
    ):
        self.database = database
        self.policy = policy or BookingPolicy()
        self.clock = clock
        self.feed = feed

    # --- reads -------------------------------------------------------------

    async def get(self, reservation_id: int) -> Optional[Reservation]:
        record = await self.database.fetch_one(reservations.select().where(reservations.c.id == reservation_id))
        return Reservation.from_record(record) if record else None

    async def count_active(self, user_id: int) -> int:
        query = (
            sqlalchemy.select(sqlalchemy.func.count())
            .select_from(reservations)
            .where(reservations.c.user_id == user_id, reservations.c.end_time >= self.clock())
        )
        return await self.database.fetch_val(query) or 0

    async def _candidates(self, resource_id: int, start: datetime) -> List[Reservation]:
        # Everything that ends after the new window starts; find_conflict does the rest
        query = reservations.select().where(
            reservations.c.resource_id == resource_id,
            reservations.c.end_time > start,
        )
        return [Reservation.from_record(r) for r in await self.database.fetch_all(query)]

    async def _load_resource(self, resource_id: int) -> Resource:
        record = await self.database.fetch_one(resources.select().where(resources.c.id == resource_id))
        if record is None:
            raise ConflictError("The selected resource does not exist.")
        return Resource.from_record(record)

    async def _display_name(self, user_id: int) -> str:
        record = await self.database.fetch_one(users.select().where(users.c.id == user_id))
        if record is None or not record["full_name"]:
            return "Unknown User"
        return record["full_name"]

    async def _is_admin(self, user_id: int) -> bool:
        record = await self.database.fetch_one(users.select().where(users.c.id == user_id))
        return bool(record and record["is_admin"])

    # --- checks ------------------------------------------------------------

    def _validate_window(self, start: datetime, end: datetime):
        start, end = as_utc(start), as_utc(end)
        if start is None or end is None:
            raise ValidationFailed("Start and end times are required.")
        if start >= end:
            raise ValidationFailed("Start time must be before end time.")
        if end - start > self.policy.max_duration:
            raise ValidationFailed(f"Booking cannot exceed {describe_duration(self.policy.max_duration)}.")
        return start, end

    async def _check_quota(self, caller: Identity):
        limit = self.policy.max_active_bookings
        if await self.count_active(caller.id) >= limit:
            raise ConflictError(f"You have reached your limit of {limit} active bookings.")

    async def _ensure_free(self, resource_id: int, start: datetime, end: datetime, exclude_id: Optional[int] = None):
        candidates = await self._candidates(resource_id, start)
        clash = find_conflict(candidates, start, end, exclude_id=exclude_id)
        if clash is not None:
            logger.info("Window %s - %s on resource %s clashes with reservation %s", start, end, resource_id, clash.id)
            raise ConflictError("This time slot conflicts with an existing booking.")

    async def _lock_resource(self, resource_id: int):
        """
        No-op write on the resource row, issued as the first statement of a
        booking transaction.

        Taking the write lock before any read makes SQLite queue competing
        writers on its busy timeout (as BEGIN IMMEDIATE would) instead of
        failing them on a read-to-write upgrade; on PostgreSQL it holds the
        row lock until commit.
        """
        query = resources.update().where(resources.c.id == resource_id).values(version=resources.c.version)
        await self.database.execute(query)

    async def _lock_user(self, user_id: int):
        query = users.update().where(users.c.id == user_id).values(is_admin=users.c.is_admin)
        await self.database.execute(query)

    async def _claim(self, resource: Resource):
        query = (
            resources.update()
            .where(resources.c.id == resource.id, resources.c.version == resource.version)
            .values(version=resource.version + 1)
            .returning(resources.c.version)
        )
        # fetch_all so the statement runs to completion before the cursor closes
        if not await self.database.fetch_all(query):
            raise TransactionConflict(f"resource {resource.id} changed since version {resource.version}")

    def _check_may_modify(self, reservation: Reservation, caller: Identity, caller_is_admin: bool, action: str):
        if caller_is_admin:
            return
        if reservation.user_id != caller.id:
            raise Unauthorized(f"You are not authorized to {action} this booking.")
        if self.clock() - reservation.created_at > self.policy.grace_period:
            grace = describe_duration(self.policy.grace_period)
            raise Unauthorized(f"You can no longer {action} this booking. The {grace} grace period has passed.")

    # --- mutations ---------------------------------------------------------

    async def create(self, resource_id: int, start: datetime, end: datetime, label: str, caller: Identity) -> int:
        start, end = self._validate_window(start, end)
        await self._check_quota(caller)

        async def work():
            await self._lock_resource(resource_id)
            if self.policy.strict_quota:
                # Serializes one caller's creates across different resources too
                await self._lock_user(caller.id)
            resource = await self._load_resource(resource_id)
            if not resource.bookable:
                raise ConflictError("This resource is currently under maintenance and cannot be booked.")
            if self.policy.strict_quota:
                await self._check_quota(caller)
            await self._ensure_free(resource_id, start, end)
            await self._claim(resource)
            name = await self._display_name(caller.id)
            return await self.database.execute(
                reservations.insert().values(
                    resource_id=resource_id,
                    user_id=caller.id,
                    start_time=start,
                    end_time=end,
                    title=annotate_title(label, name),
                    created_at=self.clock(),
                )
            )

        reservation_id = await run_in_transaction(self.database, work, self.policy.transaction_attempts)
        logger.info("Reservation %s created on resource %s by identity %s", reservation_id, resource_id, caller.id)
        self._notify(resource_id)
        return reservation_id

    async def update(
        self,
        reservation_id: int,
        resource_id: Optional[int],
        start: datetime,
        end: datetime,
        label: str,
        caller: Identity,
    ):
        """Move or relabel a booking. Owner and created_at never change."""
        # A booking's resource never changes, so it is safe to look up before locking
        current = await self.get(reservation_id)
        if current is None:
            raise NotFound("Booking not found.")

        async def work():
            await self._lock_resource(current.resource_id)
            reservation = await self.get(reservation_id)
            if reservation is None:
                raise NotFound("Booking not found.")
            caller_is_admin = await self._is_admin(caller.id)
            self._check_may_modify(reservation, caller, caller_is_admin, "edit")
            if resource_id is not None and resource_id != reservation.resource_id:
                raise ValidationFailed("A booking cannot be moved to another resource.")
            new_start, new_end = self._validate_window(start, end)

            resource = await self._load_resource(reservation.resource_id)
            await self._ensure_free(reservation.resource_id, new_start, new_end, exclude_id=reservation.id)
            await self._claim(resource)
            owner_name = await self._display_name(reservation.user_id)
            await self.database.execute(
                reservations.update()
                .where(reservations.c.id == reservation.id)
                .values(start_time=new_start, end_time=new_end, title=annotate_title(label, owner_name))
            )
            return reservation.resource_id

        updated_resource = await run_in_transaction(self.database, work, self.policy.transaction_attempts)
        logger.info("Reservation %s updated by identity %s", reservation_id, caller.id)
        self._notify(updated_resource)

    async def cancel(self, reservation_id: int, caller: Identity):
        # A delete cannot create an overlap, so no transaction here
        reservation = await self.get(reservation_id)
        if reservation is None:
            raise NotFound("Booking not found.")
        caller_is_admin = await self._is_admin(caller.id)
        self._check_may_modify(reservation, caller, caller_is_admin, "cancel")
        await self.database.execute(reservations.delete().where(reservations.c.id == reservation_id))
        logger.info("Reservation %s cancelled by identity %s", reservation_id, caller.id)
        self._notify(reservation.resource_id)

    def _notify(self, resource_id: int):
        if self.feed is not None:
            self.feed.notify(resource_id)
