"""Tests for the read views and the snapshot stream."""

import asyncio

import pytest

from conftest import add_resource, add_user, at
from ovenbook.config import BookingPolicy
from ovenbook.ledger import ReservationLedger
from ovenbook.models import reservations
from ovenbook.realtime import ReservationFeed
from ovenbook.views import ReadViews


class TestListForResource:
    @pytest.mark.asyncio
    async def test_includes_past_and_future(self, db, clock):
        ledger = ReservationLedger(db, BookingPolicy(max_active_bookings=5), clock=clock)
        views = ReadViews(db, clock=clock)
        alice = await add_user(db, "Alice")
        oven = await add_resource(db, "Oven 1")
        other = await add_resource(db, "Oven 2")

        await ledger.create(oven, at(12), at(13), "Later", alice)
        await ledger.create(oven, at(1, day=1), at(2, day=1), "Past", alice)
        await ledger.create(other, at(12), at(13), "Elsewhere", alice)

        data = await views.list_for_resource(oven)
        assert [entry["title"] for entry in data] == ["Past (by Alice)", "Later (by Alice)"]
        entry = data[1]
        assert set(entry) == {"id", "title", "start", "end", "userId", "createdAt"}
        assert entry["start"] == "2026-03-03T12:00:00+00:00"
        assert entry["userId"] == alice.id
        assert entry["createdAt"] == clock().isoformat()

    @pytest.mark.asyncio
    async def test_unknown_resource_is_empty(self, db, clock):
        assert await ReadViews(db, clock=clock).list_for_resource(404) == []


class TestListUpcomingAll:
    @pytest.mark.asyncio
    async def test_upcoming_sorted_and_joined(self, db, clock):
        ledger = ReservationLedger(db, BookingPolicy(max_active_bookings=5), clock=clock)
        views = ReadViews(db, clock=clock)
        alice = await add_user(db, "Alice")
        bob = await add_user(db, "Bob")
        oven1 = await add_resource(db, "Oven 1")
        oven2 = await add_resource(db, "Oven 2")

        await ledger.create(oven1, at(15), at(16), "Late", alice)
        await ledger.create(oven2, at(9), at(10), "Early", bob)
        await ledger.create(oven1, at(1, day=1), at(2, day=1), "Gone", alice)

        data = await views.list_upcoming_all()
        assert [entry["title"] for entry in data] == ["Early (by Bob)", "Late (by Alice)"]
        assert data[0]["userName"] == "Bob"
        assert data[0]["userEmail"] == "bob@example.com"
        assert data[0]["resourceName"] == "Oven 2"
        assert data[1]["resourceName"] == "Oven 1"

    @pytest.mark.asyncio
    async def test_missing_joins_fall_back(self, db, clock):
        views = ReadViews(db, clock=clock)
        await db.execute(
            reservations.insert().values(
                resource_id=77, user_id=88, start_time=at(10), end_time=at(11), title="Orphan", created_at=clock()
            )
        )

        [entry] = await views.list_upcoming_all()
        assert entry["userName"] == "Unknown User"
        assert entry["userEmail"] == "N/A"
        assert entry["resourceName"] == "Unknown Resource"


class TestWatchResource:
    @pytest.mark.asyncio
    async def test_yields_on_change(self, db, clock):
        feed = ReservationFeed()
        ledger = ReservationLedger(db, BookingPolicy(), clock=clock, feed=feed)
        views = ReadViews(db, clock=clock, feed=feed, poll_seconds=30)
        alice = await add_user(db, "Alice")
        oven = await add_resource(db, "Oven 1")

        stream = views.watch_resource(oven)
        try:
            assert await stream.__anext__() == []

            pending = asyncio.ensure_future(stream.__anext__())
            await asyncio.sleep(0.05)
            await ledger.create(oven, at(10), at(11), "Bake", alice)

            snapshot = await asyncio.wait_for(pending, timeout=5)
            assert [entry["title"] for entry in snapshot] == ["Bake (by Alice)"]
        finally:
            await stream.aclose()

    @pytest.mark.asyncio
    async def test_polling_picks_up_outside_writes(self, db, clock):
        # No feed notification: another process wrote the row
        views = ReadViews(db, clock=clock, poll_seconds=0.05)
        alice = await add_user(db, "Alice")
        oven = await add_resource(db, "Oven 1")

        stream = views.watch_resource(oven)
        try:
            assert await stream.__anext__() == []
            await db.execute(
                reservations.insert().values(
                    resource_id=oven, user_id=alice.id, start_time=at(10), end_time=at(11),
                    title="Direct", created_at=clock(),
                )
            )
            snapshot = await asyncio.wait_for(stream.__anext__(), timeout=5)
            assert snapshot[0]["title"] == "Direct"
        finally:
            await stream.aclose()
