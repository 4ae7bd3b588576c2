import pytest

from conftest import add_resource, add_user, at
from ovenbook.errors import ConflictError, NotFound, ValidationFailed
from ovenbook.ledger import ReservationLedger
from ovenbook.registry import ResourceRegistry


@pytest.mark.asyncio
async def test_list_is_ordered_by_name(db):
    registry = ResourceRegistry(db)
    await registry.create("Oven C")
    await registry.create("Oven A")
    await registry.create("Oven B")

    assert [r.name for r in await registry.list()] == ["Oven A", "Oven B", "Oven C"]


@pytest.mark.asyncio
async def test_create_starts_active(db):
    registry = ResourceRegistry(db)
    resource_id = await registry.create("  Kiln ")

    resource = await registry.get(resource_id)
    assert resource.name == "Kiln"
    assert resource.status == "active"
    assert resource.bookable


@pytest.mark.asyncio
async def test_create_requires_name(db):
    with pytest.raises(ValidationFailed):
        await ResourceRegistry(db).create("   ")


@pytest.mark.asyncio
async def test_set_status(db):
    registry = ResourceRegistry(db)
    resource_id = await registry.create("Oven A")

    await registry.set_status(resource_id, "maintenance")
    assert (await registry.get(resource_id)).status == "maintenance"

    await registry.set_status(resource_id, "active")
    assert (await registry.get(resource_id)).status == "active"


@pytest.mark.asyncio
async def test_set_status_rejects_unknown_values(db):
    registry = ResourceRegistry(db)
    resource_id = await registry.create("Oven A")

    with pytest.raises(ValidationFailed):
        await registry.set_status(resource_id, "broken")
    with pytest.raises(NotFound):
        await registry.set_status(resource_id + 100, "active")


@pytest.mark.asyncio
async def test_maintenance_keeps_existing_bookings(db, clock):
    registry = ResourceRegistry(db)
    ledger = ReservationLedger(db, clock=clock)
    alice = await add_user(db, "Alice")
    oven = await add_resource(db, "Oven A")
    reservation_id = await ledger.create(oven, at(10), at(11), "Bake", alice)

    await registry.set_status(oven, "maintenance")

    assert await ledger.get(reservation_id) is not None
    with pytest.raises(ConflictError, match="maintenance"):
        await ledger.create(oven, at(12), at(13), "More", alice)
