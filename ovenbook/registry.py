# registry.py
import logging
from typing import List, Optional

from databases import Database

from ovenbook.data_models import Resource, RESOURCE_STATUSES
from ovenbook.errors import NotFound, ValidationFailed
from ovenbook.models import resources

logger = logging.getLogger(__name__)


class ResourceRegistry:
    """Equipment records. Reads are public, writes are for admins (checked by the caller)."""

    def __init__(self, database: Database):
        self.database = database

    async def list(self) -> List[Resource]:
        query = resources.select().order_by(resources.c.name)
        return [Resource.from_record(r) for r in await self.database.fetch_all(query)]

    async def get(self, resource_id: int) -> Optional[Resource]:
        record = await self.database.fetch_one(resources.select().where(resources.c.id == resource_id))
        return Resource.from_record(record) if record else None

    async def create(self, name: str) -> int:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Resource name is required.")
        query = resources.insert().values(name=name, status="active", version=0)
        resource_id = await self.database.execute(query)
        logger.info("Created resource %s (%s)", resource_id, name)
        return resource_id

    async def set_status(self, resource_id: int, status: str):
        # Existing reservations are left alone; only new bookings are gated.
        if status not in RESOURCE_STATUSES:
            raise ValidationFailed(f"Status must be one of: {', '.join(RESOURCE_STATUSES)}.")
        if await self.get(resource_id) is None:
            raise NotFound("Resource not found.")
        query = resources.update().where(resources.c.id == resource_id).values(status=status)
        await self.database.execute(query)
        logger.info("Resource %s set to %s", resource_id, status)
