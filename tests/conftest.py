"""Shared fixtures: a throwaway SQLite file, a controllable clock and seed helpers."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

_DB_DIR = tempfile.mkdtemp(prefix="ovenbook-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "admin-pass"
os.environ["ADMIN_NAME"] = "Admin"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from databases import Database  # noqa: E402

from ovenbook.data_models import Identity  # noqa: E402
from ovenbook.database import engine, metadata  # noqa: E402
from ovenbook.models import resources, users  # noqa: E402

DATABASE_URL = os.environ["DATABASE_URL"]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def fresh_schema():
    metadata.drop_all(bind=engine)
    metadata.create_all(bind=engine)
    yield


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def db():
    database = Database(DATABASE_URL)
    await database.connect()
    yield database
    await database.disconnect()


async def add_user(database: Database, name: str, is_admin: bool = False) -> Identity:
    email = f"{name.lower()}@example.com"
    user_id = await database.execute(
        users.insert().values(email=email, full_name=name, hashed_password="x", is_admin=is_admin)
    )
    return Identity(id=user_id, email=email, name=name, is_admin=is_admin)


async def add_resource(database: Database, name: str, status: str = "active") -> int:
    return await database.execute(resources.insert().values(name=name, status=status, version=0))


def at(hour: int, minute: int = 0, day: int = 3) -> datetime:
    """A UTC instant on March `day`, 2026."""
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)
