"""
Pytest configuration and shared fixtures.
Every test gets its own file-backed SQLite database through aiosqlite.
"""

import os

# Set before the application modules read their settings
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from typing import List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select

from database import DatabaseManager
from models import Contact
from services.identity_service import IdentityService


class WriteCounter:
    """Counts INSERT and UPDATE statements sent to the database"""

    def __init__(self):
        self.statements: List[str] = []

    def __call__(self, conn, cursor, statement, parameters, context, executemany):
        verb = statement.lstrip().split(" ", 1)[0].upper()
        if verb in ("INSERT", "UPDATE"):
            self.statements.append(statement)

    @property
    def count(self) -> int:
        return len(self.statements)

    def reset(self):
        self.statements.clear()


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh database with the contacts table created"""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'contacts.db'}")
    await manager.create_tables()
    yield manager
    await manager.dispose()


@pytest.fixture
def service(database) -> IdentityService:
    return IdentityService(database=database)


@pytest.fixture
def write_counter(database):
    counter = WriteCounter()
    sync_engine = database.engine.sync_engine
    event.listen(sync_engine, "before_cursor_execute", counter)
    yield counter
    event.remove(sync_engine, "before_cursor_execute", counter)


@pytest.fixture
def seed_contact(database):
    """Insert a contact row directly, bypassing the engine"""
    async def _seed(**fields) -> int:
        async with database.get_session() as session:
            contact = Contact(**fields)
            session.add(contact)
            await session.flush()
            return contact.id
    return _seed


@pytest.fixture
def fetch_contacts(database):
    """All contact rows, including soft-deleted ones, ordered by id"""
    async def _fetch() -> List[Contact]:
        async with database.get_session() as session:
            result = await session.execute(select(Contact).order_by(Contact.id))
            return list(result.scalars().all())
    return _fetch


@pytest_asyncio.fixture
async def api_client(service):
    """HTTP client bound to the app, with the engine pointed at the test database"""
    from main import app, get_identity_service

    app.dependency_overrides[get_identity_service] = lambda: service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
