"""
Shared fixtures.

The app runs against an in-memory SQLite database that is rebuilt for every
test, and outbound SMS are captured by a recording dispatcher instead of
being delivered.
"""

import os

# Must be set before canteen is imported: settings are read once
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SMS_DISPATCH_MODE"] = "inline"
os.environ["STRICT_STATUS_TRANSITIONS"] = "false"

from decimal import Decimal
from typing import List, Tuple

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select, text
from sqlalchemy.pool import StaticPool

from canteen.core.config import get_settings
from canteen.core.security import VendorIdentity
from canteen.database import Base, build_engine, build_session_maker, get_db
from canteen.main import app
from canteen.models import MenuItem, Vendor
from canteen.services.notifications import get_notification_dispatcher

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingDispatcher:
    """Stands in for NotificationDispatcher and keeps every SMS it is given."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    def dispatch(self, to_phone: str, message: str) -> None:
        self.sent.append((to_phone, message))

    def messages_to(self, phone_no: str) -> List[str]:
        return [message for to, message in self.sent if to == phone_no]


@pytest_asyncio.fixture
async def engine():
    engine = build_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def client(session_maker, dispatcher):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def register_vendor(client, username="stall-1", password="secret-pw", canteen_id=1, name="Dosa Corner"):
    return await client.post(
        "/vendor/register",
        json={"canteenId": canteen_id, "username": username, "password": password, "name": name},
    )


async def login_headers(client, username="stall-1", password="secret-pw", canteen_id=1) -> dict:
    """Register a vendor and return Authorization headers for it."""
    response = await register_vendor(client, username=username, password=password, canteen_id=canteen_id)
    assert response.status_code == 201, response.text
    response = await client.post("/vendor/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


async def add_menu_item(client, headers, name="Masala Dosa", price="50.00", is_available=True) -> dict:
    response = await client.post(
        "/menu",
        json={"name": name, "price": price, "is_available": is_available},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["item"]


async def place_order(client, headers, items, student_name="Asha", phone_no="+15550000001"):
    return await client.post(
        "/order",
        json={"studentName": student_name, "phoneNo": phone_no, "items": items},
        headers=headers,
    )


async def count_rows(session_maker, model) -> int:
    async with session_maker() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()


async def fail_store_writes(engine, table: str, operation: str) -> None:
    """Have the database abort every `operation` (INSERT or UPDATE) on `table`."""
    async with engine.begin() as conn:
        await conn.execute(text(
            f"CREATE TRIGGER reject_{operation.lower()}_{table} BEFORE {operation} ON {table} "
            f"BEGIN SELECT RAISE(ABORT, 'store unavailable'); END"
        ))


@pytest_asyncio.fixture
async def vendor(db_session) -> VendorIdentity:
    """A vendor row created directly in the database, for service-level tests."""
    row = Vendor(name="Dosa Corner", username="direct-vendor", password_hash="x", canteen_id=1)
    db_session.add(row)
    await db_session.commit()
    return VendorIdentity(vendor_id=row.id, canteen_id=row.canteen_id)


@pytest_asyncio.fixture
async def menu_items(db_session, vendor):
    items = [
        MenuItem(name="Masala Dosa", price=Decimal("50.00"), canteen_id=vendor.canteen_id),
        MenuItem(name="Filter Coffee", price=Decimal("12.50"), canteen_id=vendor.canteen_id),
        MenuItem(name="Vada", price=Decimal("20.00"), canteen_id=vendor.canteen_id, is_available=False),
    ]
    db_session.add_all(items)
    await db_session.commit()
    return items
