import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from eventhub.common.enums import CallerRole
from eventhub.common.identity import Caller
from eventhub.common.security import create_access_token
from eventhub.core.negotiation.schemas import GeoPoint, TimeWindow
from eventhub.db.base import Base
from eventhub.db.models import *  # noqa: F401,F403 - ensure all models loaded

# Use SQLite for testing - remap JSONB to JSON
TEST_DATABASE_URL = "sqlite+aiosqlite://"

ORIGIN = GeoPoint(lng=-97.7431, lat=30.2672)


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling does not support SAVEPOINT;
    # take over BEGIN so begin_nested() works as it does on PostgreSQL.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session):
    from eventhub.api.deps import get_db
    from eventhub.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------- Factories ----------


@pytest.fixture
def make_user(db_session):
    from eventhub.db.models.user import User

    async def _make(full_name: str = "Test Organizer") -> User:
        user = User(
            id=uuid.uuid4(),
            email=f"user_{uuid.uuid4().hex[:8]}@test.com",
            full_name=full_name,
        )
        db_session.add(user)
        await db_session.flush()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_vendor(db_session):
    from eventhub.db.models.vendor import Vendor

    async def _make(
        role: str = "caterer",
        name: str | None = None,
        lat: float | None = ORIGIN.lat,
        lng: float | None = ORIGIN.lng,
    ) -> Vendor:
        vendor = Vendor(
            id=uuid.uuid4(),
            name=name or f"Vendor {uuid.uuid4().hex[:6]}",
            email=f"vendor_{uuid.uuid4().hex[:8]}@test.com",
            phone="+1-512-555-0100",
            role=role,
            description=f"Experienced {role}",
            location_lat=lat,
            location_lng=lng,
            work_image_urls=[],
            rating=0.0,
            received_requests=[],
        )
        db_session.add(vendor)
        await db_session.flush()
        await db_session.refresh(vendor)
        return vendor

    return _make


@pytest.fixture
def make_project(db_session):
    from eventhub.db.models.project import Project

    async def _make(owner, name: str | None = None) -> Project:
        project = Project(
            id=uuid.uuid4(),
            owner_id=owner.id,
            name=name or f"Project {uuid.uuid4().hex[:6]}",
            sent_requests=[],
        )
        db_session.add(project)
        await db_session.flush()
        await db_session.refresh(project)
        return project

    return _make


@pytest.fixture
def make_request(db_session):
    from eventhub.core.negotiation.ledger import RequestLedger

    ledger = RequestLedger()

    async def _make(user, vendor, project, role: str | None = None):
        return await ledger.create(
            db_session,
            user_id=user.id,
            vendor_id=vendor.id,
            project_id=project.id,
            role=role or vendor.role,
            point=ORIGIN,
            window=event_window(),
            description="Wedding reception for 120 guests",
        )

    return _make


@pytest.fixture
async def organizer(make_user):
    return await make_user()


@pytest.fixture
async def project(make_project, organizer):
    return await make_project(organizer, name="Spring Wedding")


# ---------- Identity ----------


def event_window(days_ahead: int = 30, hours: int = 5) -> TimeWindow:
    start = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=days_ahead)
    return TimeWindow(start_at=start, end_at=start + timedelta(hours=hours))


def as_user(entity) -> Caller:
    return Caller(id=entity.id, role=CallerRole.USER)


def as_vendor(entity) -> Caller:
    return Caller(id=entity.id, role=CallerRole.VENDOR)


def bearer(entity_id: uuid.UUID, role: CallerRole) -> dict[str, str]:
    token = create_access_token(str(entity_id), role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(organizer):
    return bearer(organizer.id, CallerRole.USER)


@pytest.fixture
def admin_headers():
    return bearer(uuid.uuid4(), CallerRole.ADMIN)


@pytest.fixture(autouse=True)
def mock_celery_tasks():
    """Mock Celery task.delay() calls to prevent actual task execution in tests."""
    with patch("eventhub.tasks.negotiation_tasks.retract_siblings_for_request.delay") as delay:
        yield delay
