import os

os.environ["POSTGRES_DSN"] = "sqlite+aiosqlite:///./.pytest-clinic.db"
os.environ["ENV"] = "local"
os.environ["EVENT_BUS_PROVIDER"] = "noop"
os.environ["DEFAULT_TIMEZONE"] = "UTC"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401
from app.core.base import Base
from app.core.clock import get_clock
from app.core.db import get_session
from app.modules.directory.schemas import DoctorCreate
from app.modules.directory.service import DoctorService
from app.modules.schedules.service import ScheduleService

from builders import NOW, ORG_ID, weekday_week


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scheduling.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def clock():
    return lambda: NOW


@pytest_asyncio.fixture
async def doctor(session):
    return await DoctorService(session).create(ORG_ID, DoctorCreate(name="Dr. Rao", specialty="Cardiology"))


@pytest_asyncio.fixture
async def scheduled_doctor(session, doctor):
    """A doctor working Monday to Friday, 09:00-17:00 with a lunch break."""
    await ScheduleService(session).replace_schedule(ORG_ID, doctor.id, weekday_week())
    return doctor


@pytest_asyncio.fixture
async def client(session_factory, clock):
    from app.main import app

    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_clock] = lambda: clock
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
