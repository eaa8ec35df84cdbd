import pytest
import pytest_asyncio

import db
from app.services.reminder_engine import ReminderEngine
from app.types.reminder_contract import ReminderTime
from tests.fakes import FakePlanClient, FakeScheduler


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite+aiosqlite:///{tmp_path / 'reminders.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    return url


@pytest_asyncio.fixture
async def database(db_url):
    await db.dispose_engine()
    await db.create_all()
    yield
    await db.dispose_engine()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def plans():
    return FakePlanClient()


@pytest.fixture
def engine(database, plans, scheduler):
    return ReminderEngine(
        plans,
        scheduler,
        reminder_times=[
            ReminderTime(hour=9, minute=0),
            ReminderTime(hour=13, minute=0),
            ReminderTime(hour=19, minute=0),
        ],
        grace_time=ReminderTime(hour=21, minute=30),
        timeout=1,
    )
