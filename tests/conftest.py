"""
Shared fixtures: both record stores, a scripted summary generator and an engine.
"""

import asyncio

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import User
from app.services.errors import GenerationFailed
from app.services.local_store import LOCAL_OWNER, LocalRecordStore
from app.services.reconciliation import ReconciliationEngine
from app.services.record_store import SqlRecordStore


class FakeGenerator:
    """Stands in for the Claude client.

    Daily summaries are "summary of: <content>" unless a reply is scripted.
    Set `hold` to make daily calls wait until `release()`; set `fail` to make
    every call raise GenerationFailed.
    """

    def __init__(self):
        self.daily_calls = []
        self.monthly_calls = []
        self.keyword_calls = []
        self.replies = {}
        self.monthly_reply = {
            "overview": "A productive month",
            "takeaways": ["Ship small"],
            "themes": [{"name": "Learning", "description": "TypeScript"}],
            "keywords": [{"word": "TypeScript", "count": 2}],
        }
        self.keywords_reply = [{"word": "TypeScript", "count": 3}]
        self.fail = False
        self.hold = False
        self._released = None

    def release(self):
        self._gate().set()

    def _gate(self) -> asyncio.Event:
        if self._released is None:
            self._released = asyncio.Event()
        return self._released

    async def generate_daily_summary(self, content: str) -> str:
        self.daily_calls.append(content)
        if self.hold:
            await self._gate().wait()
        if self.fail:
            raise GenerationFailed("scripted failure")
        return self.replies.get(content, f"summary of: {content}")

    async def generate_monthly_summary(self, merged_content, year, month):
        self.monthly_calls.append((merged_content, year, month))
        if self.fail:
            raise GenerationFailed("scripted failure")
        return dict(self.monthly_reply)

    async def extract_keywords(self, summaries):
        self.keyword_calls.append(list(summaries))
        if self.fail:
            raise GenerationFailed("scripted failure")
        return list(self.keywords_reply)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def local_store(tmp_path):
    return LocalRecordStore(str(tmp_path / "journal.json"))


@pytest.fixture
def sql_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = factory()
    db.add_all([
        User(id=1, email="one@example.com", password_hash="x", full_name="One"),
        User(id=2, email="two@example.com", password_hash="x", full_name="Two"),
    ])
    db.commit()
    db.close()
    yield factory
    engine.dispose()


@pytest.fixture
def sql_store(sql_session_factory):
    return SqlRecordStore(sql_session_factory)


@pytest.fixture(params=["local", "sql"])
def store_and_owner(request, tmp_path):
    """Each store backend with an owner it accepts."""
    if request.param == "local":
        return LocalRecordStore(str(tmp_path / "journal.json")), LOCAL_OWNER
    factory = request.getfixturevalue("sql_session_factory")
    return SqlRecordStore(factory), 1


@pytest.fixture
async def engine(local_store, generator):
    engine = ReconciliationEngine(local_store, generator, poll_attempts=20, poll_interval=0.01)
    yield engine
    await engine.shutdown()
