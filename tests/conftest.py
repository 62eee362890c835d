"""
Test fixtures for RiskQuote.

Provides:
- Profile snapshot factories (the worked example profile and variations)
- A fixed clock so recomputes are reproducible
- In-memory record store + pipeline
- Async SQLite (aiosqlite, in-memory) engine and SqlRecordStore
"""

from datetime import date, datetime, timezone
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riskquote.db.engine import build_engine, init_db
from riskquote.db.store import InMemoryRecordStore, SqlRecordStore
from riskquote.pipeline.recompute import RecomputePipeline
from riskquote.schemas.profile import ProfileSnapshot

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
AS_OF = FIXED_NOW.date()


def make_snapshot(user_id: str = "user-001", **overrides: Any) -> ProfileSnapshot:
    """
    The worked example: age 28, non-smoker, exercises 3-4x/week, BMI 27.2,
    no conditions, $500,000 / 30-year term.

    Section overrides merge into the defaults: make_snapshot(lifestyle={"stressLevel": 8}).
    """
    sections: dict[str, dict] = {
        "demographics": {"dateOfBirth": date(1996, 6, 1).isoformat()},
        "health": {"bmi": 27.2, "smokingStatus": "never", "medicalConditions": []},
        "lifestyle": {"exerciseFrequency": "3-4"},
        "financial": {"coverageAmount": 500_000, "policyTerm": 30},
    }
    extra: dict[str, Any] = {}
    for key, value in overrides.items():
        if key in sections and isinstance(value, dict):
            sections[key] = {**sections[key], **value}
        else:
            extra[key] = value
    return ProfileSnapshot.model_validate({"userId": user_id, **sections, **extra})


@pytest.fixture
def snapshot() -> ProfileSnapshot:
    return make_snapshot()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def pipeline(store, clock) -> RecomputePipeline:
    return RecomputePipeline(store, clock=clock)


# ── SQL ───────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with all tables, per test."""
    eng = build_engine(TEST_DB_URL)
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sql_store(session_factory) -> SqlRecordStore:
    return SqlRecordStore(session_factory)
