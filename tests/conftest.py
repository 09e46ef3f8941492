"""
Pytest configuration and fixtures for the quiz services tests.
"""
import sys
import os
import pytest
import pytest_asyncio

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENV", "development")

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from db.base import Base


def enforce_foreign_keys(engine):
    # SQLite leaves FK checks off per connection unless asked
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


async def create_tables(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enforce_foreign_keys(engine)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """Engine on a database file, so separate sessions use separate connections"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'quizzes.db'}")
    enforce_foreign_keys(engine)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def file_session_factory(file_engine):
    return async_sessionmaker(bind=file_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def sample_questions():
    """One question of each type, one point each except the checkbox"""
    return [
        {
            "type": "multiple_choice",
            "question": "What is 2+2?",
            "options": ["3", "4", "5", "6"],
            "correct_answers": "4",
            "points": 1,
            "explanation": "Basic arithmetic.",
        },
        {
            "type": "checkbox",
            "question": "Which of these are primes?",
            "options": ["2", "3", "4", "6"],
            "correct_answers": ["2", "3"],
            "points": 2,
        },
        {
            "type": "short_answer",
            "question": "What is the capital of France?",
            "correct_answers": ["Paris", "paris city"],
            "points": 1,
        },
    ]


@pytest.fixture
def four_point_questions():
    """Four one-point multiple choice questions"""
    return [
        {
            "type": "multiple_choice",
            "question": f"Pick {letter}",
            "options": ["A", "B", "C", "D"],
            "correct_answers": letter,
            "points": 1,
        }
        for letter in "ABCD"
    ]
