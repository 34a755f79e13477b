import os

# Must be set before bandscore reads its settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-for-bandscore-bearer-tokens"
os.environ.pop("OPENAI_API_KEY", None)

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bandscore import crud, models
from bandscore.attempts import AttemptService
from bandscore.balance import UserBalance
from bandscore.database import Base
from bandscore.entitlement import EntitlementGate
from bandscore.scoring import CompositeScorer
from bandscore.subjective import SubjectiveScorer
from tests.stubs import StubOracle, StubTranscriber, full_content

EXAM_COST = 10000


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Sessions on a file database, each with its own connection, like separate workers."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bandscore.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def oracle():
    return StubOracle()


@pytest.fixture
def transcriber():
    return StubTranscriber({2: "Last summer I travelled to Samarkand with my family."})


@pytest.fixture
def subjective(oracle, transcriber):
    return SubjectiveScorer(oracle, transcriber)


@pytest.fixture
def scorer(subjective):
    return CompositeScorer(subjective)


@pytest.fixture
def service(scorer):
    return AttemptService(scorer)


@pytest.fixture
def gate():
    return EntitlementGate(lambda session: UserBalance(session, EXAM_COST, "UZS", 10000))


@pytest_asyncio.fixture
async def student(db):
    return await crud.create_user(db, "student", balance=EXAM_COST, first_name="Aziz", last_name="Karimov")


@pytest_asyncio.fixture
async def admin(db):
    return await crud.create_user(db, "admin", role=models.UserRole.ADMIN)


@pytest_asyncio.fixture
async def full_exam(db):
    exam = models.Exam(title="IELTS Academic - Full Test 1", type="full", content=full_content())
    return await crud.save_exam(exam, db)
