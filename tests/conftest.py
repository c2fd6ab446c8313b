"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (calculator, ledger, leave, admin, API).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leave_ledger.common.constants import (
    EmploymentType,
    Gender,
    Region,
    RegionRestriction,
    UserRole,
)
from leave_ledger.common.rate_limit import limiter
from leave_ledger.config import settings
from leave_ledger.database import Base, get_db
from leave_ledger.main import create_app

# Import ALL model modules so every table is registered on Base.metadata
import leave_ledger.common.audit  # noqa: F401
import leave_ledger.core_hr.models  # noqa: F401
import leave_ledger.leave.models  # noqa: F401

from leave_ledger.core_hr.models import Employee, Holiday
from leave_ledger.leave.models import ZERO, LeaveBalance, LeaveType

# ── SQLite compat: compile PG-specific types to TEXT/BLOB ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite's implicit transaction handling breaks SAVEPOINT; take it over
@event.listens_for(engine.sync_engine, "connect")
def _disable_pysqlite_transactions(dbapi_conn, connection_record):
    dbapi_conn.isolation_level = None


@event.listens_for(engine.sync_engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────
#
# The in-memory database is a single shared connection: commit the
# ``db`` session before making client calls.

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    employee_id: str = "EMP001",
    *,
    first_name: str = "Test",
    last_name: str = "User",
    gender: Optional[Gender] = Gender.M,
    region: Optional[Region] = Region.IND,
    employment_type: Optional[EmploymentType] = EmploymentType.FTE,
    role: UserRole = UserRole.employee,
    manager_employee_id: Optional[str] = None,
    is_active: bool = True,
) -> dict:
    return dict(
        employee_id=employee_id,
        first_name=first_name,
        last_name=last_name,
        email=f"{employee_id.lower()}@example.com",
        gender=gender,
        region=region,
        employment_type=employment_type,
        role=role,
        date_of_joining=date(2024, 1, 15),
        manager_employee_id=manager_employee_id,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def _seed_employee(db: AsyncSession, employee_id: str = "EMP001", **kwargs) -> Employee:
    emp = Employee(**_make_employee(employee_id, **kwargs))
    db.add(emp)
    await db.flush()
    return emp


async def _seed_leave_type(
    db: AsyncSession,
    code: str = "CL",
    *,
    name: Optional[str] = None,
    region_restriction: RegionRestriction = RegionRestriction.ALL,
    **overrides,
) -> LeaveType:
    lt = LeaveType(
        code=code,
        name=name or f"{code} leave",
        region_restriction=region_restriction,
        **overrides,
    )
    db.add(lt)
    await db.flush()
    return lt


async def _seed_balance(
    db: AsyncSession,
    employee_id: str,
    leave_type_code: str = "CL",
    *,
    year: int = 2030,
    allocated: Decimal = Decimal("12"),
    carried_forward: Decimal = ZERO,
) -> LeaveBalance:
    bal = LeaveBalance(
        employee_id=employee_id,
        leave_type_code=leave_type_code,
        year=year,
        allocated=allocated,
        used=ZERO,
        pending=ZERO,
        available=allocated + carried_forward,
        carried_forward=carried_forward,
        expired=ZERO,
        encashed=ZERO,
        carried_out=ZERO,
    )
    db.add(bal)
    await db.flush()
    return bal


async def _seed_holiday(
    db: AsyncSession,
    holiday_date: date,
    *,
    region: Region = Region.IND,
    description: str = "Public holiday",
) -> Holiday:
    h = Holiday(
        holiday_date=holiday_date,
        region=region,
        description=description,
        year=holiday_date.year,
    )
    db.add(h)
    await db.flush()
    return h


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(employee_id: str, expired: bool = False) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": employee_id,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(employee_id: str) -> dict[str, str]:
    """Bearer auth headers for *employee_id*."""
    return {"Authorization": f"Bearer {create_access_token(employee_id)}"}
