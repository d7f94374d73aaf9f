"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hrms.common.constants import (
    EmployeeStatus,
    LeaveStatus,
    LeaveType,
    ManagerApprovalStatus,
    UserRole,
)
from hrms.config import settings
from hrms.database import Base, get_db
from hrms.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import hrms.core_hr.models  # noqa: F401
import hrms.leave.models  # noqa: F401

from hrms.core_hr.models import Company, Employee
from hrms.leave.models import LeaveRequest

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


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
    from hrms.common.rate_limit import limiter

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

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

async def make_company(
    db: AsyncSession,
    *,
    name: Optional[str] = None,
) -> Company:
    suffix = uuid.uuid4().hex[:8]
    company = Company(
        id=uuid.uuid4(),
        name=name or f"Company {suffix}",
        email_domain=f"{suffix}.example.com",
    )
    db.add(company)
    await db.flush()
    return company


async def make_employee(
    db: AsyncSession,
    company: Company,
    *,
    first_name: str = "Test",
    last_name: str = "User",
    role: UserRole = UserRole.employee,
    leave_total: Optional[int] = 20,
    leave_used: int = 0,
    manager: Optional[Employee] = None,
    status: EmployeeStatus = EmployeeStatus.active,
) -> Employee:
    emp = Employee(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        company_id=company.id,
        first_name=first_name,
        last_name=last_name,
        email=f"{first_name.lower()}.{uuid.uuid4().hex[:8]}@example.com",
        role=role,
        status=status,
        reporting_manager_id=manager.id if manager is not None else None,
        leave_total=leave_total,
        leave_used=leave_used,
    )
    db.add(emp)
    await db.flush()
    return emp


async def make_leave(
    db: AsyncSession,
    employee: Employee,
    *,
    start_date: date = date(2026, 3, 2),
    end_date: date = date(2026, 3, 4),
    status: LeaveStatus = LeaveStatus.pending,
    manager_status: ManagerApprovalStatus = ManagerApprovalStatus.pending,
    leave_type: LeaveType = LeaveType.annual,
    reason: str = "Family event",
) -> LeaveRequest:
    """Insert a leave request as-is. Seeding an approved leave does not
    touch the balance; pass matching ``leave_used`` to the employee."""
    leave = LeaveRequest(
        id=uuid.uuid4(),
        employee_id=employee.id,
        start_date=start_date,
        end_date=end_date,
        type=leave_type,
        reason=reason,
        status=status,
        manager_status=manager_status,
        manager_comments="",
        version=1,
    )
    db.add(leave)
    await db.flush()
    return leave


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    company_id: Optional[uuid.UUID] = None,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(user_id),
        "role": role.value,
        "type": token_type,
        "exp": exp,
    }
    if company_id is not None:
        payload["company"] = str(company_id)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(employee: Employee, role: Optional[UserRole] = None) -> dict[str, str]:
    """Bearer headers for *employee*, using its stored role unless overridden."""
    token = create_access_token(
        employee.user_id, role or employee.role, employee.company_id,
    )
    return {"Authorization": f"Bearer {token}"}
