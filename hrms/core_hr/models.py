"""Core HR ORM models: Company, Employee.

SQLAlchemy 2.0 async-compatible models with Mapped[] annotations.
The leave balance lives on the employee row: ``leave_total`` and
``leave_used`` are written, ``leave_remaining`` is a generated column.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms.common.constants import CompanyStatus, EmployeeStatus, UserRole
from hrms.common.models import TimestampMixin
from hrms.database import Base

if TYPE_CHECKING:
    from hrms.leave.models import LeaveRequest


@dataclass(frozen=True)
class LeaveBalance:
    """Snapshot of an employee's leave counters."""

    total: int
    used: int
    remaining: int


# ═════════════════════════════════════════════════════════════════════
# Company
# ═════════════════════════════════════════════════════════════════════


class Company(Base, TimestampMixin):
    """Tenant. Employees and their leave records never cross companies."""

    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(200), unique=True, nullable=False)
    email_domain: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    status: Mapped[CompanyStatus] = mapped_column(
        sa.Enum(CompanyStatus, name="company_status", create_type=False),
        default=CompanyStatus.active,
        server_default=CompanyStatus.active.value,
    )

    # ── Relationships ───────────────────────────────────────────────
    employees: Mapped[list[Employee]] = relationship(back_populates="company")

    def __repr__(self) -> str:
        return f"<Company {self.name!r}>"


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base, TimestampMixin):
    """Employee record — owner of the leave balance."""

    __tablename__ = "employees"

    # ── Primary key / identity ──────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), unique=True, nullable=False,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("companies.id"), nullable=False,
    )

    # ── Profile ─────────────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    position: Mapped[Optional[str]] = mapped_column(sa.String(150))
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role", create_type=False),
        default=UserRole.employee,
        server_default=UserRole.employee.value,
    )
    status: Mapped[EmployeeStatus] = mapped_column(
        sa.Enum(EmployeeStatus, name="employee_status", create_type=False),
        default=EmployeeStatus.active,
        server_default=EmployeeStatus.active.value,
    )

    # ── Reporting line ──────────────────────────────────────────────
    reporting_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )

    # ── Leave balance ───────────────────────────────────────────────
    # NULL total means no balance has been configured for this employee.
    leave_total: Mapped[Optional[int]] = mapped_column(sa.Integer)
    leave_used: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, server_default=sa.text("0"), default=0,
    )
    # Generated column — read-only in ORM
    leave_remaining: Mapped[Optional[int]] = mapped_column(
        sa.Integer,
        sa.Computed("leave_total - leave_used"),
    )

    # ── Relationships ───────────────────────────────────────────────
    company: Mapped[Company] = relationship(back_populates="employees")
    reporting_manager: Mapped[Optional[Employee]] = relationship(
        remote_side=[id], foreign_keys=[reporting_manager_id],
    )
    leave_requests: Mapped[list[LeaveRequest]] = relationship(
        back_populates="employee",
        foreign_keys="LeaveRequest.employee_id",
    )

    __table_args__ = (
        sa.CheckConstraint("leave_total IS NULL OR leave_total >= 0", name="ck_leave_total_non_negative"),
        sa.CheckConstraint("leave_used >= 0", name="ck_leave_used_non_negative"),
        sa.Index("ix_employees_company_id", "company_id"),
        sa.Index("ix_employees_reporting_manager_id", "reporting_manager_id"),
    )

    @property
    def leave_balance(self) -> Optional[LeaveBalance]:
        if self.leave_total is None:
            return None
        used = self.leave_used or 0
        return LeaveBalance(
            total=self.leave_total,
            used=used,
            remaining=self.leave_total - used,
        )

    def __repr__(self) -> str:
        return f"<Employee {self.email!r}>"
