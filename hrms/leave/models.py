"""Leave ORM models: LeaveRequest, ReconciliationEvent."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms.common.constants import (
    LeaveStatus,
    LeaveType,
    ManagerApprovalStatus,
    ReconciliationAction,
    ReconciliationOutcome,
)
from hrms.common.models import TimestampMixin, utcnow
from hrms.database import Base

if TYPE_CHECKING:
    from hrms.core_hr.models import Employee


class LeaveRequest(Base, TimestampMixin):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_date_range"),
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type", create_type=False), nullable=False
    )
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", create_type=False),
        nullable=False,
        default=LeaveStatus.pending,
        server_default=LeaveStatus.pending.value,
    )
    comments: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Manager approval sub-record — informational, may diverge from status
    manager_status: Mapped[ManagerApprovalStatus] = mapped_column(
        sa.Enum(ManagerApprovalStatus, name="manager_approval_status", create_type=False),
        nullable=False,
        default=ManagerApprovalStatus.pending,
        server_default=ManagerApprovalStatus.pending.value,
    )
    manager_approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    manager_approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    manager_comments: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )

    # Bumped on every write; transition writes are conditional on it
    version: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=1, server_default=sa.text("1")
    )

    # Relationships
    employee: Mapped[Employee] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )
    manager_approver: Mapped[Optional[Employee]] = relationship(
        foreign_keys=[manager_approved_by]
    )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} {self.status.value} "
            f"{self.start_date}..{self.end_date}>"
        )


class ReconciliationEvent(Base):
    """Append-only log of balance adjustments attempted by the leave workflow."""

    __tablename__ = "leave_reconciliation_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    # No FK: events outlive deleted leave requests
    leave_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False,
    )
    action: Mapped[ReconciliationAction] = mapped_column(
        sa.Enum(ReconciliationAction, name="reconciliation_action", create_type=False),
        nullable=False,
    )
    days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    outcome: Mapped[ReconciliationOutcome] = mapped_column(
        sa.Enum(ReconciliationOutcome, name="reconciliation_outcome", create_type=False),
        nullable=False,
    )
    detail: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )

    __table_args__ = (
        sa.Index("ix_reconciliation_events_leave", "leave_request_id"),
        sa.Index("ix_reconciliation_events_employee", "employee_id"),
        sa.Index("ix_reconciliation_events_outcome", "outcome"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReconciliationEvent {self.action.value} {self.days}d "
            f"{self.outcome.value} leave={self.leave_request_id}>"
        )
