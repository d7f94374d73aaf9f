"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request  → request bodies (write)
  - *Out                          → response bodies (read)
  - *Brief                        → compact embedded representations

JSON keys are camelCase (``startDate``, ``managerApproval``); request
bodies also accept the snake_case field names.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from hrms.common.constants import (
    LeaveStatus,
    LeaveType,
    ManagerApprovalStatus,
    ReconciliationAction,
    ReconciliationOutcome,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _truncate_to_date(value: Any) -> Any:
    """Accept ISO datetimes for date fields by dropping the time part."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(_CamelModel):
    """Minimal employee info embedded in leave responses."""

    id: uuid.UUID
    first_name: str
    last_name: str


class ManagerApprovalOut(_CamelModel):
    status: ManagerApprovalStatus = ManagerApprovalStatus.pending
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    comments: str = ""


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(_CamelModel):
    """Payload for filing a leave request, for oneself or on behalf of
    another employee (``employee``)."""

    employee: Optional[uuid.UUID] = Field(
        None,
        validation_alias=AliasChoices("employee", "employeeId", "employee_id"),
        description="Employee the leave is filed for; defaults to the caller",
    )
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    type: LeaveType
    reason: str = Field(..., max_length=1000)
    comments: Optional[str] = Field(None, max_length=1000)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def truncate_datetimes(cls, v: Any) -> Any:
        return _truncate_to_date(v)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Reason is required")
        return v

    @field_validator("comments")
    @classmethod
    def strip_comments(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.end_date < self.start_date:
            raise ValueError("endDate must be on or after startDate.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Status / manager approval / merge updates
# ═════════════════════════════════════════════════════════════════════


class LeaveStatusUpdate(_CamelModel):
    """Payload for the administrative status patch."""

    status: LeaveStatus
    comments: Optional[str] = Field(None, max_length=1000)

    @field_validator("status")
    @classmethod
    def not_pending(cls, v: LeaveStatus) -> LeaveStatus:
        if v == LeaveStatus.pending:
            raise ValueError("Invalid status")
        return v


class ManagerApprovalRequest(_CamelModel):
    """Payload for the reporting manager's decision."""

    status: ManagerApprovalStatus
    comments: Optional[str] = Field(None, max_length=1000)

    @field_validator("status")
    @classmethod
    def decided(cls, v: ManagerApprovalStatus) -> ManagerApprovalStatus:
        if v == ManagerApprovalStatus.pending:
            raise ValueError("Invalid status")
        return v


class ManagerApprovalUpdate(_CamelModel):
    """Partial ``managerApproval`` sub-record inside a record merge."""

    status: Optional[ManagerApprovalStatus] = None
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    comments: Optional[str] = None


class LeaveUpdate(_CamelModel):
    """Partial record merge. Only the fields present in the body change."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    type: Optional[LeaveType] = None
    reason: Optional[str] = Field(None, max_length=1000)
    comments: Optional[str] = Field(None, max_length=1000)
    status: Optional[LeaveStatus] = None
    manager_approval: Optional[ManagerApprovalUpdate] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def truncate_datetimes(cls, v: Any) -> Any:
        return _truncate_to_date(v)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Reason cannot be empty")
        return v


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(_CamelModel):
    """Full leave request response."""

    id: uuid.UUID
    employee_id: uuid.UUID
    start_date: date
    end_date: date
    days: int
    type: LeaveType
    reason: str
    status: LeaveStatus
    comments: Optional[str] = None
    manager_approval: ManagerApprovalOut
    created_at: datetime
    updated_at: datetime

    employee: Optional[EmployeeBrief] = None


class LeaveBalanceOut(_CamelModel):
    """Employee leave counters; all None when no balance is configured."""

    employee_id: uuid.UUID
    total: Optional[int] = None
    used: Optional[int] = None
    remaining: Optional[int] = None


class ReconciliationEventOut(_CamelModel):
    id: uuid.UUID
    leave_request_id: uuid.UUID
    employee_id: uuid.UUID
    action: ReconciliationAction
    days: int
    outcome: ReconciliationOutcome
    detail: Optional[str] = None
    created_at: datetime


class LeaveListFilters(BaseModel):
    """Query filters for listing leave requests."""

    employee_ids: Optional[list[uuid.UUID]] = None
    employee: Optional[uuid.UUID] = None
    status: Optional[LeaveStatus] = None
    view: Optional[str] = None
