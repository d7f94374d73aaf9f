"""Leave router — file, review, update, delete leave requests and read balances.

All endpoints require authentication. Role and reporting-line checks are
enforced in the service layer.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user, require_permission
from hrms.auth.principal import Principal
from hrms.common.constants import LeaveStatus
from hrms.common.exceptions import ValidationException
from hrms.common.rate_limit import limiter
from hrms.common.responses import ApiResponse, ok
from hrms.database import get_db
from hrms.leave.schemas import (
    LeaveBalanceOut,
    LeaveListFilters,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveStatusUpdate,
    LeaveUpdate,
    ManagerApprovalRequest,
    ReconciliationEventOut,
)
from hrms.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])

LEAVE_CREATE_RATE_LIMIT = "10/minute"


def _parse_employee_ids(raw: Optional[str]) -> Optional[list[uuid.UUID]]:
    """Parse a comma-separated ``employeeIds`` query value."""
    if not raw:
        return None
    ids: list[uuid.UUID] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(uuid.UUID(part))
        except ValueError:
            raise ValidationException({"employeeIds": [f"'{part}' is not a valid id."]})
    return ids or None


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=ApiResponse[list[LeaveRequestOut]])
async def list_leaves(
    employee_ids: Optional[str] = Query(None, alias="employeeIds"),
    employee: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    view: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List leave requests visible to the caller, newest first."""
    filters = LeaveListFilters(
        employee_ids=_parse_employee_ids(employee_ids),
        employee=employee,
        status=status,
        view=view,
    )
    return ok(await LeaveService.list_leaves(db, principal, filters))


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=ApiResponse[LeaveBalanceOut])
async def my_balance(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's own leave balance."""
    return ok(await LeaveService.get_balance(db, principal))


# ── GET /employee/{id} ──────────────────────────────────────────────

@router.get("/employee/{employee_id}", response_model=ApiResponse[list[LeaveRequestOut]])
async def employee_leaves(
    employee_id: uuid.UUID,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await LeaveService.list_employee_leaves(db, principal, employee_id))


@router.get("/employee/{employee_id}/balance", response_model=ApiResponse[LeaveBalanceOut])
async def employee_balance(
    employee_id: uuid.UUID,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await LeaveService.get_balance(db, principal, employee_id))


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{leave_id}", response_model=ApiResponse[LeaveRequestOut])
async def get_leave(
    leave_id: uuid.UUID,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await LeaveService.get_leave(db, principal, leave_id))


@router.get(
    "/{leave_id}/reconciliations",
    response_model=ApiResponse[list[ReconciliationEventOut]],
)
async def leave_reconciliations(
    leave_id: uuid.UUID,
    principal: Principal = Depends(require_permission("leave:audit")),
    db: AsyncSession = Depends(get_db),
):
    """Balance adjustments recorded for a leave (HR / admin)."""
    return ok(await LeaveService.list_reconciliation_events(db, principal, leave_id))


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", status_code=201, response_model=ApiResponse[LeaveRequestOut])
@limiter.limit(LEAVE_CREATE_RATE_LIMIT)
async def create_leave(
    request: Request,
    body: LeaveRequestCreate,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """File a leave request (starts ``pending``; no balance effect)."""
    leave = await LeaveService.create_leave(db, principal, body)
    return ok(leave, "Leave request created successfully")


# ── PATCH /{id}/status ──────────────────────────────────────────────

@router.patch("/{leave_id}/status", response_model=ApiResponse[LeaveRequestOut])
async def update_leave_status(
    leave_id: uuid.UUID,
    body: LeaveStatusUpdate,
    principal: Principal = Depends(require_permission("leave:update_status")),
    db: AsyncSession = Depends(get_db),
):
    """Approve, reject or cancel a leave (admin). Adjusts the balance."""
    leave = await LeaveService.update_status(db, principal, leave_id, body)
    return ok(leave, "Leave status updated successfully")


# ── PUT /{id} ───────────────────────────────────────────────────────

@router.put("/{leave_id}", response_model=ApiResponse[LeaveRequestOut])
async def update_leave(
    leave_id: uuid.UUID,
    body: LeaveUpdate,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Merge the given fields into the leave request."""
    leave = await LeaveService.update_leave(db, principal, leave_id, body)
    return ok(leave, "Leave request updated successfully")


# ── PUT /{id}/manager-approval ──────────────────────────────────────

@router.put("/{leave_id}/manager-approval", response_model=ApiResponse[LeaveRequestOut])
async def manager_approval(
    leave_id: uuid.UUID,
    body: ManagerApprovalRequest,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reporting manager's approve / reject decision."""
    leave = await LeaveService.manager_approval(db, principal, leave_id, body)
    return ok(leave, f"Leave request {body.status.value} by manager")


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{leave_id}", response_model=ApiResponse[None])
async def delete_leave(
    leave_id: uuid.UUID,
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a leave request; an approved leave's days are given back."""
    await LeaveService.delete_leave(db, principal, leave_id)
    return ok(None, "Leave request deleted successfully")
