"""Leave service layer — filing, status transitions, manager approval, deletion.

Business logic:
  - Every status change goes through one transition engine: load the
    record, resolve the target status (``transitions.resolve_status``),
    write it with a compare-and-swap on ``(version, status)``, then apply
    the balance adjustments the transition requires exactly once
  - A lost compare-and-swap reloads the record and re-evaluates against
    the fresh state; the balance is only touched by the winning writer
  - Balance adjustments are best-effort (``BalanceReconciler``)
  - All lookups are restricted to the caller's tenant (``TenantScope``)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sqlalchemy import Select, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrms.auth.principal import Principal
from hrms.common.constants import (
    TEAM_LEAVES_VIEW,
    LeaveStatus,
    ManagerApprovalStatus,
    ReconciliationAction,
)
from hrms.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from hrms.common.models import utcnow
from hrms.common.tenancy import TenantScope
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.leave.balance import BalanceReconciler, count_leave_days
from hrms.leave.models import LeaveRequest, ReconciliationEvent
from hrms.leave.schemas import (
    EmployeeBrief,
    LeaveBalanceOut,
    LeaveListFilters,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveStatusUpdate,
    LeaveUpdate,
    ManagerApprovalOut,
    ManagerApprovalRequest,
    ReconciliationEventOut,
)
from hrms.leave.transitions import (
    Adjustment,
    Channel,
    plan_adjustments,
    resolve_merge,
    resolve_status,
)

logger = logging.getLogger(__name__)

# managerApproval sub-record key → LeaveRequest column
_MANAGER_FIELDS = {
    "status": "manager_status",
    "approved_by": "manager_approved_by",
    "approved_at": "manager_approved_at",
    "comments": "manager_comments",
}

_REQUIRED_FIELDS = {
    "start_date": "startDate",
    "end_date": "endDate",
    "type": "type",
    "reason": "reason",
}


@dataclass
class _Change:
    """Outcome of planning a mutation against a loaded record."""

    status: LeaveStatus
    values: dict[str, Any] = field(default_factory=dict)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave workflow operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _leave_query(scope: TenantScope) -> Select:
        query = (
            select(LeaveRequest)
            .join(Employee, LeaveRequest.employee_id == Employee.id)
            .options(selectinload(LeaveRequest.employee))
        )
        return scope.apply(query)

    @staticmethod
    async def _get_leave(
        db: AsyncSession,
        scope: TenantScope,
        leave_id: uuid.UUID,
    ) -> LeaveRequest:
        """Load a leave request with fresh column values."""
        result = await db.execute(
            LeaveService._leave_query(scope)
            .where(LeaveRequest.id == leave_id)
            .execution_options(populate_existing=True)
        )
        leave = result.scalars().first()
        if leave is None:
            raise NotFoundException("LeaveRequest", str(leave_id))
        return leave

    @staticmethod
    async def _get_employee(
        db: AsyncSession,
        scope: TenantScope,
        employee_id: uuid.UUID,
    ) -> Employee:
        result = await db.execute(
            scope.apply(select(Employee).where(Employee.id == employee_id))
            .execution_options(populate_existing=True)
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def _direct_report_ids(
        db: AsyncSession,
        scope: TenantScope,
        manager_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        result = await db.execute(
            scope.apply(
                select(Employee.id).where(Employee.reporting_manager_id == manager_id)
            )
        )
        return [row[0] for row in result.all()]

    @staticmethod
    def _can_view(actor: Principal, employee: Employee) -> bool:
        return (
            actor.has_permission("leave:read_all")
            or employee.id == actor.employee_id
            or actor.is_manager_of(employee)
        )

    @staticmethod
    def _build_response(leave: LeaveRequest) -> LeaveRequestOut:
        """Build LeaveRequestOut from ORM, nesting the manager-approval record."""
        return LeaveRequestOut(
            id=leave.id,
            employee_id=leave.employee_id,
            start_date=leave.start_date,
            end_date=leave.end_date,
            days=count_leave_days(leave.start_date, leave.end_date),
            type=leave.type,
            reason=leave.reason,
            status=leave.status,
            comments=leave.comments,
            manager_approval=ManagerApprovalOut(
                status=leave.manager_status,
                approved_by=leave.manager_approved_by,
                approved_at=leave.manager_approved_at,
                comments=leave.manager_comments or "",
            ),
            created_at=leave.created_at,
            updated_at=leave.updated_at,
            employee=(
                EmployeeBrief.model_validate(leave.employee)
                if leave.employee is not None
                else None
            ),
        )

    @staticmethod
    async def _check_overdraft(
        db: AsyncSession,
        employee_id: uuid.UUID,
        adjustments: list[Adjustment],
    ) -> None:
        """Refuse a transition that would overdraw the balance when the
        overdraft policy is ``reject``."""
        if settings.LEAVE_OVERDRAFT_POLICY != "reject":
            return
        consumed = sum(a.days for a in adjustments if a.action is ReconciliationAction.consume)
        if not consumed:
            return
        restored = sum(a.days for a in adjustments if a.action is ReconciliationAction.restore)

        result = await db.execute(
            select(Employee.leave_total, Employee.leave_used).where(
                Employee.id == employee_id,
            )
        )
        row = result.first()
        if row is None or row.leave_total is None:
            # Nothing to overdraw; the reconciler records the missing balance
            return
        projected = max(0, row.leave_used - restored) + consumed
        if projected > row.leave_total:
            raise ValidationException(
                {"balance": [
                    f"Insufficient leave balance. "
                    f"Remaining: {row.leave_total - row.leave_used}, Requested: {consumed}."
                ]}
            )

    # ─────────────────────────────────────────────────────────────────
    # Transition engine
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _transition(
        db: AsyncSession,
        actor: Principal,
        leave_id: uuid.UUID,
        plan: Callable[[LeaveRequest], _Change],
    ) -> LeaveRequestOut:
        """Load → plan → conditional write → reconcile.

        *plan* may raise (validation / authorization) to abort before any
        write. It is re-run against the reloaded record when a concurrent
        writer got there first.
        """
        max_attempts = max(1, settings.LEAVE_TRANSITION_MAX_RETRIES)

        for attempt in range(1, max_attempts + 1):
            leave = await LeaveService._get_leave(db, actor.scope, leave_id)
            change = plan(leave)

            old_status = leave.status
            old_days = count_leave_days(leave.start_date, leave.end_date)
            new_days = count_leave_days(
                change.values.get("start_date", leave.start_date),
                change.values.get("end_date", leave.end_date),
            )
            adjustments = plan_adjustments(old_status, change.status, old_days, new_days)
            await LeaveService._check_overdraft(db, leave.employee_id, adjustments)

            result = await db.execute(
                update(LeaveRequest)
                .where(
                    LeaveRequest.id == leave.id,
                    LeaveRequest.version == leave.version,
                    LeaveRequest.status == old_status,
                )
                .values(
                    **change.values,
                    status=change.status,
                    version=LeaveRequest.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                break
            logger.warning(
                "Leave %s changed concurrently (attempt %d/%d); re-evaluating",
                leave_id, attempt, max_attempts,
            )
        else:
            raise ConflictError(
                f"Leave request '{leave_id}' was modified concurrently; please retry."
            )

        if old_status != change.status:
            logger.info(
                "Leave %s: %s -> %s", leave_id, old_status.value, change.status.value,
            )
        if adjustments:
            await BalanceReconciler(db).apply(
                adjustments, leave.employee_id, leave_request_id=leave.id,
            )

        return LeaveService._build_response(
            await LeaveService._get_leave(db, actor.scope, leave_id)
        )

    # ─────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_leave(
        db: AsyncSession,
        actor: Principal,
        data: LeaveRequestCreate,
    ) -> LeaveRequestOut:
        """File a leave request in ``pending``. No balance effect."""

        if not actor.has_permission("leave:request"):
            raise ForbiddenException("You are not allowed to file leave requests.")

        target_id = data.employee or actor.employee_id
        if target_id is None:
            raise ValidationException(
                {"employee": [
                    "No employee profile is linked to this account; "
                    "specify the employee."
                ]}
            )

        employee = await LeaveService._get_employee(db, actor.scope, target_id)
        if employee.id != actor.employee_id and not (
            actor.has_permission("leave:read_all") or actor.is_manager_of(employee)
        ):
            raise ForbiddenException(
                "You can only file leave for yourself or your direct reports."
            )

        leave = LeaveRequest(
            employee_id=employee.id,
            start_date=data.start_date,
            end_date=data.end_date,
            type=data.type,
            reason=data.reason,
            comments=data.comments,
            status=LeaveStatus.pending,
            manager_status=ManagerApprovalStatus.pending,
            manager_comments="",
            version=1,
        )
        db.add(leave)
        await db.flush()

        logger.info(
            "Leave %s filed for employee %s: %s..%s",
            leave.id, employee.id, data.start_date, data.end_date,
        )
        return LeaveService._build_response(
            await LeaveService._get_leave(db, actor.scope, leave.id)
        )

    # ─────────────────────────────────────────────────────────────────
    # Status patch (admin)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_status(
        db: AsyncSession,
        actor: Principal,
        leave_id: uuid.UUID,
        data: LeaveStatusUpdate,
    ) -> LeaveRequestOut:
        """Set the main status. Leaves ``managerApproval`` untouched."""

        if not actor.has_permission("leave:update_status"):
            raise ForbiddenException("Admin access required to update leave status.")

        def plan(leave: LeaveRequest) -> _Change:
            values: dict[str, Any] = {}
            if data.comments is not None:
                values["comments"] = data.comments
            return _Change(
                resolve_status(Channel.direct, leave.status, data.status), values,
            )

        return await LeaveService._transition(db, actor, leave_id, plan)

    # ─────────────────────────────────────────────────────────────────
    # Full update (record merge)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_leave(
        db: AsyncSession,
        actor: Principal,
        leave_id: uuid.UUID,
        data: LeaveUpdate,
    ) -> LeaveRequestOut:
        """Merge the fields present in *data* into the record.

        ``managerApproval.status = approved`` promotes the main status to
        approved; a manager rejection in a merge does not demote it.
        """

        fields = data.model_dump(exclude_unset=True)
        manager = fields.pop("manager_approval", None)
        requested_status = fields.pop("status", None)

        for name, alias in _REQUIRED_FIELDS.items():
            if name in fields and fields[name] is None:
                raise ValidationException({alias: ["This field cannot be null."]})

        manager_values: dict[str, Any] = {}
        manager_status: Optional[ManagerApprovalStatus] = None
        if manager:
            for key, column in _MANAGER_FIELDS.items():
                if key in manager:
                    manager_values[column] = manager[key]
            manager_status = manager_values.get("manager_status")
            if manager_status is None:
                manager_values.pop("manager_status", None)
            if "manager_comments" in manager_values and manager_values["manager_comments"] is None:
                manager_values["manager_comments"] = ""

        approver_id = manager_values.get("manager_approved_by")
        if approver_id is not None:
            try:
                await LeaveService._get_employee(db, actor.scope, approver_id)
            except NotFoundException:
                raise ValidationException(
                    {"managerApproval.approvedBy": ["Unknown employee."]}
                ) from None

        changes_state = requested_status is not None or bool(manager_values)

        def plan(leave: LeaveRequest) -> _Change:
            privileged = actor.has_permission("leave:manage")
            if not privileged and leave.employee_id != actor.employee_id:
                raise ForbiddenException("Not authorized to update this leave request.")
            if not privileged and changes_state:
                raise ForbiddenException(
                    "Changing the status or manager approval of a leave "
                    "requires HR or admin access."
                )

            start = fields.get("start_date", leave.start_date)
            end = fields.get("end_date", leave.end_date)
            if end < start:
                raise ValidationException(
                    {"endDate": ["endDate must be on or after startDate."]}
                )
            if (
                not privileged
                and leave.status == LeaveStatus.approved
                and (start, end) != (leave.start_date, leave.end_date)
            ):
                raise ForbiddenException(
                    "Changing the dates of an approved leave requires HR or "
                    "admin access."
                )

            status = resolve_merge(
                leave.status, status=requested_status, manager_status=manager_status,
            )
            return _Change(status, {**fields, **manager_values})

        return await LeaveService._transition(db, actor, leave_id, plan)

    # ─────────────────────────────────────────────────────────────────
    # Manager approval
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def manager_approval(
        db: AsyncSession,
        actor: Principal,
        leave_id: uuid.UUID,
        data: ManagerApprovalRequest,
    ) -> LeaveRequestOut:
        """Record the manager's decision and carry it to the main status.

        Allowed for the employee's reporting manager, HR/admin, or anyone
        when the employee has no reporting manager.
        """

        def plan(leave: LeaveRequest) -> _Change:
            employee = leave.employee
            if not (
                employee.reporting_manager_id is None
                or actor.is_manager_of(employee)
                or actor.has_permission("leave:manager_approve")
            ):
                raise ForbiddenException(
                    "Only the employee's reporting manager or HR can review "
                    "this leave request."
                )
            values = {
                "manager_status": data.status,
                "manager_approved_by": actor.employee_id,
                "manager_approved_at": utcnow(),
                "manager_comments": data.comments or "",
            }
            return _Change(
                resolve_status(Channel.manager_review, leave.status, data.status),
                values,
            )

        return await LeaveService._transition(db, actor, leave_id, plan)

    # ─────────────────────────────────────────────────────────────────
    # Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_leave(
        db: AsyncSession,
        actor: Principal,
        leave_id: uuid.UUID,
    ) -> None:
        """Delete a leave request, giving back its days if it was approved.

        The record is removed regardless of the balance outcome.
        """

        max_attempts = max(1, settings.LEAVE_TRANSITION_MAX_RETRIES)
        for attempt in range(1, max_attempts + 1):
            leave = await LeaveService._get_leave(db, actor.scope, leave_id)
            if not (
                leave.employee_id == actor.employee_id
                or actor.has_permission("leave:manage")
            ):
                raise ForbiddenException("Not authorized to delete this leave request.")

            result = await db.execute(
                delete(LeaveRequest)
                .where(
                    LeaveRequest.id == leave.id,
                    LeaveRequest.version == leave.version,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                break
            logger.warning(
                "Leave %s changed concurrently during delete (attempt %d/%d)",
                leave_id, attempt, max_attempts,
            )
        else:
            raise ConflictError(
                f"Leave request '{leave_id}' was modified concurrently; please retry."
            )

        old_status = leave.status
        employee_id = leave.employee_id
        days = count_leave_days(leave.start_date, leave.end_date)
        db.expunge(leave)

        logger.info("Leave %s deleted (was %s)", leave_id, old_status.value)
        adjustments = plan_adjustments(
            old_status, resolve_status(Channel.deletion, old_status), days,
        )
        if adjustments:
            await BalanceReconciler(db).apply(
                adjustments, employee_id, leave_request_id=leave_id,
            )

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave(
        db: AsyncSession,
        actor: Principal,
        leave_id: uuid.UUID,
    ) -> LeaveRequestOut:
        leave = await LeaveService._get_leave(db, actor.scope, leave_id)
        if not LeaveService._can_view(actor, leave.employee):
            raise ForbiddenException("Not authorized to view this leave request.")
        return LeaveService._build_response(leave)

    @staticmethod
    async def list_leaves(
        db: AsyncSession,
        actor: Principal,
        filters: LeaveListFilters,
    ) -> list[LeaveRequestOut]:
        """List leave requests, newest first.

        HR/admin see the whole tenant. Everyone else sees themselves and
        their direct reports: no employee filter → own leaves,
        ``view=team-leaves`` → direct reports' leaves, explicit employee
        filters → intersected with that visible set.
        """

        requested: Optional[list[uuid.UUID]] = None
        if filters.employee_ids:
            requested = list(filters.employee_ids)
        elif filters.employee:
            requested = [filters.employee]

        if not actor.has_permission("leave:read_all"):
            me = actor.employee_id
            if me is None:
                raise NotFoundException("Employee", str(actor.user_id))
            reports = await LeaveService._direct_report_ids(db, actor.scope, me)
            if requested is None:
                requested = reports if filters.view == TEAM_LEAVES_VIEW else [me]
            else:
                visible = set(reports) | {me}
                requested = [eid for eid in requested if eid in visible]
            if not requested:
                return []

        query = LeaveService._leave_query(actor.scope).order_by(
            LeaveRequest.created_at.desc()
        )
        if requested is not None:
            query = query.where(LeaveRequest.employee_id.in_(requested))
        if filters.status:
            query = query.where(LeaveRequest.status == filters.status)

        result = await db.execute(query)
        return [LeaveService._build_response(r) for r in result.scalars().all()]

    @staticmethod
    async def list_employee_leaves(
        db: AsyncSession,
        actor: Principal,
        employee_id: uuid.UUID,
    ) -> list[LeaveRequestOut]:
        employee = await LeaveService._get_employee(db, actor.scope, employee_id)
        if not LeaveService._can_view(actor, employee):
            raise ForbiddenException("Not authorized to view this employee's leaves.")

        result = await db.execute(
            LeaveService._leave_query(actor.scope)
            .where(LeaveRequest.employee_id == employee_id)
            .order_by(LeaveRequest.created_at.desc())
        )
        return [LeaveService._build_response(r) for r in result.scalars().all()]

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        actor: Principal,
        employee_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalanceOut:
        target_id = employee_id or actor.employee_id
        if target_id is None:
            raise NotFoundException("Employee", str(actor.user_id))

        employee = await LeaveService._get_employee(db, actor.scope, target_id)
        if not LeaveService._can_view(actor, employee):
            raise ForbiddenException("Not authorized to view this employee's balance.")

        balance = employee.leave_balance
        if balance is None:
            return LeaveBalanceOut(employee_id=employee.id)
        return LeaveBalanceOut(
            employee_id=employee.id,
            total=balance.total,
            used=balance.used,
            remaining=balance.remaining,
        )

    @staticmethod
    async def list_reconciliation_events(
        db: AsyncSession,
        actor: Principal,
        leave_id: uuid.UUID,
    ) -> list[ReconciliationEventOut]:
        """Balance adjustments recorded for a leave, oldest first. Available
        after the leave itself has been deleted."""

        if not actor.has_permission("leave:audit"):
            raise ForbiddenException("HR or admin access required.")

        result = await db.execute(
            actor.scope.apply(
                select(ReconciliationEvent)
                .join(Employee, ReconciliationEvent.employee_id == Employee.id)
                .where(ReconciliationEvent.leave_request_id == leave_id)
            ).order_by(ReconciliationEvent.created_at.asc())
        )
        return [
            ReconciliationEventOut.model_validate(e) for e in result.scalars().all()
        ]
