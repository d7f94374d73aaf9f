"""Leave day counting and balance reconciliation.

Balance adjustments are best-effort: a failed adjustment never undoes the
leave change that triggered it. Each attempt, successful or not, is
recorded as a ``ReconciliationEvent`` so balance drift can be traced.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

import sqlalchemy as sa
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.constants import (
    LeaveStatus,
    ReconciliationAction,
    ReconciliationOutcome,
)
from hrms.common.exceptions import ReconciliationError
from hrms.common.tenancy import TenantScope
from hrms.core_hr.models import Employee
from hrms.leave.models import LeaveRequest, ReconciliationEvent
from hrms.leave.transitions import Adjustment

logger = logging.getLogger(__name__)


# ── Day count ───────────────────────────────────────────────────────

def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def count_leave_days(
    start_date: Union[date, datetime],
    end_date: Union[date, datetime],
) -> int:
    """Inclusive calendar-day span of a leave: a single-day leave is 1.

    Datetimes are truncated to their calendar date; partial days are not
    supported, a leave always consumes whole days.
    """
    start = _as_date(start_date)
    end = _as_date(end_date)
    if end < start:
        raise ValueError(f"end_date {end} is before start_date {start}.")
    return (end - start).days + 1


# ── Reconciler ──────────────────────────────────────────────────────

class BalanceReconciler:
    """Applies consume / restore adjustments to an employee's leave balance.

    Each adjustment is a single conditional UPDATE inside a SAVEPOINT, so a
    failure rolls back only the adjustment and leaves the caller's
    transaction usable.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def consume(
        self,
        employee_id: uuid.UUID,
        days: int,
        *,
        leave_request_id: uuid.UUID,
    ) -> bool:
        """``used += days``. Does not clamp: remaining may go negative."""
        stmt = (
            update(Employee)
            .where(Employee.id == employee_id, Employee.leave_total.is_not(None))
            .values(leave_used=Employee.leave_used + days)
            .execution_options(synchronize_session=False)
        )
        applied = await self._adjust(
            ReconciliationAction.consume, stmt, employee_id, days, leave_request_id,
        )
        if applied:
            await self._warn_if_overdrawn(employee_id)
        return applied

    async def restore(
        self,
        employee_id: uuid.UUID,
        days: int,
        *,
        leave_request_id: uuid.UUID,
    ) -> bool:
        """``used = max(0, used - days)``."""
        stmt = (
            update(Employee)
            .where(Employee.id == employee_id, Employee.leave_total.is_not(None))
            .values(
                leave_used=sa.case(
                    (Employee.leave_used > days, Employee.leave_used - days),
                    else_=0,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return await self._adjust(
            ReconciliationAction.restore, stmt, employee_id, days, leave_request_id,
        )

    async def apply(
        self,
        adjustments: list[Adjustment],
        employee_id: uuid.UUID,
        *,
        leave_request_id: uuid.UUID,
    ) -> list[bool]:
        results: list[bool] = []
        for adj in adjustments:
            if adj.action is ReconciliationAction.consume:
                ok = await self.consume(
                    employee_id, adj.days, leave_request_id=leave_request_id,
                )
            else:
                ok = await self.restore(
                    employee_id, adj.days, leave_request_id=leave_request_id,
                )
            results.append(ok)
        return results

    # ── internals ───────────────────────────────────────────────────

    async def _adjust(
        self,
        action: ReconciliationAction,
        stmt: sa.Update,
        employee_id: uuid.UUID,
        days: int,
        leave_request_id: uuid.UUID,
    ) -> bool:
        try:
            try:
                async with self.db.begin_nested():
                    result = await self.db.execute(stmt)
                    if result.rowcount != 1:
                        raise ReconciliationError(
                            employee_id,
                            action.value,
                            days,
                            await self._missing_reason(employee_id),
                        )
            except SQLAlchemyError as exc:
                raise ReconciliationError(
                    employee_id, action.value, days, f"database error: {exc}",
                ) from exc
        except ReconciliationError as exc:
            logger.warning("Leave balance not adjusted (leave %s): %s", leave_request_id, exc)
            self._record(
                leave_request_id, employee_id, action, days,
                ReconciliationOutcome.failed, exc.reason,
            )
            return False

        logger.info(
            "Leave balance %s %d day(s) for employee %s (leave %s)",
            "consumed" if action is ReconciliationAction.consume else "restored",
            days, employee_id, leave_request_id,
        )
        self._record(
            leave_request_id, employee_id, action, days,
            ReconciliationOutcome.applied, None,
        )
        return True

    async def _missing_reason(self, employee_id: uuid.UUID) -> str:
        result = await self.db.execute(
            select(Employee.leave_total).where(Employee.id == employee_id)
        )
        row = result.first()
        if row is None:
            return "employee not found"
        return "employee has no leave balance configured"

    async def _warn_if_overdrawn(self, employee_id: uuid.UUID) -> None:
        result = await self.db.execute(
            select(Employee.leave_total, Employee.leave_used).where(
                Employee.id == employee_id,
            )
        )
        row = result.first()
        if row is not None and row.leave_used > row.leave_total:
            logger.warning(
                "Employee %s leave balance overdrawn: used %d of %d",
                employee_id, row.leave_used, row.leave_total,
            )

    def _record(
        self,
        leave_request_id: uuid.UUID,
        employee_id: uuid.UUID,
        action: ReconciliationAction,
        days: int,
        outcome: ReconciliationOutcome,
        detail: Optional[str],
    ) -> None:
        self.db.add(
            ReconciliationEvent(
                leave_request_id=leave_request_id,
                employee_id=employee_id,
                action=action,
                days=days,
                outcome=outcome,
                detail=detail,
            )
        )


# ── Drift audit ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class BalanceDrift:
    employee_id: uuid.UUID
    recorded_used: int
    expected_used: int

    @property
    def delta(self) -> int:
        return self.recorded_used - self.expected_used


async def find_balance_drift(
    db: AsyncSession,
    scope: TenantScope = TenantScope(),
) -> list[BalanceDrift]:
    """Compare each configured balance's ``used`` with the day count of the
    employee's approved leaves.

    Failed or skipped reconciliations show up here as drift.
    """
    emp_rows = (
        await db.execute(
            scope.apply(
                select(Employee.id, Employee.leave_used).where(
                    Employee.leave_total.is_not(None),
                )
            ).order_by(Employee.id)
        )
    ).all()

    leave_rows = await db.execute(
        select(
            LeaveRequest.employee_id,
            LeaveRequest.start_date,
            LeaveRequest.end_date,
        ).where(LeaveRequest.status == LeaveStatus.approved)
    )
    expected: dict[uuid.UUID, int] = defaultdict(int)
    for row in leave_rows.all():
        expected[row.employee_id] += count_leave_days(row.start_date, row.end_date)

    return [
        BalanceDrift(row.id, row.leave_used, expected.get(row.id, 0))
        for row in emp_rows
        if row.leave_used != expected.get(row.id, 0)
    ]


async def fix_balance_drift(db: AsyncSession, drifts: list[BalanceDrift]) -> int:
    """Overwrite ``used`` with the expected value for each drifted balance."""
    for drift in drifts:
        await db.execute(
            update(Employee)
            .where(Employee.id == drift.employee_id)
            .values(leave_used=drift.expected_used)
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "Employee %s leave used corrected: %d -> %d",
            drift.employee_id, drift.recorded_used, drift.expected_used,
        )
    return len(drifts)
