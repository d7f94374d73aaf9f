"""Leave status transitions — which status a change produces, and what it
does to the employee's balance.

Every mutation path (status patch, full update, manager approval, delete)
goes through the same two steps:

1. ``resolve_status(channel, current, requested)`` — a dispatch table over
   ``(channel, requested)`` deciding the resulting main status.
2. ``plan_adjustments(old, new, old_days, new_days)`` — the balance
   adjustments that transition requires.

The ``managerApproval`` sub-record can promote the main status but never
demote it when changed through a record merge (``manager_field``); the
manager-approval endpoint (``manager_review``) sets both.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Optional, Union

from hrms.common.constants import (
    LeaveStatus,
    ManagerApprovalStatus,
    ReconciliationAction,
)


class Channel(str, enum.Enum):
    direct = "direct"
    manager_review = "manager_review"
    manager_field = "manager_field"
    deletion = "deletion"


# A resolved status of None means the record no longer exists.
ResolvedStatus = Optional[LeaveStatus]
Requested = Union[LeaveStatus, ManagerApprovalStatus, None]

_Resolver = Callable[[LeaveStatus], ResolvedStatus]


def _becomes(status: LeaveStatus) -> _Resolver:
    return lambda current: status


def _unchanged(current: LeaveStatus) -> ResolvedStatus:
    return current


def _removed(current: LeaveStatus) -> ResolvedStatus:
    return None


_DISPATCH: dict[tuple[Channel, Requested], _Resolver] = {
    **{(Channel.direct, s): _becomes(s) for s in LeaveStatus},
    (Channel.manager_review, ManagerApprovalStatus.approved): _becomes(LeaveStatus.approved),
    (Channel.manager_review, ManagerApprovalStatus.rejected): _becomes(LeaveStatus.rejected),
    (Channel.manager_field, ManagerApprovalStatus.approved): _becomes(LeaveStatus.approved),
    (Channel.manager_field, ManagerApprovalStatus.rejected): _unchanged,
    (Channel.manager_field, ManagerApprovalStatus.pending): _unchanged,
    (Channel.deletion, None): _removed,
}


def resolve_status(
    channel: Channel,
    current: LeaveStatus,
    requested: Requested = None,
) -> ResolvedStatus:
    """Return the main status after a change arriving through *channel*."""
    try:
        resolver = _DISPATCH[(channel, requested)]
    except KeyError:
        raise ValueError(
            f"Status {getattr(requested, 'value', requested)!r} is not accepted "
            f"through the {channel.value} channel."
        ) from None
    return resolver(current)


def resolve_merge(
    current: LeaveStatus,
    *,
    status: Optional[LeaveStatus] = None,
    manager_status: Optional[ManagerApprovalStatus] = None,
) -> LeaveStatus:
    """Final status for a record merge that may set ``status`` and/or
    ``managerApproval.status``. The direct value is applied first, then the
    manager-approval promotion."""
    result = current
    if status is not None:
        result = resolve_status(Channel.direct, result, status)
    if manager_status is not None:
        result = resolve_status(Channel.manager_field, result, manager_status)
    return result


# ── Balance effects ─────────────────────────────────────────────────

def balance_effect(
    old: LeaveStatus,
    new: ResolvedStatus,
) -> Optional[ReconciliationAction]:
    """
    ============  ==========================  ========
    old           new                         effect
    ============  ==========================  ========
    ≠ approved    approved                    consume
    approved      rejected/canceled/deleted   restore
    approved      pending                     restore
    approved      approved                    —
    other pairs                               —
    ============  ==========================  ========

    A leave holds consumed days exactly while it is approved, so leaving
    approved for any state gives them back.
    """
    if new == LeaveStatus.approved:
        return None if old == LeaveStatus.approved else ReconciliationAction.consume
    if old == LeaveStatus.approved:
        return ReconciliationAction.restore
    return None


@dataclass(frozen=True)
class Adjustment:
    action: ReconciliationAction
    days: int


def plan_adjustments(
    old: LeaveStatus,
    new: ResolvedStatus,
    old_days: int,
    new_days: Optional[int] = None,
) -> list[Adjustment]:
    """Balance adjustments required by a transition.

    Restores always give back the day count that was consumed
    (``old_days``); consumes take the day count of the record as written
    (``new_days``). An approved leave whose dates change while it stays
    approved is re-reconciled as a restore of the old span plus a consume
    of the new one.
    """
    if new_days is None:
        new_days = old_days

    effect = balance_effect(old, new)
    if effect is ReconciliationAction.consume:
        return [Adjustment(ReconciliationAction.consume, new_days)]
    if effect is ReconciliationAction.restore:
        return [Adjustment(ReconciliationAction.restore, old_days)]
    if old == new == LeaveStatus.approved and old_days != new_days:
        return [
            Adjustment(ReconciliationAction.restore, old_days),
            Adjustment(ReconciliationAction.consume, new_days),
        ]
    return []
