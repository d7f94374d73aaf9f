"""Enums and constants for HRMS — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Company / Employee ──────────────────────────────────────────────

class CompanyStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"


class EmployeeStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    on_leave = "on_leave"


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr = "hr"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    canceled = "canceled"


class LeaveType(str, enum.Enum):
    annual = "annual"
    sick = "sick"
    personal = "personal"
    other = "other"


class ManagerApprovalStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ReconciliationAction(str, enum.Enum):
    consume = "consume"
    restore = "restore"


class ReconciliationOutcome(str, enum.Enum):
    applied = "applied"
    failed = "failed"


# ── Role-based permissions ──────────────────────────────────────────
# Employees and managers act through the reporting line (own leaves,
# direct reports' leaves); these strings grant everything beyond it.

PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.employee: [
        "leave:request",
    ],
    UserRole.manager: [
        "leave:request",
    ],
    UserRole.hr: [
        "leave:request",
        "leave:read_all",
        "leave:manage",
        "leave:manager_approve",
        "leave:audit",
    ],
    UserRole.admin: [
        "leave:request",
        "leave:read_all",
        "leave:manage",
        "leave:manager_approve",
        "leave:update_status",
        "leave:audit",
    ],
}

# ── Misc constants ──────────────────────────────────────────────────

TEAM_LEAVES_VIEW = "team-leaves"
