"""The authenticated caller as seen by the service layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from hrms.common.constants import PERMISSIONS, UserRole
from hrms.common.tenancy import TenantScope
from hrms.core_hr.models import Employee


@dataclass
class Principal:
    user_id: uuid.UUID
    role: UserRole
    employee: Optional[Employee] = None
    company_id: Optional[uuid.UUID] = None

    @property
    def employee_id(self) -> Optional[uuid.UUID]:
        return self.employee.id if self.employee is not None else None

    @property
    def scope(self) -> TenantScope:
        return TenantScope(self.company_id)

    def has_permission(self, permission: str) -> bool:
        return permission in PERMISSIONS.get(self.role, [])

    def is_manager_of(self, employee: Employee) -> bool:
        return (
            self.employee_id is not None
            and employee.reporting_manager_id == self.employee_id
        )

    @classmethod
    def for_employee(cls, employee: Employee, role: Optional[UserRole] = None) -> Principal:
        """Principal acting as *employee* with its stored role."""
        return cls(
            user_id=employee.user_id,
            role=role or employee.role,
            employee=employee,
            company_id=employee.company_id,
        )
