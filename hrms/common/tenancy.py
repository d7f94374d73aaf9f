"""Tenant isolation: every employee belongs to exactly one company."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import Select

from hrms.core_hr.models import Employee


@dataclass(frozen=True)
class TenantScope:
    """Predicate restricting queries and lookups to one company.

    ``company_id=None`` is the unrestricted scope used by operational
    scripts; API callers always carry their company.
    """

    company_id: Optional[uuid.UUID] = None

    def apply(self, query: Select) -> Select:
        """Constrain a query that already selects from / joins ``employees``."""
        if self.company_id is None:
            return query
        return query.where(Employee.company_id == self.company_id)
