"""Auth dependencies — JWT validation, capability enforcement.

Tokens are issued elsewhere; this module only verifies them. Expected
claims: ``sub`` (user id), ``role``, optional ``company`` (tenant id),
``type == "access"``.
"""

from __future__ import annotations

import uuid
from typing import Callable, Optional

from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.principal import Principal
from hrms.common.constants import EmployeeStatus, UserRole
from hrms.common.exceptions import ForbiddenException, UnauthorizedException
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.database import get_db


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise UnauthorizedException("Access token is required.")
    return auth_header[7:]


def _parse_uuid(value: Optional[str], claim: str) -> Optional[uuid.UUID]:
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise UnauthorizedException(f"Invalid '{claim}' claim.")


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Validate JWT and resolve the caller's employee record (if any)."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise UnauthorizedException("Token has expired.")
    except JWTError:
        raise UnauthorizedException("Invalid or expired token.")

    if payload.get("type", "access") != "access":
        raise UnauthorizedException("Invalid token type.")

    user_id = _parse_uuid(payload.get("sub"), "sub")
    if user_id is None:
        raise UnauthorizedException("Token has no subject.")

    role_str = payload.get("role", UserRole.employee.value)
    try:
        role = UserRole(role_str)
    except ValueError:
        role = UserRole.employee

    emp_result = await db.execute(
        select(Employee).where(
            Employee.user_id == user_id,
            Employee.status != EmployeeStatus.inactive,
        )
    )
    employee = emp_result.scalars().first()

    company_id = _parse_uuid(payload.get("company"), "company")
    if employee is not None:
        if company_id is not None and company_id != employee.company_id:
            raise UnauthorizedException("Token tenant does not match the account.")
        company_id = employee.company_id
    elif company_id is None:
        # Without an employee record the tenant must come from the token
        raise UnauthorizedException("User account is inactive or not found.")

    request.state.user_role = role
    return Principal(
        user_id=user_id,
        role=role,
        employee=employee,
        company_id=company_id,
    )


# ── Permission-based dependency ─────────────────────────────────────

def require_permission(permission: str) -> Callable:
    """Return a FastAPI dependency that enforces a specific permission string."""

    async def _check(
        principal: Principal = Depends(get_current_user),
    ) -> Principal:
        if not principal.has_permission(permission):
            raise ForbiddenException(
                detail=f"Permission '{permission}' is not granted to role '{principal.role.value}'.",
            )
        return principal

    return _check
