"""Common module — shared enums, errors and the response envelope."""

from hrms.common.constants import (
    PERMISSIONS,
    LeaveStatus,
    LeaveType,
    ManagerApprovalStatus,
    UserRole,
)
from hrms.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ReconciliationError,
    UnauthorizedException,
    ValidationException,
    register_exception_handlers,
)
from hrms.common.responses import ApiResponse, ok

__all__ = [
    "PERMISSIONS",
    "LeaveStatus",
    "LeaveType",
    "ManagerApprovalStatus",
    "UserRole",
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "ReconciliationError",
    "UnauthorizedException",
    "ValidationException",
    "register_exception_handlers",
    "ApiResponse",
    "ok",
]
