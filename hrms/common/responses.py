"""Standard response envelope: ``{"success": ..., "message": ..., "data": ...}``."""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope returned by every leave endpoint."""

    success: bool = True
    message: str = "Success"
    data: Optional[T] = None


def ok(data: T = None, message: str = "Success") -> ApiResponse[T]:
    return ApiResponse(success=True, message=message, data=data)
