from typing import Any, Dict, Generic, Optional, TypeVar
from pydantic import BaseModel, ConfigDict

from hr_leave.core.exceptions import LeaveError

T = TypeVar("T")

class ErrorInfo(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

class OperationResult(BaseModel, Generic[T]):
    """
    Outcome of a mutating service call.

    Truthy exactly when the operation succeeded, so callers that only care
    about success can keep writing ``if service.deduct_leave_from_balance(...)``
    while others branch on ``error.code``.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "OperationResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str, code: str = "ERROR", details: Optional[Dict[str, Any]] = None) -> "OperationResult[T]":
        return cls(
            success=False,
            error=ErrorInfo(code=code, message=message, details=details)
        )

    @classmethod
    def from_error(cls, exc: LeaveError) -> "OperationResult[T]":
        return cls.fail(exc.message, code=exc.error_code, details=exc.details)
