from typing import Any, Dict, Optional

class LeaveError(Exception):
    """
    Base for failures raised inside a service transaction.
    Services translate these into an OperationResult at their public boundary;
    they never escape to callers.
    """
    def __init__(
        self,
        message: str,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class ValidationError(LeaveError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, error_code="VALIDATION_ERROR", details=details)

class NotFoundError(LeaveError):
    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            message=f"{entity_type} '{entity_id}' does not exist",
            error_code="NOT_FOUND",
            details={"entity_type": entity_type, "entity_id": entity_id}
        )

class InsufficientBalanceError(LeaveError):
    def __init__(self, requested: int, remaining: Optional[int]):
        super().__init__(
            message=f"Insufficient balance. Requested: {requested}, Remaining: {remaining}",
            error_code="INSUFFICIENT_BALANCE",
            details={"requested": requested, "remaining": remaining}
        )

class InvalidStateError(LeaveError):
    """Raised when a leave request is not in a state that allows the transition."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, error_code="INVALID_STATE", details=details)

class ConflictError(LeaveError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, error_code="CONFLICT", details=details)

class StorageError(LeaveError):
    def __init__(self, message: str = "The leave store is unavailable"):
        super().__init__(message=message, error_code="STORAGE_ERROR")
