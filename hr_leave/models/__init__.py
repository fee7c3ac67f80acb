# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import leave_balance, leave_request, leave_approval_log

# Explicit class exports for cleaner imports
from .leave_balance import LeaveBalance
from .leave_request import LeaveRequest, LeaveStatus, ranges_overlap
from .leave_approval_log import leave_approval_log as LeaveApprovalLog

__all__ = [
    "LeaveBalance",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveApprovalLog",
    "ranges_overlap",
]
