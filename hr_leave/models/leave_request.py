from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional
from sqlalchemy import Column, Integer, String, Date, DateTime, Text, Index
from sqlalchemy.orm import validates
from hr_leave.database import Base
import enum

class LeaveStatus(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "LeaveStatus":
        """Case-insensitive lookup; unknown values read as Pending."""
        if isinstance(value, cls):
            return value
        for status in cls:
            if value and status.value.lower() == str(value).lower():
                return status
        return cls.PENDING


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Inclusive interval overlap: a shared boundary day counts."""
    return start_a <= end_b and start_b <= end_a


class LeaveRequest(Base):
    __tablename__ = "leaverequest"

    leave_request_id = Column("leaveRequestId", Integer, primary_key=True, autoincrement=True)
    employee_id = Column("employeeId", Integer, nullable=False)
    leave_type_id = Column("leaveTypeId", Integer, nullable=False)
    leave_start = Column("leaveStart", Date, nullable=False)
    leave_end = Column("leaveEnd", Date, nullable=False)
    leave_reason = Column("leaveReason", Text)
    approval_status = Column("approvalStatus", String(20), nullable=False, default=LeaveStatus.PENDING.value)
    date_created = Column("dateCreated", DateTime)
    date_approved = Column("dateApproved", DateTime)  # decision timestamp for approvals and rejections
    supervisor_notes = Column("supervisorNotes", Text)

    def __init__(self, **kwargs):
        kwargs.setdefault("approval_status", LeaveStatus.PENDING.value)
        super().__init__(**kwargs)

    @validates("approval_status")
    def _normalise_status(self, key, value):
        # Stored in canonical case so SQL filters and from_string agree
        return LeaveStatus.from_string(value).value

    @property
    def status(self) -> LeaveStatus:
        return LeaveStatus.from_string(self.approval_status)

    def is_pending(self) -> bool:
        return self.status == LeaveStatus.PENDING

    def is_approved(self) -> bool:
        return self.status == LeaveStatus.APPROVED

    def is_rejected(self) -> bool:
        return self.status == LeaveStatus.REJECTED

    # --- Approval workflow ---

    def approve(self, notes: Optional[str], decided_at: datetime) -> bool:
        if not self.is_pending():
            return False
        self.approval_status = LeaveStatus.APPROVED.value
        self.date_approved = decided_at
        self.supervisor_notes = notes
        return True

    def reject(self, notes: Optional[str], decided_at: datetime) -> bool:
        # A rejection must always carry the supervisor's reason
        if not self.is_pending() or not notes or not notes.strip():
            return False
        self.approval_status = LeaveStatus.REJECTED.value
        self.date_approved = decided_at
        self.supervisor_notes = notes
        return True

    def can_be_modified(self) -> bool:
        return self.is_pending()

    def can_be_cancelled(self, today: date) -> bool:
        return self.is_pending() or (self.is_approved() and self.leave_start > today)

    # --- Validation ---

    def has_valid_dates(self) -> bool:
        return (
            self.leave_start is not None
            and self.leave_end is not None
            and self.leave_start <= self.leave_end
        )

    def is_valid_leave_request(self, today: date) -> bool:
        """Positive ids, an ordered date range, and no start in the past."""
        if not self.employee_id or self.employee_id <= 0:
            return False
        if not self.leave_type_id or self.leave_type_id <= 0:
            return False
        return self.has_valid_dates() and self.leave_start >= today

    # --- Calendar helpers ---

    def overlaps(self, other: "LeaveRequest") -> bool:
        if not (self.has_valid_dates() and other.has_valid_dates()):
            return False
        return ranges_overlap(self.leave_start, self.leave_end, other.leave_start, other.leave_end)

    def has_conflict_with_date(self, day: Optional[date]) -> bool:
        if day is None or not self.has_valid_dates():
            return False
        return self.leave_start <= day <= self.leave_end

    def get_conflicting_dates(self, days: Iterable[date]) -> List[date]:
        return [d for d in days if self.has_conflict_with_date(d)]

    def get_all_leave_dates(self) -> List[date]:
        if not self.has_valid_dates():
            return []
        span = (self.leave_end - self.leave_start).days
        return [self.leave_start + timedelta(days=i) for i in range(span + 1)]

    def get_working_day_leave_dates(self) -> List[date]:
        return [d for d in self.get_all_leave_dates() if d.weekday() < 5]

    @property
    def working_days_count(self) -> int:
        return len(self.get_working_day_leave_dates())

    def __repr__(self) -> str:
        return (
            f"LeaveRequest(id={self.leave_request_id}, employee={self.employee_id}, "
            f"type={self.leave_type_id}, {self.leave_start}..{self.leave_end}, "
            f"status={self.approval_status})"
        )

Index("ix_leaverequest_employee_dates", LeaveRequest.employee_id, LeaveRequest.leave_start, LeaveRequest.leave_end)
