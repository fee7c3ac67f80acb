from typing import Optional
from sqlalchemy import Column, Integer, DateTime, Index
from sqlalchemy.orm import reconstructor
from hr_leave.database import Base

class LeaveBalance(Base):
    """
    Leave entitlement of one employee for one leave type and one year.

    ``remaining_leave_days`` is derived and recomputed after every load and
    mutation; the stored column is never trusted on its own.
    """
    __tablename__ = "leavebalance"

    leave_balance_id = Column("leaveBalanceId", Integer, primary_key=True, autoincrement=True)
    employee_id = Column("employeeId", Integer, nullable=False)
    leave_type_id = Column("leaveTypeId", Integer, nullable=False)
    total_leave_days = Column("totalLeaveDays", Integer, default=0)
    used_leave_days = Column("usedLeaveDays", Integer, default=0, nullable=False)
    remaining_leave_days = Column("remainingLeaveDays", Integer, default=0)
    carry_over_days = Column("carryOverDays", Integer, default=0, nullable=False)
    balance_year = Column("balanceYear", Integer, nullable=False)
    last_updated = Column("lastUpdated", DateTime)

    def __init__(self, **kwargs):
        kwargs.setdefault("used_leave_days", 0)
        kwargs.setdefault("carry_over_days", 0)
        super().__init__(**kwargs)
        self.calculate_remaining_days()

    @reconstructor
    def _init_on_load(self):
        self.calculate_remaining_days()

    @property
    def balance_key(self) -> tuple:
        return (self.employee_id, self.leave_type_id, self.balance_year)

    # --- Balance arithmetic ---

    def calculate_remaining_days(self) -> int:
        total = self.total_leave_days or 0
        self.remaining_leave_days = total + (self.carry_over_days or 0) - (self.used_leave_days or 0)
        return self.remaining_leave_days

    def can_take_leave(self, days: int) -> bool:
        if days is None or days <= 0:
            return False
        return self.remaining_leave_days is not None and days <= self.remaining_leave_days

    def deduct_leave(self, days: int) -> bool:
        if not self.can_take_leave(days):
            return False
        self.used_leave_days = (self.used_leave_days or 0) + days
        self.calculate_remaining_days()
        return True

    def add_leave(self, days: int) -> None:
        """Give days back (cancellation). ``used_leave_days`` never drops below zero."""
        if days is None or days <= 0:
            return
        self.used_leave_days = max(0, (self.used_leave_days or 0) - days)
        self.calculate_remaining_days()

    def reset_balance(self) -> None:
        self.used_leave_days = 0
        self.carry_over_days = 0
        self.calculate_remaining_days()

    @property
    def available_days(self) -> int:
        return (self.total_leave_days or 0) + (self.carry_over_days or 0)

    def get_utilization_rate(self) -> float:
        if self.available_days == 0:
            return 0.0
        return (self.used_leave_days or 0) / self.available_days * 100.0

    def is_fully_utilized(self) -> bool:
        return self.remaining_leave_days == 0

    def is_over_utilized(self) -> bool:
        return self.remaining_leave_days is not None and self.remaining_leave_days < 0

    def balance_status(self) -> str:
        if self.is_over_utilized():
            return "Over-utilized"
        if self.is_fully_utilized():
            return "Fully utilized"
        rate = self.get_utilization_rate()
        if rate > 80:
            return "High utilization"
        if rate > 50:
            return "Medium utilization"
        return "Low utilization"

    def is_valid_balance(self) -> bool:
        if not self.employee_id or self.employee_id <= 0:
            return False
        if not self.leave_type_id or self.leave_type_id <= 0:
            return False
        if self.balance_year is None or self.total_leave_days is None:
            return False
        if self.total_leave_days < 0 or (self.used_leave_days or 0) < 0 or (self.carry_over_days or 0) < 0:
            return False
        return (self.used_leave_days or 0) <= self.available_days

    def is_current_year(self, current_year: int) -> bool:
        return self.balance_year == current_year

    def is_expired(self, current_year: int) -> bool:
        return self.balance_year is not None and self.balance_year < current_year

    # --- Reconciliation ---

    def same_key(self, other: "LeaveBalance") -> bool:
        return other is not None and self.balance_key == other.balance_key

    def merge_with(self, other: Optional["LeaveBalance"]) -> "LeaveBalance":
        """
        Combine two rows for the same key into a new, unattached balance.

        Duplicate rows are treated as partial accrual batches, so days are
        summed. The caller persists the result and discards the inputs.
        """
        if other is None:
            return self
        stamps = [t for t in (self.last_updated, other.last_updated) if t is not None]
        return LeaveBalance(
            employee_id=self.employee_id,
            leave_type_id=self.leave_type_id,
            balance_year=self.balance_year,
            total_leave_days=(self.total_leave_days or 0) + (other.total_leave_days or 0),
            used_leave_days=(self.used_leave_days or 0) + (other.used_leave_days or 0),
            carry_over_days=(self.carry_over_days or 0) + (other.carry_over_days or 0),
            last_updated=max(stamps) if stamps else None,
        )

    def resolve_conflict(self, incoming: Optional["LeaveBalance"]) -> bool:
        """
        Overlay an authoritative correction onto this balance.

        Every non-null, non-zero day field of ``incoming`` replaces ours.
        Returns False, changing nothing, when the key tuples differ.
        """
        if not self.same_key(incoming):
            return False
        for field in ("total_leave_days", "used_leave_days", "carry_over_days"):
            value = getattr(incoming, field)
            if value:
                setattr(self, field, value)
        self.calculate_remaining_days()
        return True

    def apply_totals(self, source: "LeaveBalance") -> None:
        """Copy day counts from ``source`` (e.g. a merge result) onto this row."""
        self.total_leave_days = source.total_leave_days
        self.used_leave_days = source.used_leave_days
        self.carry_over_days = source.carry_over_days
        self.calculate_remaining_days()

    def create_next_year_balance(self, max_carry_over_days: int) -> "LeaveBalance":
        carry_over = max(0, min(self.remaining_leave_days or 0, max_carry_over_days))
        return LeaveBalance(
            employee_id=self.employee_id,
            leave_type_id=self.leave_type_id,
            balance_year=self.balance_year + 1,
            total_leave_days=self.total_leave_days,
            used_leave_days=0,
            carry_over_days=carry_over,
        )

    def __repr__(self) -> str:
        return (
            f"LeaveBalance(id={self.leave_balance_id}, employee={self.employee_id}, "
            f"type={self.leave_type_id}, year={self.balance_year}, total={self.total_leave_days}, "
            f"used={self.used_leave_days}, remaining={self.remaining_leave_days}, "
            f"carry_over={self.carry_over_days})"
        )

Index("ix_leavebalance_key", LeaveBalance.employee_id, LeaveBalance.leave_type_id, LeaveBalance.balance_year)
