"""
Leave Balance Service

Load/store of LeaveBalance rows plus the transactional operations on them:
creation with duplicate reconciliation, deduction for approved leave and
restoration for cancellations.

Every read-check-write sequence runs inside one scoped transaction and reads
the row with SELECT ... FOR UPDATE, so two callers racing on the same
(employee, leave type, year) row serialize on the database instead of
losing an update between the sufficiency check and the write.
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from hr_leave.core.clock import Clock
from hr_leave.core.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from hr_leave.core.schemas import OperationResult
from hr_leave.models.leave_balance import LeaveBalance
from hr_leave.services.base import BaseService
from hr_leave.services.conflict_resolver import BalanceConflictResolver


class LeaveBalanceService(BaseService):

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.resolver = BalanceConflictResolver(db, self.clock)

    # --- Internal lookups (run inside the caller's transaction) ---

    def _find(self, employee_id: int, leave_type_id: int, year: int, for_update: bool = False) -> Optional[LeaveBalance]:
        query = self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.balance_year == year,
        )
        if for_update:
            query = query.with_for_update()
        # Lowest id is the canonical row when duplicates exist
        return query.order_by(LeaveBalance.leave_balance_id).first()

    def _require(self, employee_id: int, leave_type_id: int, year: int) -> LeaveBalance:
        balance = self._find(employee_id, leave_type_id, year, for_update=True)
        if balance is None:
            raise NotFoundError("LeaveBalance", f"{employee_id}/{leave_type_id}/{year}")
        return balance

    def deduct_within_transaction(self, employee_id: int, leave_type_id: int, year: int, days: int) -> LeaveBalance:
        """
        Deduct ``days`` without opening a transaction of its own.
        Used by callers that already hold one (e.g. leave approval).
        """
        balance = self._require(employee_id, leave_type_id, year)
        if not balance.deduct_leave(days):
            raise InsufficientBalanceError(days, balance.remaining_leave_days)
        balance.last_updated = self.clock.now()
        self.db.flush()
        return balance

    def restore_within_transaction(self, employee_id: int, leave_type_id: int, year: int, days: int) -> LeaveBalance:
        balance = self._require(employee_id, leave_type_id, year)
        balance.add_leave(days)
        balance.last_updated = self.clock.now()
        self.db.flush()
        return balance

    # --- Creation and reconciliation ---

    def create_leave_balance(self, balance: LeaveBalance) -> OperationResult[LeaveBalance]:
        """
        Persist a new balance, or reconcile it into the existing row for the
        same key. Invalid balances are refused before touching the database.
        """
        if balance is None:
            return OperationResult.from_error(ValidationError("No leave balance given"))
        if balance.balance_year is None:
            balance.balance_year = self.clock.current_year()
        balance.calculate_remaining_days()
        if not balance.is_valid_balance():
            return OperationResult.from_error(
                ValidationError("Leave balance failed validation", details={"balance": repr(balance)})
            )

        def work() -> LeaveBalance:
            existing = self._find(balance.employee_id, balance.leave_type_id, balance.balance_year, for_update=True)
            if existing is None:
                balance.last_updated = self.clock.now()
                self.db.add(balance)
                self.db.flush()
                self._logger.info(f"Created leave balance {balance.leave_balance_id} for key {balance.balance_key}")
                return balance
            return self.resolver.resolve(existing, balance)

        return self._execute("creating leave balance", work)

    def update_leave_balance(self, balance: LeaveBalance) -> OperationResult[LeaveBalance]:
        if balance is None or not balance.leave_balance_id or balance.leave_balance_id <= 0:
            return OperationResult.from_error(ValidationError("Leave balance has no id"))

        def work() -> LeaveBalance:
            stored = self.db.get(LeaveBalance, balance.leave_balance_id, with_for_update=True)
            if stored is None:
                raise NotFoundError("LeaveBalance", balance.leave_balance_id)
            if stored is not balance:
                stored.apply_totals(balance)
            else:
                stored.calculate_remaining_days()
            if not stored.is_valid_balance():
                raise ValidationError("Leave balance failed validation", details={"balance": repr(stored)})
            stored.last_updated = self.clock.now()
            self.db.flush()
            return stored

        return self._execute("updating leave balance", work)

    def delete_leave_balance(self, leave_balance_id: int) -> OperationResult[int]:
        def work() -> int:
            stored = self.db.get(LeaveBalance, leave_balance_id)
            if stored is None:
                raise NotFoundError("LeaveBalance", leave_balance_id)
            self.db.delete(stored)
            self.db.flush()
            return leave_balance_id

        return self._execute("deleting leave balance", work)

    # --- Queries ---

    def get_leave_balance_by_id(self, leave_balance_id: int) -> Optional[LeaveBalance]:
        return self._query(
            "getting leave balance by ID",
            lambda: self.db.get(LeaveBalance, leave_balance_id),
            None,
        )

    def get_leave_balance(self, employee_id: int, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        return self._query(
            "getting leave balance",
            lambda: self._find(employee_id, leave_type_id, year),
            None,
        )

    def get_leave_balances_by_employee(self, employee_id: int, year: int) -> List[LeaveBalance]:
        return self._query(
            "getting leave balances by employee",
            lambda: self.db.query(LeaveBalance)
            .filter(LeaveBalance.employee_id == employee_id, LeaveBalance.balance_year == year)
            .order_by(LeaveBalance.leave_type_id, LeaveBalance.leave_balance_id)
            .all(),
            [],
        )

    def get_all_leave_balances_by_employee(self, employee_id: int) -> List[LeaveBalance]:
        return self._query(
            "getting all leave balances by employee",
            lambda: self.db.query(LeaveBalance)
            .filter(LeaveBalance.employee_id == employee_id)
            .order_by(LeaveBalance.balance_year.desc(), LeaveBalance.leave_type_id, LeaveBalance.leave_balance_id)
            .all(),
            [],
        )

    # --- Transactional deduct / restore ---

    def deduct_leave_from_balance(self, employee_id: int, leave_type_id: int, year: int, days: int) -> OperationResult[LeaveBalance]:
        if days is None or days <= 0:
            return OperationResult.from_error(ValidationError("Days to deduct must be positive", details={"days": days}))
        return self._execute(
            "deducting leave from balance",
            lambda: self.deduct_within_transaction(employee_id, leave_type_id, year, days),
        )

    def add_leave_to_balance(self, employee_id: int, leave_type_id: int, year: int, days: int) -> OperationResult[LeaveBalance]:
        if days is None or days <= 0:
            return OperationResult.from_error(ValidationError("Days to restore must be positive", details={"days": days}))

        return self._execute(
            "adding leave to balance",
            lambda: self.restore_within_transaction(employee_id, leave_type_id, year, days),
        )

    def has_sufficient_leave_balance(self, employee_id: int, leave_type_id: int, year: int, days: int) -> bool:
        """
        Advisory check only. It is not atomic with a later deduction; callers
        that need that guarantee must call deduct_leave_from_balance directly.
        """
        balance = self.get_leave_balance(employee_id, leave_type_id, year)
        return balance is not None and balance.can_take_leave(days)

    def get_leave_balance_utilization_rate(self, employee_id: int, leave_type_id: int, year: int) -> float:
        balance = self.get_leave_balance(employee_id, leave_type_id, year)
        return balance.get_utilization_rate() if balance is not None else 0.0

    # --- Year-end processing ---

    def roll_over_balance(self, employee_id: int, leave_type_id: int, year: int, max_carry_over_days: int) -> OperationResult[LeaveBalance]:
        """Open next year's balance, carrying over up to ``max_carry_over_days`` unused days."""
        if max_carry_over_days is None or max_carry_over_days < 0:
            return OperationResult.from_error(ValidationError("Carry-over cap must not be negative"))
        current = self.get_leave_balance(employee_id, leave_type_id, year)
        if current is None:
            return OperationResult.from_error(NotFoundError("LeaveBalance", f"{employee_id}/{leave_type_id}/{year}"))
        return self.create_leave_balance(current.create_next_year_balance(max_carry_over_days))
