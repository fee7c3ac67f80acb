import logging
from typing import List

from sqlalchemy.orm import Session

from hr_leave.core.clock import Clock
from hr_leave.models.leave_balance import LeaveBalance

logger = logging.getLogger(__name__)


class BalanceConflictResolver:
    """
    Keeps a single canonical leavebalance row per (employee, leave type, year).

    The schema carries no unique constraint on that key, so concurrent inserts
    can leave duplicates behind. ``resolve`` folds them into the canonical row
    and then overlays the incoming correction. It only flushes: the caller's
    transaction decides whether the deletes and the update are kept.
    """

    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock

    def find_duplicates(self, canonical: LeaveBalance) -> List[LeaveBalance]:
        return (
            self.db.query(LeaveBalance)
            .filter(
                LeaveBalance.employee_id == canonical.employee_id,
                LeaveBalance.leave_type_id == canonical.leave_type_id,
                LeaveBalance.balance_year == canonical.balance_year,
                LeaveBalance.leave_balance_id != canonical.leave_balance_id,
            )
            .order_by(LeaveBalance.leave_balance_id)
            .with_for_update()
            .all()
        )

    def resolve(self, canonical: LeaveBalance, incoming: LeaveBalance) -> LeaveBalance:
        duplicates = self.find_duplicates(canonical)

        if duplicates:
            merged = canonical
            for duplicate in duplicates:
                merged = merged.merge_with(duplicate)
            canonical.apply_totals(merged)
            for duplicate in duplicates:
                self.db.delete(duplicate)
            logger.warning(
                f"Merged {len(duplicates)} duplicate leave balance row(s) into "
                f"{canonical.leave_balance_id} for key {canonical.balance_key}",
                extra={"deleted_ids": [d.leave_balance_id for d in duplicates]},
            )

        canonical.resolve_conflict(incoming)
        canonical.last_updated = self.clock.now()
        self.db.flush()
        return canonical
