from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from hr_leave.models.leave_approval_log import leave_approval_log
from hr_leave.services.base import BaseService


class ApprovalAuditService(BaseService):
    def log_action(
        self,
        leave_request_id: int,
        approver_id: Optional[int],
        action: str,
        notes: Optional[str] = None,
    ) -> bool:
        """
        Append a supervisor decision to leave_approval_log.
        Strictly append-only.

        Runs inside the caller's transaction, wrapped in a SAVEPOINT: if the
        table is missing or the insert fails, only the savepoint is rolled
        back and the decision itself still commits.
        """
        try:
            with self.db.begin_nested():
                self.db.execute(
                    leave_approval_log.insert().values(
                        leaveRequestId=leave_request_id,
                        approverId=approver_id,
                        action=action,
                        notes=notes,
                        actionDate=self.clock.now(),
                    )
                )
            return True
        except SQLAlchemyError as e:
            self._logger.warning(f"Could not log approval action for request {leave_request_id}: {e}")
            return False

    def get_actions(self, leave_request_id: int) -> list:
        return self._query(
            "reading approval log",
            lambda: [
                dict(row._mapping)
                for row in self.db.execute(
                    leave_approval_log.select()
                    .where(leave_approval_log.c.leaveRequestId == leave_request_id)
                    .order_by(leave_approval_log.c.actionDate)
                )
            ],
            [],
        )
