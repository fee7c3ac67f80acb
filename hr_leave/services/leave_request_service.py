"""
Leave Request Service

CRUD and queries for leave requests, the overlap checker used to prevent
double-booking, the supervisor approval workflow and cancellation by the owner.

Approval and rejection each run as one transaction: load the request with a
row lock, verify it is still pending, apply the transition, persist, and
append to the approval log. A failing audit insert never undoes the decision.
Balance deduction on approval and restoration on cancellation share the
request's transaction.
"""

from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from sqlalchemy import func, case
from sqlalchemy.orm import Session

from hr_leave.core.clock import Clock
from hr_leave.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from hr_leave.core.schemas import OperationResult
from hr_leave.models.leave_request import LeaveRequest, LeaveStatus
from hr_leave.services.audit import ApprovalAuditService
from hr_leave.services.base import BaseService
from hr_leave.services.leave_balance_service import LeaveBalanceService

_ACTIVE_STATUSES = (LeaveStatus.PENDING, LeaveStatus.APPROVED)


def _status_in(*statuses: LeaveStatus):
    """Case-insensitive filter on approvalStatus; rows may come from other writers."""
    return func.lower(LeaveRequest.approval_status).in_([s.value.lower() for s in statuses])


class LeaveRequestService(BaseService):

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.audit = ApprovalAuditService(db, self.clock)
        self.balances = LeaveBalanceService(db, self.clock)

    # --- CRUD ---

    def create_leave_request(self, request: LeaveRequest) -> OperationResult[LeaveRequest]:
        if request is None or not request.is_valid_leave_request(self.clock.today()):
            return OperationResult.from_error(ValidationError("Leave request failed validation"))

        def work() -> LeaveRequest:
            self._refuse_approved_overlap(request)
            request.approval_status = LeaveStatus.PENDING.value
            request.date_created = self.clock.now()
            self.db.add(request)
            self.db.flush()
            return request

        return self._execute("creating leave request", work)

    def update_leave_request(self, request: LeaveRequest) -> OperationResult[LeaveRequest]:
        if request is None or not request.leave_request_id:
            return OperationResult.from_error(ValidationError("Leave request has no id"))
        if not request.has_valid_dates():
            return OperationResult.from_error(ValidationError("Leave end is before leave start"))

        def work() -> LeaveRequest:
            stored = self.db.get(LeaveRequest, request.leave_request_id, with_for_update=True)
            if stored is None:
                raise NotFoundError("LeaveRequest", request.leave_request_id)
            if stored is not request:
                for field in ("employee_id", "leave_type_id", "leave_start", "leave_end", "leave_reason",
                              "approval_status", "date_approved", "supervisor_notes"):
                    setattr(stored, field, getattr(request, field))
            self.db.flush()
            return stored

        return self._execute("updating leave request", work)

    def delete_leave_request(self, leave_request_id: int) -> OperationResult[int]:
        def work() -> int:
            stored = self.db.get(LeaveRequest, leave_request_id)
            if stored is None:
                raise NotFoundError("LeaveRequest", leave_request_id)
            self.db.delete(stored)
            self.db.flush()
            return leave_request_id

        return self._execute("deleting leave request", work)

    def get_leave_request_by_id(self, leave_request_id: int) -> Optional[LeaveRequest]:
        return self._query(
            "getting leave request by ID",
            lambda: self.db.get(LeaveRequest, leave_request_id),
            None,
        )

    # --- Queries ---

    def get_leave_requests_by_employee(self, employee_id: int, status: Optional[LeaveStatus] = None) -> List[LeaveRequest]:
        def work() -> List[LeaveRequest]:
            query = self.db.query(LeaveRequest).filter(LeaveRequest.employee_id == employee_id)
            if status is not None:
                query = query.filter(_status_in(LeaveStatus.from_string(status)))
            return query.order_by(LeaveRequest.date_created.desc(), LeaveRequest.leave_request_id.desc()).all()

        return self._query("getting leave requests by employee", work, [])

    def get_leave_requests_by_employee_and_date_range(self, employee_id: int, start: date, end: date) -> List[LeaveRequest]:
        if start is None or end is None or start > end:
            return []
        return self._query(
            "getting leave requests by employee and date range",
            lambda: self.db.query(LeaveRequest)
            .filter(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.leave_start <= end,
                LeaveRequest.leave_end >= start,
            )
            .order_by(LeaveRequest.leave_start)
            .all(),
            [],
        )

    def get_all_pending_leave_requests(self) -> List[LeaveRequest]:
        return self._query(
            "getting pending leave requests",
            lambda: self.db.query(LeaveRequest)
            .filter(_status_in(LeaveStatus.PENDING))
            .order_by(LeaveRequest.date_created, LeaveRequest.leave_request_id)
            .all(),
            [],
        )

    def get_upcoming_leaves(self, employee_id: int) -> List[LeaveRequest]:
        today = self.clock.today()
        return self._query(
            "getting upcoming leaves",
            lambda: self.db.query(LeaveRequest)
            .filter(
                LeaveRequest.employee_id == employee_id,
                _status_in(LeaveStatus.APPROVED),
                LeaveRequest.leave_start >= today,
            )
            .order_by(LeaveRequest.leave_start)
            .all(),
            [],
        )

    def get_leave_summary(self, employee_id: int, start: date, end: date) -> Dict[str, Any]:
        """Request counts and approval/rejection rates for requests created in [start, end]."""
        def counted(status: LeaveStatus):
            return func.coalesce(func.sum(case((_status_in(status), 1), else_=0)), 0)

        def work() -> Dict[str, Any]:
            row = (
                self.db.query(
                    func.count(LeaveRequest.leave_request_id),
                    counted(LeaveStatus.APPROVED),
                    counted(LeaveStatus.REJECTED),
                    counted(LeaveStatus.PENDING),
                )
                .filter(
                    LeaveRequest.employee_id == employee_id,
                    LeaveRequest.date_created >= datetime.combine(start, time.min),
                    LeaveRequest.date_created <= datetime.combine(end, time.max),
                )
                .one()
            )
            total, approved, rejected, pending = (int(v or 0) for v in row)
            return {
                "total_requests": total,
                "approved_requests": approved,
                "rejected_requests": rejected,
                "pending_requests": pending,
                "approval_rate": approved / total * 100 if total else 0.0,
                "rejection_rate": rejected / total * 100 if total else 0.0,
            }

        return self._query("getting leave summary", work, {})

    # --- Overlap checker ---

    def _overlapping(self, candidate: LeaveRequest) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest).filter(
            LeaveRequest.employee_id == candidate.employee_id,
            _status_in(*_ACTIVE_STATUSES),
            LeaveRequest.leave_start <= candidate.leave_end,
            LeaveRequest.leave_end >= candidate.leave_start,
        )
        if candidate.leave_request_id:
            query = query.filter(LeaveRequest.leave_request_id != candidate.leave_request_id)
        return query.order_by(LeaveRequest.leave_start, LeaveRequest.leave_request_id).all()

    def get_overlapping_leave_requests(self, candidate: LeaveRequest) -> List[LeaveRequest]:
        """
        Pending or approved requests of the same employee sharing at least
        one calendar day with ``candidate``. The candidate itself is excluded.
        """
        if candidate is None or not candidate.has_valid_dates():
            return []
        return self._query("checking overlapping leave requests", lambda: self._overlapping(candidate), [])

    def _refuse_approved_overlap(self, candidate: LeaveRequest) -> None:
        clashes = [r for r in self._overlapping(candidate) if r.is_approved()]
        if clashes:
            raise ConflictError(
                "Leave request overlaps approved leave",
                details={"overlapping_ids": [r.leave_request_id for r in clashes]},
            )

    def has_conflict_with_approved_leaves(self, candidate: LeaveRequest) -> bool:
        # Pending overlaps are informational; only approved ones block
        return any(r.is_approved() for r in self.get_overlapping_leave_requests(candidate))

    # --- Approval workflow ---

    def _load_pending(self, leave_request_id: int) -> LeaveRequest:
        request = self.db.get(LeaveRequest, leave_request_id, with_for_update=True)
        if request is None:
            raise NotFoundError("LeaveRequest", leave_request_id)
        if not request.is_pending():
            raise InvalidStateError(
                f"Leave request {leave_request_id} is already {request.approval_status}",
                details={"status": request.approval_status},
            )
        return request

    def approve_leave_request(
        self,
        leave_request_id: int,
        notes: Optional[str],
        approver_id: Optional[int],
        apply_to_balance: bool = True,
    ) -> OperationResult[LeaveRequest]:
        """
        Approve a pending request.

        Refused when it overlaps another approved request of the same
        employee. Its working days are deducted from the balance for its
        start year in the same transaction unless ``apply_to_balance`` is False.
        """
        def work() -> LeaveRequest:
            request = self._load_pending(leave_request_id)
            self._refuse_approved_overlap(request)
            if apply_to_balance and request.working_days_count > 0:
                self.balances.deduct_within_transaction(
                    request.employee_id,
                    request.leave_type_id,
                    request.leave_start.year,
                    request.working_days_count,
                )
            request.approve(notes, self.clock.now())
            self.db.flush()
            self.audit.log_action(leave_request_id, approver_id, "APPROVED", notes)
            self._logger.info(f"Leave request {leave_request_id} approved by {approver_id}")
            return request

        return self._execute("approving leave request", work)

    def reject_leave_request(
        self,
        leave_request_id: int,
        notes: Optional[str],
        approver_id: Optional[int],
    ) -> OperationResult[LeaveRequest]:
        if not notes or not notes.strip():
            return OperationResult.from_error(ValidationError("Rejection notes are required"))

        def work() -> LeaveRequest:
            request = self._load_pending(leave_request_id)
            request.reject(notes, self.clock.now())
            self.db.flush()
            self.audit.log_action(leave_request_id, approver_id, "REJECTED", notes)
            self._logger.info(f"Leave request {leave_request_id} rejected by {approver_id}")
            return request

        return self._execute("rejecting leave request", work)

    def cancel_leave_request(
        self,
        leave_request_id: int,
        employee_id: int,
        restore_balance: bool = True,
    ) -> OperationResult[int]:
        """
        Withdraw a request on behalf of its owner and delete it.

        Approved leave that has not started yet can still be cancelled; its
        working days go back to the balance for its start year in the same
        transaction unless ``restore_balance`` is False.
        """
        def work() -> int:
            request = self.db.get(LeaveRequest, leave_request_id, with_for_update=True)
            if request is None:
                raise NotFoundError("LeaveRequest", leave_request_id)
            if request.employee_id != employee_id:
                raise ValidationError(
                    f"Leave request {leave_request_id} does not belong to employee {employee_id}",
                    details={"employee_id": employee_id},
                )
            if not request.can_be_cancelled(self.clock.today()):
                raise InvalidStateError(
                    f"Leave request {leave_request_id} can no longer be cancelled",
                    details={"status": request.approval_status},
                )
            if restore_balance and request.is_approved() and request.working_days_count > 0:
                self.balances.restore_within_transaction(
                    request.employee_id,
                    request.leave_type_id,
                    request.leave_start.year,
                    request.working_days_count,
                )
            self.db.delete(request)
            self.db.flush()
            self._logger.info(f"Leave request {leave_request_id} cancelled by employee {employee_id}")
            return leave_request_id

        return self._execute("cancelling leave request", work)
