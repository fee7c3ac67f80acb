import pytest
from datetime import date, datetime
from sqlalchemy import text
from hr_leave.models.leave_request import LeaveStatus, ranges_overlap


def _save(request_service, make_request, start, end, **kwargs):
    result = request_service.create_leave_request(make_request(start, end, **kwargs))
    assert result, result.error
    return result.data


class TestRangesOverlap:
    def test_shared_boundary_day_overlaps(self):
        assert ranges_overlap(date(2025, 1, 10), date(2025, 1, 15), date(2025, 1, 15), date(2025, 1, 20))

    def test_adjacent_ranges_do_not_overlap(self):
        assert not ranges_overlap(date(2025, 1, 10), date(2025, 1, 14), date(2025, 1, 15), date(2025, 1, 20))

    def test_containment_overlaps_both_ways(self):
        outer = (date(2025, 1, 1), date(2025, 1, 31))
        inner = (date(2025, 1, 10), date(2025, 1, 12))
        assert ranges_overlap(*outer, *inner)
        assert ranges_overlap(*inner, *outer)


class TestLeaveRequestModel:
    def test_new_request_is_pending(self, make_request):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13))
        assert request.status == LeaveStatus.PENDING
        assert request.is_pending() and request.can_be_modified()

    def test_status_parsing_is_case_insensitive(self):
        assert LeaveStatus.from_string("approved") == LeaveStatus.APPROVED
        assert LeaveStatus.from_string("REJECTED") == LeaveStatus.REJECTED
        assert LeaveStatus.from_string("something else") == LeaveStatus.PENDING
        assert LeaveStatus.from_string(None) == LeaveStatus.PENDING

    def test_enum_status_is_stored_as_its_value(self, make_request):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13), approval_status=LeaveStatus.APPROVED)
        assert request.approval_status == "Approved"

    def test_approve_from_pending(self, make_request):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13))
        decided = datetime(2025, 1, 6, 10, 30)
        assert request.approve("Enjoy", decided)
        assert request.is_approved()
        assert request.date_approved == decided
        assert request.supervisor_notes == "Enjoy"

    def test_approve_twice_fails_without_change(self, make_request):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13))
        first = datetime(2025, 1, 6, 10, 30)
        request.approve("ok", first)
        assert request.approve("again", datetime(2025, 1, 7)) is False
        assert request.date_approved == first
        assert request.supervisor_notes == "ok"

    @pytest.mark.parametrize("notes", ["", "   ", None])
    def test_reject_requires_notes(self, make_request, notes):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13))
        assert request.reject(notes, datetime(2025, 1, 6)) is False
        assert request.is_pending()
        assert request.date_approved is None

    def test_reject_stamps_decision_time(self, make_request):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13))
        decided = datetime(2025, 1, 6, 11)
        assert request.reject("Team offsite that week", decided)
        assert request.is_rejected()
        assert request.date_approved == decided

    def test_terminal_states_do_not_reopen(self, make_request):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13))
        request.reject("No cover", datetime(2025, 1, 6))
        assert request.approve("changed my mind", datetime(2025, 1, 7)) is False
        assert request.is_rejected()

    def test_working_days_skip_weekends(self, make_request):
        # Friday to Monday
        request = make_request(date(2025, 1, 10), date(2025, 1, 13))
        assert len(request.get_all_leave_dates()) == 4
        assert request.get_working_day_leave_dates() == [date(2025, 1, 10), date(2025, 1, 13)]
        assert request.working_days_count == 2

    def test_date_conflicts(self, make_request):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13))
        days = [date(2025, 1, 9), date(2025, 1, 10), date(2025, 1, 13), date(2025, 1, 14)]
        assert request.get_conflicting_dates(days) == [date(2025, 1, 10), date(2025, 1, 13)]
        assert not request.has_conflict_with_date(None)

    def test_validation(self, make_request):
        today = date(2025, 1, 6)
        assert make_request(date(2025, 1, 6), date(2025, 1, 6)).is_valid_leave_request(today)
        assert not make_request(date(2025, 1, 5), date(2025, 1, 8)).is_valid_leave_request(today)
        assert not make_request(date(2025, 1, 9), date(2025, 1, 8)).is_valid_leave_request(today)
        assert not make_request(date(2025, 1, 9), date(2025, 1, 10), employee_id=0).is_valid_leave_request(today)

    def test_cancellation_window(self, make_request):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13))
        request.approve(None, datetime(2025, 1, 6))
        assert request.can_be_cancelled(date(2025, 1, 9))
        assert not request.can_be_cancelled(date(2025, 1, 10))


class TestLeaveRequestPersistence:
    def test_create_stamps_creation_time_and_forces_pending(self, request_service, make_request, clock):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13), approval_status=LeaveStatus.APPROVED)
        result = request_service.create_leave_request(request)
        assert result
        assert request.leave_request_id is not None
        assert request.date_created == clock.now()
        assert request.is_pending()

    @pytest.mark.parametrize("start,end", [
        (date(2025, 1, 1), date(2025, 1, 3)),
        (date(2025, 1, 12), date(2025, 1, 10)),
    ])
    def test_create_refuses_invalid_dates(self, request_service, make_request, start, end):
        result = request_service.create_leave_request(make_request(start, end))
        assert not result
        assert result.error_code == "VALIDATION_ERROR"
        assert request_service.get_leave_requests_by_employee(1) == []

    def test_requests_by_employee_and_status(self, request_service, make_request, clock):
        first = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 10))
        clock.advance(minutes=5)
        second = _save(request_service, make_request, date(2025, 2, 3), date(2025, 2, 4))
        _save(request_service, make_request, date(2025, 2, 3), date(2025, 2, 4), employee_id=8)
        request_service.approve_leave_request(first.leave_request_id, None, 99, apply_to_balance=False)

        assert [r.leave_request_id for r in request_service.get_leave_requests_by_employee(1)] == [
            second.leave_request_id, first.leave_request_id
        ]
        approved = request_service.get_leave_requests_by_employee(1, LeaveStatus.APPROVED)
        assert [r.leave_request_id for r in approved] == [first.leave_request_id]

    def test_requests_in_date_range(self, request_service, make_request):
        jan = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15))
        _save(request_service, make_request, date(2025, 3, 1), date(2025, 3, 2))
        found = request_service.get_leave_requests_by_employee_and_date_range(1, date(2025, 1, 15), date(2025, 1, 31))
        assert [r.leave_request_id for r in found] == [jan.leave_request_id]
        assert request_service.get_leave_requests_by_employee_and_date_range(1, date(2025, 2, 1), date(2025, 1, 1)) == []

    def test_pending_and_upcoming(self, request_service, make_request):
        a = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 10))
        b = _save(request_service, make_request, date(2025, 1, 20), date(2025, 1, 21), employee_id=2)
        request_service.approve_leave_request(a.leave_request_id, None, 99, apply_to_balance=False)

        assert [r.leave_request_id for r in request_service.get_all_pending_leave_requests()] == [b.leave_request_id]
        assert [r.leave_request_id for r in request_service.get_upcoming_leaves(1)] == [a.leave_request_id]
        assert request_service.get_upcoming_leaves(2) == []

    def test_leave_summary(self, request_service, make_request):
        ids = [
            _save(request_service, make_request, date(2025, 1, 10 + i), date(2025, 1, 10 + i)).leave_request_id
            for i in range(3)
        ]
        request_service.approve_leave_request(ids[0], None, 99, apply_to_balance=False)
        request_service.reject_leave_request(ids[1], "Busy week", 99)

        summary = request_service.get_leave_summary(1, date(2025, 1, 1), date(2025, 1, 31))
        assert summary["total_requests"] == 3
        assert summary["approved_requests"] == 1
        assert summary["rejected_requests"] == 1
        assert summary["pending_requests"] == 1
        assert summary["approval_rate"] == pytest.approx(100 / 3)

        empty = request_service.get_leave_summary(1, date(2024, 1, 1), date(2024, 12, 31))
        assert empty["total_requests"] == 0
        assert empty["approval_rate"] == 0.0

    def test_update_and_delete(self, request_service, make_request):
        request = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 10))
        request.leave_end = date(2025, 1, 14)
        assert request_service.update_leave_request(request)
        assert request_service.get_leave_request_by_id(request.leave_request_id).leave_end == date(2025, 1, 14)

        request.leave_end = date(2025, 1, 1)
        assert request_service.update_leave_request(request).error_code == "VALIDATION_ERROR"
        request.leave_end = date(2025, 1, 14)

        assert request_service.delete_leave_request(request.leave_request_id)
        assert request_service.get_leave_request_by_id(request.leave_request_id) is None
        assert request_service.delete_leave_request(request.leave_request_id).error_code == "NOT_FOUND"


class TestOverlapChecker:
    def test_boundary_day_is_reported(self, request_service, make_request):
        existing = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15))
        candidate = make_request(date(2025, 1, 15), date(2025, 1, 20))
        overlapping = request_service.get_overlapping_leave_requests(candidate)
        assert [r.leave_request_id for r in overlapping] == [existing.leave_request_id]

    def test_adjacent_request_is_not_reported(self, request_service, make_request):
        _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 14))
        candidate = make_request(date(2025, 1, 15), date(2025, 1, 20))
        assert request_service.get_overlapping_leave_requests(candidate) == []

    def test_candidate_does_not_overlap_itself(self, request_service, make_request):
        saved = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15))
        assert request_service.get_overlapping_leave_requests(saved) == []

    def test_other_employees_and_rejected_requests_are_ignored(self, request_service, make_request):
        _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15), employee_id=5)
        rejected = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15))
        request_service.reject_leave_request(rejected.leave_request_id, "No cover", 99)
        candidate = make_request(date(2025, 1, 12), date(2025, 1, 13))
        assert request_service.get_overlapping_leave_requests(candidate) == []

    def test_results_are_ordered_by_start(self, request_service, make_request):
        late = _save(request_service, make_request, date(2025, 1, 20), date(2025, 1, 22))
        early = _save(request_service, make_request, date(2025, 1, 8), date(2025, 1, 12))
        candidate = make_request(date(2025, 1, 10), date(2025, 1, 21))
        ids = [r.leave_request_id for r in request_service.get_overlapping_leave_requests(candidate)]
        assert ids == [early.leave_request_id, late.leave_request_id]

    def test_invalid_candidate_yields_nothing(self, request_service, make_request):
        _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15))
        assert request_service.get_overlapping_leave_requests(make_request(date(2025, 1, 14), date(2025, 1, 11))) == []
        assert request_service.get_overlapping_leave_requests(None) == []

    def test_only_approved_overlaps_conflict(self, request_service, make_request):
        existing = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15))
        candidate = make_request(date(2025, 1, 14), date(2025, 1, 16))
        assert request_service.get_overlapping_leave_requests(candidate)
        assert request_service.has_conflict_with_approved_leaves(candidate) is False

        request_service.approve_leave_request(existing.leave_request_id, None, 99, apply_to_balance=False)
        assert request_service.has_conflict_with_approved_leaves(candidate) is True

    def test_model_overlap_check(self, make_request):
        request = make_request(date(2025, 1, 10), date(2025, 1, 15))
        assert request.overlaps(make_request(date(2025, 1, 15), date(2025, 1, 18)))
        assert not request.overlaps(make_request(date(2025, 1, 16), date(2025, 1, 18)))
        assert not request.overlaps(make_request(date(2025, 1, 14), date(2025, 1, 12)))


class TestSubmission:
    def test_overlap_with_approved_leave_is_refused(self, request_service, make_request):
        approved = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15))
        request_service.approve_leave_request(approved.leave_request_id, None, 99, apply_to_balance=False)

        result = request_service.create_leave_request(make_request(date(2025, 1, 15), date(2025, 1, 20)))

        assert not result
        assert result.error_code == "CONFLICT"
        assert result.error.details["overlapping_ids"] == [approved.leave_request_id]
        assert [r.leave_request_id for r in request_service.get_leave_requests_by_employee(1)] == [
            approved.leave_request_id
        ]

    def test_overlap_with_pending_leave_is_accepted(self, request_service, make_request):
        _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15))
        assert request_service.create_leave_request(make_request(date(2025, 1, 15), date(2025, 1, 20)))

    def test_another_employees_approved_leave_does_not_block(self, request_service, make_request):
        other = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15), employee_id=5)
        request_service.approve_leave_request(other.leave_request_id, None, 99, apply_to_balance=False)
        assert request_service.create_leave_request(make_request(date(2025, 1, 12), date(2025, 1, 13)))


class TestStatusCase:
    @pytest.mark.parametrize("raw,stored", [
        ("approved", "Approved"),
        ("REJECTED", "Rejected"),
        (LeaveStatus.APPROVED, "Approved"),
        ("unknown", "Pending"),
    ])
    def test_status_is_stored_in_canonical_case(self, make_request, raw, stored):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13), approval_status=raw)
        assert request.approval_status == stored

    def test_assignment_is_normalised(self, make_request):
        request = make_request(date(2025, 1, 10), date(2025, 1, 13))
        request.approval_status = "approved"
        assert request.approval_status == "Approved"

    def test_lowercase_rows_from_other_writers_are_matched(self, request_service, make_request, db_session, session_factory):
        saved = _save(request_service, make_request, date(2025, 1, 10), date(2025, 1, 15))
        writer = session_factory()
        try:
            writer.execute(
                text("UPDATE leaverequest SET approvalStatus = 'approved' WHERE leaveRequestId = :id"),
                {"id": saved.leave_request_id},
            )
            writer.commit()
        finally:
            writer.close()
        db_session.expire_all()

        candidate = make_request(date(2025, 1, 14), date(2025, 1, 16))
        assert request_service.has_conflict_with_approved_leaves(candidate)
        assert [r.leave_request_id for r in request_service.get_upcoming_leaves(1)] == [saved.leave_request_id]
        assert request_service.get_all_pending_leave_requests() == []
        assert request_service.get_leave_summary(1, date(2025, 1, 1), date(2025, 1, 31))["approved_requests"] == 1
