import pytest
import os
from datetime import datetime
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LEAVE_TIMEZONE"] = "Asia/Manila"

from hr_leave.core.clock import FixedClock
from hr_leave.database import build_engine, make_session_factory, init_db
from hr_leave.models.leave_balance import LeaveBalance
from hr_leave.models.leave_request import LeaveRequest
from hr_leave.services.leave_balance_service import LeaveBalanceService
from hr_leave.services.leave_request_service import LeaveRequestService

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

@pytest.fixture(scope="function")
def engine():
    """A fresh in-memory database per test, so rollbacks can be asserted freely."""
    test_engine = build_engine(SQLALCHEMY_DATABASE_URL, poolclass=StaticPool)
    init_db(bind=test_engine)
    yield test_engine
    test_engine.dispose()

@pytest.fixture(scope="function")
def session_factory(engine):
    return make_session_factory(engine)

@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()

@pytest.fixture(scope="function")
def clock():
    """Frozen at 2025-01-06 09:00 Manila time (a Monday)."""
    return FixedClock(datetime(2025, 1, 6, 9, 0, 0))

@pytest.fixture(scope="function")
def balance_service(db_session, clock):
    return LeaveBalanceService(db_session, clock)

@pytest.fixture(scope="function")
def request_service(db_session, clock):
    return LeaveRequestService(db_session, clock)

@pytest.fixture(scope="function")
def insert_raw_balance(session_factory, clock):
    """
    Write a leavebalance row directly, bypassing the service, the way a
    concurrent insert would leave a duplicate behind.
    """
    def _insert(employee_id=1, leave_type_id=2, year=2025, total=0, used=0, carry_over=0):
        session = session_factory()
        try:
            row = LeaveBalance(
                employee_id=employee_id,
                leave_type_id=leave_type_id,
                balance_year=year,
                total_leave_days=total,
                used_leave_days=used,
                carry_over_days=carry_over,
                last_updated=clock.now(),
            )
            session.add(row)
            session.commit()
            return row.leave_balance_id
        finally:
            session.close()
    return _insert

@pytest.fixture(scope="function")
def make_request():
    """Build an unsaved leave request."""
    def _make(start, end, employee_id=1, leave_type_id=2, reason="Family trip", **kwargs):
        return LeaveRequest(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            leave_start=start,
            leave_end=end,
            leave_reason=reason,
            **kwargs,
        )
    return _make
