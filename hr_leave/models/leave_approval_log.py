from sqlalchemy import Table, Column, Integer, String, DateTime, Text
from hr_leave.database import Base

# Append-only trail of supervisor decisions. Deployments may omit the table;
# approvals must still succeed without it, so it has no ORM mapping or keys.
leave_approval_log = Table(
    "leave_approval_log",
    Base.metadata,
    Column("leaveRequestId", Integer, nullable=False, index=True),
    Column("approverId", Integer),
    Column("action", String(20), nullable=False),
    Column("notes", Text),
    Column("actionDate", DateTime),
)
