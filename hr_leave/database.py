from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from hr_leave.core.config import settings


def build_engine(url: str, **kwargs) -> Engine:
    """
    Create an engine for PostgreSQL, MySQL or SQLite.

    SQLite gets the pysqlite transaction recipe so that BEGIN and SAVEPOINT are
    emitted by SQLAlchemy rather than guessed by the driver; nested
    transactions (used by the approval audit log) depend on it.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, echo=settings.sql_echo, **kwargs)

    connect_args = kwargs.pop("connect_args", {})
    connect_args.setdefault("check_same_thread", False)
    sqlite_engine = create_engine(url, connect_args=connect_args, echo=settings.sql_echo, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return sqlite_engine


def make_session_factory(bind: Engine) -> sessionmaker:
    # Entities returned by services stay readable after their transaction commits
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = build_engine(settings.database_url)

SessionLocal = make_session_factory(engine)

Base = declarative_base()


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """
    Scoped transaction: commit when the block exits normally, roll back on any
    exception and re-raise it. Every multi-step service operation runs in one.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def get_db() -> Iterator[Session]:
    """
    Session Provider: Provides a database session per unit of work.
    Transaction management is handled explicitly in the Service Layer.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None):
    """
    Registers all domain models and initializes the database schema.
    """
    # Import all models to ensure they are registered with Base.metadata before create_all
    from hr_leave.models import leave_balance, leave_request, leave_approval_log  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
