import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hr_leave.core.clock import Clock, default_clock
from hr_leave.core.exceptions import LeaveError, StorageError
from hr_leave.core.schemas import OperationResult
from hr_leave.database import transaction

T = TypeVar("T")


class BaseService:
    """
    Common plumbing for the leave services.

    Holds the session and the injected clock, and provides the two boundary
    wrappers every public method goes through: ``_execute`` for writes (one
    scoped transaction, result translated to an OperationResult) and
    ``_query`` for reads (neutral default on storage failure). No
    SQLAlchemy exception leaves a service.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or default_clock()
        self._logger = logging.getLogger(self.__class__.__module__)

    def _execute(self, action: str, work: Callable[[], T]) -> OperationResult[T]:
        try:
            with transaction(self.db):
                data = work()
            return OperationResult.ok(data)
        except LeaveError as e:
            self._logger.info(f"{action} refused: {e.message}", extra={"error_code": e.error_code})
            return OperationResult.from_error(e)
        except SQLAlchemyError as e:
            self._logger.error(f"Error {action}: {e}", exc_info=True)
            return OperationResult.from_error(StorageError(f"Storage failure while {action}"))

    def _query(self, action: str, work: Callable[[], T], default: T) -> T:
        try:
            with transaction(self.db):
                return work()
        except SQLAlchemyError as e:
            self._logger.error(f"Error {action}: {e}", exc_info=True)
            return default
