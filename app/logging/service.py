# app/logging/service.py
"""Service layer for the logging module."""

import logging
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from app.logging.dao import LogDAO
from app.logging.schemas import LogRead

logger = logging.getLogger(__name__)


class LogService:
    """Retrieves and records request logs."""

    def __init__(self, log_dao: LogDAO):
        self.dao = log_dao

    def get_logs(
        self,
        limit: int = 50,
        offset: int = 0,
        hours: int = 24,
        status_min: Optional[int] = None,
        status_max: Optional[int] = None,
        path_prefix: Optional[str] = None,
    ) -> List[LogRead]:
        try:
            logs = self.dao.get_logs(limit, offset, hours, status_min, status_max, path_prefix)
        except SQLAlchemyError as e:
            raise HTTPException(status_code=500, detail=f"Error fetching logs: {str(e)}") from e
        return [LogRead.model_validate(log) for log in logs]

    def count_logs(
        self,
        hours: int = 24,
        status_min: Optional[int] = None,
        status_max: Optional[int] = None,
        path_prefix: Optional[str] = None,
    ) -> int:
        try:
            return self.dao.count_logs(hours, status_min, status_max, path_prefix)
        except SQLAlchemyError as e:
            raise HTTPException(status_code=500, detail=f"Error counting logs: {str(e)}") from e

    def get_by_id(self, log_id: int) -> Optional[LogRead]:
        log = self.dao.get_by_id(log_id)
        return LogRead.model_validate(log) if log else None

    def record(self, **log_data) -> None:
        """Persist one log entry. A failure here never fails the request being logged."""
        try:
            self.dao.create_log(**log_data)
        except SQLAlchemyError as e:
            logger.error("Failed to persist request log for %s: %s", log_data.get("path"), e)


def persist_log(session_factory, **log_data) -> None:
    """Record a log entry in its own session. Used outside request dependencies."""
    with session_factory() as session:
        LogService(LogDAO(session)).record(**log_data)
