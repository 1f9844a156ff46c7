# app/logging/dao.py
"""Data access for request logs."""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from app.logging.models import Log


class LogDAO:
    """DAO for Log operations."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_by_id(self, log_id: int) -> Optional[Log]:
        return self.db.get(Log, log_id)

    def get_logs(
        self,
        limit: int = 50,
        offset: int = 0,
        hours: int = 24,
        status_min: Optional[int] = None,
        status_max: Optional[int] = None,
        path_prefix: Optional[str] = None,
    ) -> List[Log]:
        """Most recent logs first, within the last ``hours``."""
        query = self._filtered(select(Log), hours, status_min, status_max, path_prefix)
        query = query.order_by(desc(Log.timestamp), desc(Log.id)).offset(offset).limit(limit)
        return list(self.db.execute(query).scalars().all())

    def count_logs(
        self,
        hours: int = 24,
        status_min: Optional[int] = None,
        status_max: Optional[int] = None,
        path_prefix: Optional[str] = None,
    ) -> int:
        query = self._filtered(select(func.count()).select_from(Log), hours, status_min, status_max, path_prefix)
        return self.db.execute(query).scalar_one()

    def create_log(self, **log_data) -> Log:
        if "timestamp" not in log_data:
            log_data["timestamp"] = datetime.now()
        log = Log(**log_data)
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return log

    def _filtered(self, query, hours, status_min, status_max, path_prefix):
        query = query.where(Log.timestamp >= datetime.now() - timedelta(hours=hours))
        if status_min is not None:
            query = query.where(Log.status_code >= status_min)
        if status_max is not None:
            query = query.where(Log.status_code <= status_max)
        if path_prefix:
            query = query.where(Log.path.startswith(path_prefix))
        return query
