# HEARTH v1.0 - Append-only rebuild audit trail
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select

from store.models import RebuildRecord

STATUS_RUNNING = 'running'
STATUS_SUCCESS = 'success'
STATUS_FAILED = 'failed'


@dataclass
class RebuildEntry:
    id: int
    trigger: str
    app_name: Optional[str]
    status: str
    log_path: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    def to_dict(self):
        return {
            'id': self.id,
            'trigger': self.trigger,
            'app_name': self.app_name,
            'status': self.status,
            'log_path': self.log_path,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }


class RebuildHistory:
    '''Records of configuration apply attempts. Rows are never deleted.'''

    def __init__(self, database):
        self.db = database

    def start(self, trigger, app_name=None):
        with self.db.session() as s:
            record = RebuildRecord(trigger=trigger, app_name=app_name, status=STATUS_RUNNING)
            s.add(record)
            s.flush()
            return record.id

    def finish(self, record_id, success, log_path=None):
        with self.db.session() as s:
            record = s.get(RebuildRecord, record_id)
            if record is None:
                return
            record.status = STATUS_SUCCESS if success else STATUS_FAILED
            record.log_path = log_path
            record.completed_at = func.now()

    def recent(self, limit=20):
        with self.db.session() as s:
            rows = s.scalars(
                select(RebuildRecord).order_by(RebuildRecord.id.desc()).limit(limit)
            ).all()
            return [
                RebuildEntry(r.id, r.trigger, r.app_name, r.status, r.log_path,
                             r.started_at, r.completed_at)
                for r in rows
            ]
