# HEARTH v1.0 - App Record Store
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import func, select

from store.models import InstalledApp
from utils.errors import ContractError

_log = logging.getLogger(__name__)


class AppStatus(str, Enum):
    INSTALLING = 'installing'
    STARTING = 'starting'
    RUNNING = 'running'
    STOPPED = 'stopped'
    ERROR = 'error'
    FAILED = 'failed'
    UNINSTALLING = 'uninstalling'


@dataclass
class ManagedApp:
    '''Detached snapshot of one apps row'''
    name: str
    display_name: str = ''
    version: str = ''
    status: str = AppStatus.INSTALLING.value
    port: Optional[int] = None
    is_system: bool = False
    integration_config: dict = field(default_factory=dict)
    installed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self):
        return {
            'name': self.name,
            'display_name': self.display_name,
            'version': self.version,
            'status': self.status,
            'port': self.port,
            'is_system': self.is_system,
            'integration_config': dict(self.integration_config),
            'installed_at': self.installed_at.isoformat() if self.installed_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


def _decode_config(raw):
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        _log.warning("ignoring malformed integration_config value=%r", raw)
        return {}
    return value if isinstance(value, dict) else {}


def _to_record(row):
    return ManagedApp(
        name=row.name,
        display_name=row.display_name,
        version=row.version,
        status=row.status,
        port=row.port,
        is_system=row.is_system,
        integration_config=_decode_config(row.integration_config),
        installed_at=row.installed_at,
        updated_at=row.updated_at,
    )


def _status_value(status):
    return status.value if isinstance(status, AppStatus) else AppStatus(status).value


class AppStore:
    '''CRUD over installed apps, keyed by app name'''

    def __init__(self, database, on_change=None):
        self.db = database
        self.on_change = on_change

    def _changed(self):
        if self.on_change is not None:
            try:
                self.on_change()
            except Exception as e:
                _log.warning("app change listener failed error=%s", e)

    def _row(self, session, name):
        return session.scalar(select(InstalledApp).where(InstalledApp.name == name))

    def get_all(self):
        with self.db.session() as s:
            rows = s.scalars(select(InstalledApp).order_by(InstalledApp.name)).all()
            return [_to_record(r) for r in rows]

    def get_by_name(self, name):
        '''Return the app record, or None when it does not exist'''
        with self.db.session() as s:
            row = self._row(s, name)
            return _to_record(row) if row is not None else None

    def get_installed_names(self):
        with self.db.session() as s:
            return list(s.scalars(select(InstalledApp.name).order_by(InstalledApp.name)).all())

    def is_installed(self, name):
        return self.get_by_name(name) is not None

    def install(self, name, display_name='', version='', integration_config=None,
                port=None, is_system=False):
        '''Insert or update an app record and mark it installing'''
        config_json = json.dumps(integration_config or {}, sort_keys=True)
        with self.db.session() as s:
            row = self._row(s, name)
            if row is None:
                row = InstalledApp(name=name)
                s.add(row)
            row.display_name = display_name or name
            row.version = version or ''
            row.status = AppStatus.INSTALLING.value
            row.port = port
            row.is_system = bool(is_system)
            row.integration_config = config_json
            row.updated_at = func.now()
        _log.info("app record installed app=%s", name)
        self._changed()

    def ensure_system_app(self, name, display_name='', port=None):
        '''Upsert an infrastructure app as running and hidden'''
        with self.db.session() as s:
            row = self._row(s, name)
            if row is None:
                row = InstalledApp(name=name, integration_config='{}', version='')
                s.add(row)
            row.display_name = display_name or name
            row.status = AppStatus.RUNNING.value
            row.port = port
            row.is_system = True
            row.updated_at = func.now()
        self._changed()

    def _update(self, name, **values):
        with self.db.session() as s:
            row = self._row(s, name)
            if row is None:
                raise ContractError(f"app not found: {name}")
            for key, value in values.items():
                setattr(row, key, value)
            row.updated_at = func.now()
        self._changed()

    def update_status(self, name, status):
        self._update(name, status=_status_value(status))

    def update_integration_config(self, name, integration_config):
        self._update(name, integration_config=json.dumps(integration_config or {}, sort_keys=True))

    def uninstall(self, name):
        '''Delete the app record'''
        with self.db.session() as s:
            row = self._row(s, name)
            if row is None:
                raise ContractError(f"app not found: {name}")
            s.delete(row)
        _log.info("app record removed app=%s", name)
        self._changed()
