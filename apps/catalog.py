# HEARTH v1.0 - Catalog loader and integration graph
import json
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List

from utils.errors import StorageError, ValidationError

_log = logging.getLogger(__name__)


@dataclass
class CompatibleApp:
    app: str
    default: bool = False
    category: str = ''


@dataclass
class Integration:
    required: bool = False
    multi: bool = False
    compatible: List[CompatibleApp] = field(default_factory=list)


@dataclass
class HealthCheck:
    path: str = '/'
    interval: int = 2
    timeout: int = 60


@dataclass
class AppDefinition:
    name: str
    display_name: str = ''
    version: str = ''
    port: int = 0
    is_system: bool = False
    image: str = ''
    network: str = 'host'
    sso_strategy: str = 'none'
    health_check: HealthCheck = field(default_factory=HealthCheck)
    integrations: dict = field(default_factory=dict)  # name -> Integration

    @classmethod
    def from_dict(cls, data):
        integrations = {}
        for int_name, raw in (data.get('integrations') or {}).items():
            integrations[int_name] = Integration(
                required=bool(raw.get('required', False)),
                multi=bool(raw.get('multi', False)),
                compatible=[
                    CompatibleApp(
                        app=c['app'],
                        default=bool(c.get('default', False)),
                        category=c.get('category', ''),
                    )
                    for c in raw.get('compatible', [])
                ],
            )
        hc = data.get('health_check') or {}
        return cls(
            name=data['name'],
            display_name=data.get('display_name', data['name']),
            version=data.get('version', ''),
            port=int(data.get('port') or 0),
            is_system=bool(data.get('is_system', False)),
            image=data.get('image', ''),
            network=data.get('network', 'host'),
            sso_strategy=data.get('sso_strategy', 'none'),
            health_check=HealthCheck(
                path=hc.get('path', '/'),
                interval=int(hc.get('interval', 2)),
                timeout=int(hc.get('timeout', 60)),
            ),
            integrations=integrations,
        )


@dataclass
class ConfigTask:
    target: str
    source: str
    integration: str


@dataclass
class IntegrationChoice:
    integration: str
    required: bool
    installed: List[CompatibleApp] = field(default_factory=list)
    available: List[CompatibleApp] = field(default_factory=list)
    recommended: str = ''


@dataclass
class InstallPlan:
    app: str
    can_install: bool = True
    blockers: List[str] = field(default_factory=list)
    choices: List[IntegrationChoice] = field(default_factory=list)
    auto_config: List[ConfigTask] = field(default_factory=list)
    dependents: List[ConfigTask] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


@dataclass
class RemovePlan:
    app: str
    can_remove: bool = True
    blockers: List[str] = field(default_factory=list)
    will_unconfigure: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


def load_catalog(path):
    '''Load app definitions from a catalog JSON file.
    A missing file is an empty catalog.'''
    path = Path(path)
    if not path.exists():
        _log.warning("catalog file not found path=%s", path)
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise StorageError("load catalog", path, e) from e

    apps = {}
    for entry in data.get('apps', []):
        if not entry.get('name'):
            continue
        app = AppDefinition.from_dict(entry)
        apps[app.name] = app
    return apps


class AppGraph:
    '''Integration graph over catalog apps plus the installed set'''

    def __init__(self, apps):
        if isinstance(apps, dict):
            apps = apps.values()
        self.apps = {app.name: app for app in apps}
        self.installed = set()
        self._dependents = {}  # provider -> [(consumer, integration)]
        for app in self.apps.values():
            for int_name, integration in sorted(app.integrations.items()):
                for compat in integration.compatible:
                    self._dependents.setdefault(compat.app, []).append((app.name, int_name))

    def get(self, app_name):
        return self.apps.get(app_name)

    def set_installed(self, names):
        self.installed = set(names)

    def is_installed(self, app_name):
        return app_name in self.installed

    def find_dependents(self, app_name):
        '''Installed apps that integrate with app_name'''
        return [
            ConfigTask(target=consumer, source=app_name, integration=int_name)
            for consumer, int_name in self._dependents.get(app_name, [])
            if consumer in self.installed
        ]

    def get_compatible_apps(self, app_name, integration_name):
        '''Return (installed, available) compatible providers'''
        app = self.apps.get(app_name)
        if app is None or integration_name not in app.integrations:
            return [], []
        installed, available = [], []
        for compat in app.integrations[integration_name].compatible:
            (installed if compat.app in self.installed else available).append(compat)
        return installed, available

    def plan_install(self, app_name):
        app = self.apps.get(app_name)
        if app is None:
            raise ValidationError(f"unknown app: {app_name}")

        plan = InstallPlan(app=app_name)
        for int_name, integration in sorted(app.integrations.items()):
            installed, available = self.get_compatible_apps(app_name, int_name)
            if not installed:
                if integration.required:
                    plan.choices.append(_make_choice(int_name, integration, installed, available))
            elif len(installed) == 1 or integration.multi:
                for compat in installed:
                    plan.auto_config.append(ConfigTask(target=app_name, source=compat.app, integration=int_name))
            else:
                plan.choices.append(_make_choice(int_name, integration, installed, available))

        plan.dependents = self.find_dependents(app_name)
        return plan

    def plan_remove(self, app_name):
        if app_name not in self.apps:
            raise ValidationError(f"unknown app: {app_name}")

        plan = RemovePlan(app=app_name)
        for dep in self.find_dependents(app_name):
            integration = self.apps[dep.target].integrations[dep.integration]
            alternatives = [
                c.app for c in integration.compatible
                if c.app != app_name and c.app in self.installed
            ]
            if integration.required and not alternatives:
                plan.can_remove = False
                plan.blockers.append(f"{dep.target} requires a {dep.integration}")
            elif dep.target not in plan.will_unconfigure:
                plan.will_unconfigure.append(dep.target)
        return plan

    def validate_choices(self, app_name, choices):
        '''Check user integration choices against the catalog.
        Returns the list of required integrations still unfilled.'''
        app = self.apps.get(app_name)
        if app is None:
            raise ValidationError(f"unknown app: {app_name}")

        for int_name, provider in (choices or {}).items():
            integration = app.integrations.get(int_name)
            if integration is None:
                raise ValidationError(f"{app_name} has no integration '{int_name}'")
            if provider not in {c.app for c in integration.compatible}:
                raise ValidationError(f"{provider} is not compatible with {app_name}.{int_name}")

        missing = []
        for choice in self.plan_install(app_name).choices:
            if choice.required and choice.integration not in (choices or {}) and not choice.recommended:
                missing.append(choice.integration)
        return missing


def _make_choice(int_name, integration, installed, available):
    choice = IntegrationChoice(integration=int_name, required=integration.required)
    for c in installed:
        choice.installed.append(c)
        if c.default:
            choice.recommended = c.app
    for c in available:
        choice.available.append(c)
        if c.default and not choice.recommended:
            choice.recommended = c.app
    return choice
