# HEARTH v1.0 - Install / uninstall orchestration
import logging
import shutil
import threading
from dataclasses import dataclass, field, asdict
from typing import List

from apps.configurator_base import HookContext
from apps.health import http_probe, poll_until
from nixgen.generator import AppConfig, diff
from store.apps import AppStatus
from utils.errors import HearthError, ReadinessTimeout, WaitCancelled

_log = logging.getLogger(__name__)

DEFAULT_HEALTH_INTERVAL = 2
DEFAULT_HEALTH_TIMEOUT = 60


@dataclass
class InstallRequest:
    app: str
    choices: dict = field(default_factory=dict)  # integration -> provider


@dataclass
class UninstallRequest:
    app: str
    clear_data: bool = False


@dataclass
class InstallResult:
    app: str
    success: bool = False
    error: str = ''
    apps_installed: List[str] = field(default_factory=list)
    rebuild_output: str = ''
    generation_info: str = ''

    def to_dict(self):
        return asdict(self)


@dataclass
class UninstallResult:
    app: str
    success: bool = False
    error: str = ''
    unconfigured: List[str] = field(default_factory=list)
    rebuild_output: str = ''

    def to_dict(self):
        return asdict(self)


def _health_ok(code):
    # 401/403 still prove the app is serving
    return 200 <= code < 400 or code in (401, 403)


class Orchestrator:
    '''
    Drives install and uninstall: plan, record intent, write the
    configuration, apply it, then track health in the background.
    '''

    def __init__(self, graph, app_store, generator, rebuilder, data_dir,
                 secrets=None, history=None, background_health=True):
        self.graph = graph
        self.app_store = app_store
        self.generator = generator
        self.rebuilder = rebuilder
        self.data_dir = data_dir
        self.secrets = secrets
        self.history = history
        self.background_health = background_health
        self._stop = threading.Event()

    def _refresh_installed(self):
        self.graph.set_installed(self.app_store.get_installed_names())

    def _catalog_app(self, name):
        return self.graph.get(name)

    # --- install -----------------------------------------------------

    def resolve_integrations(self, req, plan):
        '''User choices, then auto-config, then recommended defaults'''
        config = dict(req.choices or {})

        auto = {}
        for task in plan.auto_config:
            auto.setdefault(task.integration, []).append(task.source)
        for integration, sources in auto.items():
            config[integration] = ','.join(sorted(sources))

        for choice in plan.choices:
            if choice.integration in config or not choice.required:
                continue
            if choice.recommended:
                config[choice.integration] = choice.recommended
                _log.info("auto-selected integration app=%s integration=%s source=%s",
                          req.app, choice.integration, choice.recommended)
        return config

    def build_install_transaction(self, current, app_name, integration_config):
        tx = current.copy()
        tx.apps[app_name] = AppConfig(enabled=True, integrations=dict(integration_config))
        for value in integration_config.values():
            for source in value.split(','):
                if source not in tx.apps:
                    tx.apps[source] = AppConfig(enabled=True)
                elif not tx.apps[source].enabled:
                    tx.apps[source].enabled = True
        return tx

    def _record_intent(self, app_name, integration_config, recorded):
        '''
        Create app records for the app and any provider not yet installed.
        Names are appended to recorded as each row is written, so a caller
        can still mark them when a later write fails.
        '''
        entries = [(app_name, integration_config)]
        for value in integration_config.values():
            for source in value.split(','):
                if source != app_name and self.app_store.get_by_name(source) is None:
                    entries.append((source, {}))

        for name, config in entries:
            definition = self._catalog_app(name)
            self.app_store.install(
                name,
                display_name=definition.display_name if definition else name,
                version=definition.version if definition else '',
                integration_config=config,
                port=definition.port if definition and definition.port else None,
                is_system=definition.is_system if definition else False,
            )
            if name not in recorded:
                recorded.append(name)

    def _ensure_sso_secrets(self, tx):
        if self.secrets is None:
            return
        for name in tx.enabled_apps():
            definition = self._catalog_app(name)
            if definition is not None and definition.sso_strategy == 'native-oidc':
                self.secrets.derive_client_secret(name)

    def install(self, req):
        result = InstallResult(app=req.app)
        _log.info("starting installation app=%s", req.app)

        try:
            self._refresh_installed()
            plan = self.graph.plan_install(req.app)
            if not plan.can_install:
                result.error = f"cannot install: {', '.join(plan.blockers)}"
                return result
            missing = self.graph.validate_choices(req.app, req.choices)
            if missing:
                result.error = f"missing required integration: {', '.join(missing)}"
                return result

            integration_config = self.resolve_integrations(req, plan)
            snapshot = self.generator.snapshot()
            current = self.generator.load_current()
            tx = self.build_install_transaction(current, req.app, integration_config)
        except HearthError as e:
            result.error = str(e)
            return result

        _log.info("configuration diff app=%s changes=%s", req.app, diff(current, tx).replace("\n", "; "))
        _log.debug("config preview:\n%s", self.generator.preview(tx))

        recorded = []
        try:
            self._record_intent(req.app, integration_config, recorded)
        except HearthError as e:
            _log.error("failed to record intent app=%s error=%s", req.app, e)
            result.error = f"failed to record intent: {e}"
            for name in recorded:
                self._set_status(name, AppStatus.FAILED)
            return result

        record_id = self.history.start('install', req.app) if self.history else None
        try:
            self._ensure_sso_secrets(tx)
            self.generator.apply(tx)
            rebuild = self.rebuilder.switch()
            result.rebuild_output = rebuild.output
            if not rebuild.success:
                raise HearthError(rebuild.error_message or "nixos-rebuild failed")
        except HearthError as e:
            _log.error("installation failed app=%s error=%s", req.app, e)
            result.error = str(e)
            self._restore(snapshot)
            for name in recorded:
                self._set_status(name, AppStatus.FAILED)
            if record_id is not None:
                self.history.finish(record_id, False)
            return result

        if not self.rebuilder.reload_and_restart_apps():
            _log.warning("failed to reload and restart apps")

        newly_enabled = [n for n in tx.enabled_apps() if n == req.app or not current.apps.get(n, AppConfig()).enabled]
        for name in newly_enabled:
            self._set_status(name, AppStatus.STARTING)
            result.apps_installed.append(name)
            self._start_health_check(name)

        self._refresh_installed()
        if record_id is not None:
            self.history.finish(record_id, True)
        result.success = True
        result.generation_info = f"Rebuild completed in {rebuild.duration:.1f}s"
        _log.info("installation complete app=%s apps_installed=%s", req.app, ",".join(result.apps_installed))
        return result

    # --- uninstall ---------------------------------------------------

    def uninstall(self, req):
        app_name = req.app
        result = UninstallResult(app=app_name)
        _log.info("starting uninstallation app=%s clear_data=%s", app_name, req.clear_data)

        try:
            self._refresh_installed()
            plan = self.graph.plan_remove(app_name)
            if not plan.can_remove:
                result.error = f"cannot remove: {', '.join(plan.blockers)}"
                return result
            snapshot = self.generator.snapshot()
            current = self.generator.load_current()
        except HearthError as e:
            result.error = str(e)
            return result

        record = self.app_store.get_by_name(app_name)
        if record is not None:
            self._set_status(app_name, AppStatus.UNINSTALLING)

        record_id = self.history.start('uninstall', app_name) if self.history else None
        app_cfg = current.apps.get(app_name)
        if app_cfg is not None and app_cfg.enabled:
            result.unconfigured = list(plan.will_unconfigure)
            tx = current.copy()
            tx.apps[app_name].enabled = False
            try:
                self.generator.apply(tx)
                rebuild = self.rebuilder.switch()
                result.rebuild_output = rebuild.output
                if not rebuild.success:
                    raise HearthError(rebuild.error_message or "nixos-rebuild failed")
            except HearthError as e:
                _log.error("uninstallation failed app=%s error=%s", app_name, e)
                result.error = str(e)
                self._restore(snapshot)
                if record is not None:
                    self._set_status(app_name, AppStatus.ERROR)
                if record_id is not None:
                    self.history.finish(record_id, False)
                return result
        else:
            _log.info("app not in configuration, cleaning up orphaned entry app=%s", app_name)

        self.rebuilder.stop_user_service(app_name)

        removed = record is None
        try:
            if record is not None:
                self.app_store.uninstall(app_name)
                removed = True
            if self.secrets is not None:
                self.secrets.delete_app_secrets(app_name)
        except HearthError as e:
            _log.error("cleanup failed app=%s error=%s", app_name, e)
            result.error = f"failed to clean up: {e}"
            if not removed:
                self._set_status(app_name, AppStatus.ERROR)
            if record_id is not None:
                self.history.finish(record_id, False)
            return result

        self._refresh_installed()
        if req.clear_data:
            self._clear_app_data(app_name)

        if record_id is not None:
            self.history.finish(record_id, True)
        result.success = True
        _log.info("uninstallation complete app=%s", app_name)
        return result

    def _clear_app_data(self, app_name):
        app_dir = self.data_dir / app_name
        _log.info("removing app data directory app=%s path=%s", app_name, app_dir)
        try:
            shutil.rmtree(app_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            _log.warning("failed to remove app data directory app=%s error=%s", app_name, e)

    def rollback(self):
        '''Switch back to the previous system generation'''
        _log.info("starting rollback")
        result = self.rebuilder.rollback()
        if result.success:
            current = self.generator.load_current()
            self.graph.set_installed(current.enabled_apps())
        return result

    # --- health ------------------------------------------------------

    def _restore(self, snapshot):
        try:
            self.generator.restore(snapshot)
        except HearthError as e:
            _log.error("failed to restore previous configuration error=%s", e)

    def _set_status(self, name, status):
        try:
            self.app_store.update_status(name, status)
        except HearthError as e:
            _log.warning("failed to update app status app=%s error=%s", name, e)

    def _start_health_check(self, app_name):
        if not self.background_health:
            return
        threading.Thread(target=self.wait_for_healthy, args=(app_name,),
                         name=f"health-{app_name}", daemon=True).start()

    def wait_for_healthy(self, app_name, interval=None):
        '''Poll the catalog health path and set running or error'''
        definition = self._catalog_app(app_name)
        if definition is None or not definition.health_check.path or not definition.port:
            _log.debug("no health check configured, assuming healthy app=%s", app_name)
            self._set_status(app_name, AppStatus.RUNNING)
            return True

        hc = definition.health_check
        url = f"http://localhost:{definition.port}{hc.path}"
        timeout = hc.timeout or DEFAULT_HEALTH_TIMEOUT
        ctx = HookContext.with_timeout(timeout, cancel=self._stop)
        _log.info("polling health check app=%s url=%s timeout=%ss", app_name, url, timeout)
        try:
            poll_until(ctx, url, timeout, interval or hc.interval or DEFAULT_HEALTH_INTERVAL,
                       http_probe(url, _health_ok, allow_redirects=False))
        except (ReadinessTimeout, WaitCancelled) as e:
            _log.warning("health check failed app=%s error=%s", app_name, e)
            self._set_status(app_name, AppStatus.ERROR)
            return False

        _log.info("health check passed app=%s", app_name)
        self._set_status(app_name, AppStatus.RUNNING)
        return True

    def recheck_failed_apps(self):
        '''Re-poll health for apps left in failed or error'''
        rechecked = []
        for record in self.app_store.get_all():
            if record.status in (AppStatus.FAILED.value, AppStatus.ERROR.value):
                _log.info("rechecking failed app app=%s status=%s", record.name, record.status)
                rechecked.append(record.name)
                self._start_health_check(record.name)
        return rechecked

    def stop(self):
        self._stop.set()
