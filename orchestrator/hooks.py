# HEARTH v1.0 - Targeted hook dispatch (prestart / poststart)
import logging

from apps.configurator_base import AppState, HookContext
from apps.health import DEFAULT_HEALTH_CHECK_TIMEOUT, DEFAULT_SSO_TIMEOUT, wait_for_sso

_log = logging.getLogger(__name__)

# Overall budget for one hook invocation
HOOK_TIMEOUT = 5 * 60


def providers_of(value):
    '''Integration values hold one provider or a comma-separated list'''
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    return [p.strip() for p in str(value or '').split(',') if p.strip()]


class HookDispatcher:
    '''
    Runs one app's configurator hooks. Every call reloads the app record,
    since hook invocations are separate processes.
    '''

    def __init__(self, registry, app_store, data_dir, authentik_port,
                 sso_timeout=DEFAULT_SSO_TIMEOUT, health_timeout=DEFAULT_HEALTH_CHECK_TIMEOUT,
                 sso_interval=None):
        self.registry = registry
        self.app_store = app_store
        self.data_dir = data_dir
        self.authentik_port = authentik_port
        self.sso_timeout = sso_timeout
        self.health_timeout = health_timeout
        self.sso_interval = sso_interval

    def build_app_state(self, app_name, record=None):
        '''App State for app_name. A missing record gives empty defaults.'''
        if record is None:
            record = self.app_store.get_by_name(app_name)

        integrations = {}
        port = 0
        if record is not None:
            port = record.port or 0
            for name, value in record.integration_config.items():
                integrations[name] = providers_of(value)
        else:
            _log.debug("no app record, using defaults app=%s", app_name)

        return AppState(
            name=app_name,
            data_path=self.data_dir / app_name,
            shared_data_path=self.data_dir,
            port=port,
            integrations=integrations,
        )

    def _wait_for_sso(self, ctx, app_name, record):
        if record is None or 'sso' not in record.integration_config:
            return
        kwargs = {}
        if self.sso_interval is not None:
            kwargs['interval'] = self.sso_interval
        wait_for_sso(ctx, app_name, self.authentik_port, timeout=self.sso_timeout, **kwargs)

    def prestart(self, app_name, ctx=None, record=None):
        '''Run PreStart. No configurator means nothing to do.'''
        ctx = ctx or HookContext.with_timeout(HOOK_TIMEOUT)
        configurator = self.registry.get(app_name)
        if configurator is None:
            _log.debug("no configurator registered app=%s", app_name)
            return False

        if record is None:
            record = self.app_store.get_by_name(app_name)
        self._wait_for_sso(ctx, app_name, record)

        _log.info("running prestart app=%s", app_name)
        configurator.pre_start(ctx, self.build_app_state(app_name, record))
        return True

    def health_check(self, app_name, ctx=None):
        '''Wait for the app to come up. False when there is no configurator.'''
        ctx = ctx or HookContext.with_timeout(HOOK_TIMEOUT)
        configurator = self.registry.get(app_name)
        if configurator is None:
            return False
        _log.info("running health check app=%s", app_name)
        configurator.health_check(ctx.child(self.health_timeout))
        return True

    def run_post_start(self, app_name, ctx=None, record=None):
        ctx = ctx or HookContext.with_timeout(HOOK_TIMEOUT)
        configurator = self.registry.get(app_name)
        if configurator is None:
            return False
        _log.info("running poststart app=%s", app_name)
        configurator.post_start(ctx, self.build_app_state(app_name, record))
        return True

    def poststart(self, app_name, ctx=None, record=None):
        '''HealthCheck, then PostStart only if the app came up'''
        ctx = ctx or HookContext.with_timeout(HOOK_TIMEOUT)
        if not self.health_check(app_name, ctx):
            _log.debug("no configurator registered app=%s", app_name)
            return False
        return self.run_post_start(app_name, ctx, record)
