# HEARTH v1.0 - Hook invocation entry points
import logging
import signal

from apps.configurator_base import HookContext
from orchestrator.hooks import HOOK_TIMEOUT

_log = logging.getLogger(__name__)

USAGE = "Usage: main.py configure <prestart|poststart|reconcile> [app-name]"


def _load_secrets(config):
    '''Secrets only if the bundle already exists; hooks never create it'''
    from secret_store import SecretManager

    if not config.secrets_path.exists():
        return None
    secrets = SecretManager(config.secrets_path)
    secrets.load()
    return secrets


def _install_sigterm(ctx):
    '''The service manager stops slow hooks with SIGTERM; end waits promptly'''
    def handler(signum, frame):
        _log.warning("received signal, cancelling signal=%s", signum)
        ctx.cancel.set()
    signal.signal(signal.SIGTERM, handler)


def build_dispatcher(config, secrets=None):
    from apps.register import register_all
    from apps.registry import get_registry
    from orchestrator.hooks import HookDispatcher
    from store.apps import AppStore
    from store.db import open_database

    registry = register_all(get_registry(), config, secrets)
    app_store = AppStore(open_database(config.database_url))
    return HookDispatcher(registry, app_store, config.data_dir, config.authentik_port)


def run_prestart(dispatcher, app_name, ctx):
    _log.info("running prestart app=%s", app_name)
    try:
        dispatcher.prestart(app_name, ctx)
    except Exception as e:
        _log.error("prestart failed app=%s error=%s", app_name, e)
        return 1
    _log.info("prestart completed app=%s", app_name)
    return 0


def run_poststart(dispatcher, app_name, ctx):
    _log.info("running poststart app=%s", app_name)
    try:
        dispatcher.poststart(app_name, ctx)
    except Exception as e:
        _log.error("poststart failed app=%s error=%s", app_name, e)
        return 1
    _log.info("poststart completed app=%s", app_name)
    return 0


def run_reconcile(dispatcher, ctx):
    from orchestrator.reconcile import Reconciler

    _log.info("running full reconciliation")
    result = Reconciler(dispatcher, dispatcher.app_store).reconcile(ctx)
    for error in result.errors:
        _log.error("reconcile error detail=%s", error)
    if result.errors:
        return 1
    _log.info("reconciliation completed reconciled=%d", len(result.reconciled))
    return 0


def handle_configure_command(args, config):
    '''Dispatch `configure <action> [app]`; returns the exit code'''
    if not args:
        _log.error(USAGE)
        return 1

    action = args[0]
    if action in ('prestart', 'poststart') and len(args) < 2:
        _log.error("Usage: main.py configure %s <app-name>", action)
        return 1
    if action not in ('prestart', 'poststart', 'reconcile'):
        _log.error("Unknown action: %s. %s", action, USAGE)
        return 1

    try:
        dispatcher = build_dispatcher(config, _load_secrets(config))
    except Exception as e:
        _log.error("failed to initialize error=%s", e)
        return 1

    ctx = HookContext.with_timeout(HOOK_TIMEOUT)
    _install_sigterm(ctx)

    if action == 'prestart':
        return run_prestart(dispatcher, args[1], ctx)
    if action == 'poststart':
        return run_poststart(dispatcher, args[1], ctx)
    return run_reconcile(dispatcher, ctx)
