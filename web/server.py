# HEARTH v1.0
import logging

from flask import Flask

_log = logging.getLogger(__name__)


class ServerContext:
    '''
    Everything the server process owns, created once at startup and torn
    down on shutdown. Hook invocations never see this object.
    '''

    def __init__(self, config, registry, app_store, orchestrator, queue, reconciler,
                 events, stats, history=None, containers=None, watchdog=True):
        self.config = config
        self.registry = registry
        self.app_store = app_store
        self.orchestrator = orchestrator
        self.queue = queue
        self.reconciler = reconciler
        self.events = events
        self.stats = stats
        self.history = history
        self.containers = containers
        self.watchdog = watchdog

    def visible_apps(self):
        return [app.to_dict() for app in self.app_store.get_all() if not app.is_system]

    def publish_apps(self):
        self.events.broadcast(self.visible_apps())

    def _register_system_apps(self):
        '''The identity provider is infrastructure: always present, never listed'''
        if self.config is None:
            return
        self.app_store.ensure_system_app('authentik', 'Authentik', port=self.config.authentik_port)

    def start(self):
        self.app_store.on_change = self.publish_apps
        self._register_system_apps()
        self.stats.start()
        self.queue.start()
        if self.watchdog:
            self.reconciler.start_watchdog()
        self.orchestrator.recheck_failed_apps()

    def stop(self):
        _log.info("shutting down server context")
        self.reconciler.stop_watchdog()
        self.queue.stop()
        self.orchestrator.stop()
        self.stats.stop()
        self.events.close()
        self.app_store.on_change = None


def build_context(config, secrets=None):
    '''Wire the registry, store, orchestrator and server caches from config'''
    from apps.catalog import AppGraph, load_catalog
    from apps.register import register_all
    from apps.registry import get_registry
    from nixgen.generator import Generator
    from nixgen.rebuild import Rebuilder
    from orchestrator.hooks import HookDispatcher
    from orchestrator.orchestrator import Orchestrator
    from orchestrator.queue import OperationQueue
    from orchestrator.reconcile import Reconciler
    from store.apps import AppStore
    from store.db import open_database
    from store.history import RebuildHistory
    from utils.container_client import ContainerClient
    from utils.system import StatsCollector
    from web.events import AppEventHub

    registry = register_all(get_registry(), config, secrets)
    database = open_database(config.database_url)
    app_store = AppStore(database)
    history = RebuildHistory(database)

    orchestrator = Orchestrator(
        graph=AppGraph(load_catalog(config.catalog_path)),
        app_store=app_store,
        generator=Generator(config.nix_config_path),
        rebuilder=Rebuilder(config.flake_path, config.flake_target, use_sudo=config.rebuild_sudo),
        data_dir=config.data_dir,
        secrets=secrets,
        history=history,
    )
    dispatcher = HookDispatcher(registry, app_store, config.data_dir, config.authentik_port)

    return ServerContext(
        config=config,
        registry=registry,
        app_store=app_store,
        orchestrator=orchestrator,
        queue=OperationQueue(orchestrator),
        reconciler=Reconciler(dispatcher, app_store),
        events=AppEventHub(),
        stats=StatsCollector(),
        history=history,
        containers=ContainerClient(config.container_socket),
    )


def create_app(context):
    app = Flask(__name__)
    app.config['HEARTH_CONTEXT'] = context

    # Request size limit (1 MB)
    app.config['MAX_CONTENT_LENGTH'] = 1024 * 1024

    @app.after_request
    def set_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        return response

    from web.api.apps import bp as apps_bp
    from web.api.containers import bp as containers_bp
    from web.api.system import bp as system_bp

    app.register_blueprint(apps_bp)
    app.register_blueprint(containers_bp)
    app.register_blueprint(system_bp)

    return app


def run_web(config, secrets=None, host='0.0.0.0', port=None):
    context = build_context(config, secrets)
    app = create_app(context)
    port = port or config.port

    from cli.ui import show_info, show_success
    context.start()
    show_success(f"HEARTH API running at http://{host}:{port}")
    show_info("Press Ctrl+C to stop")
    try:
        from waitress import serve
        serve(app, host=host, port=port, threads=8, channel_timeout=120)
    finally:
        context.stop()
