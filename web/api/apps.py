# HEARTH v1.0
import queue

from flask import Blueprint, Response, current_app, jsonify, request

from orchestrator.orchestrator import InstallRequest, UninstallRequest
from utils.errors import HearthError, ValidationError
from utils.validation import validate_app_name, validate_choices
from web.events import format_event

bp = Blueprint('api_apps', __name__, url_prefix='/api')

KEEPALIVE_SECONDS = 15


def _context():
    return current_app.config['HEARTH_CONTEXT']


@bp.route('/apps')
def list_apps():
    return jsonify(_context().visible_apps())


@bp.route('/apps/events')
def app_events():
    '''Full app list on connect, then one event per change'''
    ctx = _context()
    subscriber = ctx.events.subscribe()
    initial = ctx.visible_apps()

    def generate():
        try:
            yield format_event(initial)
            while True:
                try:
                    apps = subscriber.get(timeout=KEEPALIVE_SECONDS)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                if apps is None:
                    return
                yield format_event(apps)
        finally:
            ctx.events.unsubscribe(subscriber)

    return Response(
        generate(),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no'
        }
    )


@bp.route('/apps/<name>/plan-install')
def plan_install(name):
    ctx = _context()
    try:
        ctx.orchestrator.graph.set_installed(ctx.app_store.get_installed_names())
        plan = ctx.orchestrator.graph.plan_install(validate_app_name(name))
    except ValidationError as e:
        return jsonify({'success': False, 'message': str(e)}), 404
    return jsonify(plan.to_dict())


@bp.route('/apps/<name>/plan-remove')
def plan_remove(name):
    ctx = _context()
    try:
        ctx.orchestrator.graph.set_installed(ctx.app_store.get_installed_names())
        plan = ctx.orchestrator.graph.plan_remove(validate_app_name(name))
    except ValidationError as e:
        return jsonify({'success': False, 'message': str(e)}), 404
    return jsonify(plan.to_dict())


def _run(enqueue, req):
    try:
        result = enqueue(req)
    except HearthError as e:
        return jsonify({'success': False, 'message': str(e)}), 503
    payload = result.to_dict()
    if not result.success:
        payload['message'] = result.error
        return jsonify(payload), 400
    return jsonify(payload)


@bp.route('/apps/install', methods=['POST'])
def install_app():
    data = request.get_json(silent=True) or {}
    try:
        app_name = validate_app_name(data.get('app'))
        choices = validate_choices(data.get('choices'))
    except ValidationError as e:
        return jsonify({'success': False, 'message': str(e)}), 400

    return _run(_context().queue.enqueue_install, InstallRequest(app=app_name, choices=choices))


@bp.route('/apps/uninstall', methods=['POST'])
def uninstall_app():
    data = request.get_json(silent=True) or {}
    try:
        app_name = validate_app_name(data.get('app'))
    except ValidationError as e:
        return jsonify({'success': False, 'message': str(e)}), 400

    req = UninstallRequest(app=app_name, clear_data=bool(data.get('clear_data', False)))
    return _run(_context().queue.enqueue_uninstall, req)
