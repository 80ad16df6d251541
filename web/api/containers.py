# HEARTH v1.0
from dataclasses import asdict

from flask import Blueprint, current_app, jsonify

from utils.errors import HearthError, ValidationError
from utils.validation import validate_app_name

bp = Blueprint('api_containers', __name__, url_prefix='/api')


def _client():
    return current_app.config['HEARTH_CONTEXT'].containers


def _unavailable(e):
    return jsonify({'success': False, 'message': str(e)}), 503


@bp.route('/containers')
def list_containers():
    client = _client()
    if client is None:
        return jsonify([])
    try:
        containers = client.list_containers()
    except HearthError as e:
        return _unavailable(e)
    return jsonify([asdict(c) for c in containers])


@bp.route('/containers/<name>/inspect')
def inspect_container(name):
    client = _client()
    try:
        name = validate_app_name(name)
        info = client.get_container(name) if client is not None else None
    except ValidationError as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    except HearthError as e:
        return _unavailable(e)

    if info is None:
        return jsonify({'success': False, 'message': f"container not found: {name}"}), 404
    return jsonify(asdict(info))


def _action(name, action):
    client = _client()
    if client is None:
        return _unavailable("container engine not configured")
    try:
        name = validate_app_name(name)
        if client.get_container(name) is None:
            return jsonify({'success': False, 'message': f"container not found: {name}"}), 404
        action(client, name)
    except ValidationError as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    except HearthError as e:
        return _unavailable(e)
    return jsonify({'success': True})


@bp.route('/containers/<name>/start', methods=['POST'])
def start_container(name):
    return _action(name, lambda c, n: c.start(n))


@bp.route('/containers/<name>/stop', methods=['POST'])
def stop_container(name):
    return _action(name, lambda c, n: c.stop(n))


@bp.route('/containers/<name>/restart', methods=['POST'])
def restart_container(name):
    def restart(client, n):
        client.stop(n)
        client.start(n)
    return _action(name, restart)
