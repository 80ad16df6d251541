# HEARTH v1.0
import logging
import threading

from flask import Blueprint, current_app, jsonify, request

_log = logging.getLogger(__name__)

bp = Blueprint('api_system', __name__, url_prefix='/api')

# Global lock for preventing concurrent manual reconciles
_reconcile_lock = threading.Lock()


def _context():
    return current_app.config['HEARTH_CONTEXT']


@bp.route('/health')
def health():
    return jsonify({'status': 'ok'})


@bp.route('/system/stats')
def system_stats():
    return jsonify(_context().stats.get_stats())


@bp.route('/reconcile', methods=['POST'])
def reconcile():
    if not _reconcile_lock.acquire(blocking=False):
        return jsonify({
            'success': False,
            'message': 'Reconcile already in progress'
        }), 409

    try:
        result = _context().reconciler.reconcile()
    finally:
        _reconcile_lock.release()

    if result.errors:
        _log.warning("manual reconcile finished with errors count=%d", len(result.errors))
    return jsonify(result.to_dict())


@bp.route('/rebuilds')
def rebuilds():
    history = _context().history
    if history is None:
        return jsonify([])
    try:
        limit = max(1, min(int(request.args.get('limit', 20)), 200))
    except ValueError:
        limit = 20
    return jsonify([entry.to_dict() for entry in history.recent(limit)])


@bp.route('/rollback', methods=['POST'])
def rollback():
    result = _context().orchestrator.rollback()
    payload = result.to_dict()
    if not result.success:
        return jsonify(payload), 500
    return jsonify(payload)
