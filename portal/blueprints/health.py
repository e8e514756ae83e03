"""Health check endpoints."""
from flask import Blueprint, jsonify
from sqlalchemy import text
from portal.database import get_session

health_bp = Blueprint('health', __name__)


@health_bp.route('/health')
def health():
    """Liveness check; does not touch dependencies."""
    return jsonify({'status': 'ok'}), 200


@health_bp.route('/health/db')
def health_db():
    """
    Database health check.

    Returns:
        200: Healthy (DB connected)
        500: Unhealthy (DB error)
    """
    try:
        session = get_session()
        row = session.execute(text("SELECT 1 as health_check")).fetchone()

        if row and row[0] == 1:
            return jsonify({'status': 'healthy', 'database': 'connected'}), 200
        return jsonify({
            'status': 'unhealthy',
            'database': 'error',
            'message': 'Unexpected query result'
        }), 500

    except Exception as e:
        return jsonify({
            'status': 'unhealthy',
            'database': 'disconnected',
            'error': str(e),
        }), 500


@health_bp.route('/health/cache')
def health_cache():
    """
    Cache health check. Never returns 500: without Redis the portal keeps
    working uncached, so the status is "degraded".
    """
    try:
        from portal.services.cache_service import get_cache
        cache = get_cache()

        if not cache.is_available():
            return jsonify({'status': 'degraded', 'cache': 'unavailable'}), 200

        cache.set(0, 'system', 'health_check', {'test': 'ok'}, ttl=10)
        result = cache.get(0, 'system', 'health_check')
        if result and result.get('test') == 'ok':
            return jsonify({'status': 'ok', 'cache': 'connected'}), 200
        return jsonify({'status': 'degraded', 'cache': 'connected_but_failing'}), 200

    except Exception as e:
        return jsonify({'status': 'degraded', 'cache': 'error', 'error': str(e)}), 200
