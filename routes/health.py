"""
Health check routes for the sourcing service.

Provides health check endpoints for deployment monitoring and Kubernetes probes.
"""

import time
from datetime import datetime

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

health_bp = Blueprint('health', __name__)

DB_CACHE_SECONDS = 10


def _database_status():
    """Cached database status, refreshed every DB_CACHE_SECONDS"""
    from extensions import db

    cache_age = time.time() - getattr(current_app, 'db_health_cache_time', 0)
    if cache_age < DB_CACHE_SECONDS:
        return getattr(current_app, 'db_health_cache', 'unknown')

    try:
        with db.engine.connect() as conn:
            conn.execute(text('SELECT 1'))
        db_status = 'connected'
    except SQLAlchemyError:
        current_app.logger.warning("Database check failed during health check")
        db_status = 'disconnected'

    current_app.db_health_cache = db_status
    current_app.db_health_cache_time = time.time()
    return db_status


@health_bp.route('/health')
def health_check():
    """Health check with cached database status and ranking engine configuration"""
    start_time = time.time()
    db_status = _database_status()
    engine_configured = bool(current_app.config.get('OPENAI_API_KEY'))

    health_status = {
        'status': 'healthy' if db_status == 'connected' else 'degraded',
        'timestamp': datetime.utcnow().isoformat(),
        'database': db_status,
        'ranking_engine': 'configured' if engine_configured else 'not_configured',
        'response_time_ms': round((time.time() - start_time) * 1000, 2)
    }

    return jsonify(health_status), 200


@health_bp.route('/ready')
def readiness_check():
    """Fast readiness check without database query"""
    return "OK", 200


@health_bp.route('/alive')
def liveness_check():
    """Simple liveness check for deployment systems"""
    return "OK", 200
