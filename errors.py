"""
Error taxonomy for the sourcing / credit pipeline.

Every failure a caller can observe is a SourcingError subclass carrying the
HTTP status it maps to, whether the client may retry, and a user-safe message.
Internal details (balances, upstream payloads, stack traces) are logged
server-side only and never rendered into the response body.
"""

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class SourcingError(Exception):
    status_code = 500
    code = 'internal_error'
    retryable = False
    message = 'Error interno del servidor'

    def __init__(self, message=None, **extra):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.extra = extra

    def to_dict(self):
        payload = {
            'success': False,
            'error': self.message,
            'code': self.code,
            'retryable': self.retryable,
        }
        payload.update(self.extra)
        return payload


class Unauthenticated(SourcingError):
    status_code = 401
    code = 'unauthenticated'
    message = 'No autorizado - Token requerido'


class BadRequest(SourcingError):
    status_code = 400
    code = 'bad_request'
    message = 'Solicitud inválida'


class Forbidden(SourcingError):
    status_code = 403
    code = 'forbidden'
    message = 'No tienes permisos para ejecutar sourcing en esta vacante'


class NotFound(SourcingError):
    status_code = 404
    code = 'not_found'
    message = 'Publicación no encontrada o no publicada'


class RateLimited(SourcingError):
    status_code = 429
    code = 'rate_limited'
    retryable = True
    message = 'Límite de simulaciones alcanzado. Intenta más tarde.'


class NoCandidatesAvailable(SourcingError):
    """Not a fault: every candidate already applied or was sourced for this requisition."""
    status_code = 404
    code = 'no_candidates_available'
    message = 'No hay candidatos disponibles para sourcing'


class InsufficientCredits(SourcingError):
    status_code = 402
    code = 'insufficient_credits'
    message = 'Créditos insuficientes'


class InvalidStatusTransition(SourcingError):
    status_code = 409
    code = 'invalid_status_transition'
    message = 'Transición de estado no permitida'


class ServiceUnavailable(SourcingError):
    status_code = 503
    code = 'service_unavailable'
    retryable = True
    message = 'Servicio de IA no configurado'


class RankingEngineThrottled(SourcingError):
    status_code = 429
    code = 'ranking_engine_throttled'
    retryable = True
    message = 'Límite de solicitudes de IA excedido, intenta más tarde'


class RankingEngineQuotaExceeded(SourcingError):
    status_code = 402
    code = 'ranking_engine_quota_exceeded'
    message = 'Créditos de IA agotados'


class RankingParseError(SourcingError):
    code = 'ranking_parse_error'
    message = 'Error al procesar respuesta de IA'


class RankingEngineError(SourcingError):
    code = 'ranking_engine_error'
    message = 'Error al procesar con IA'


class StorageError(SourcingError):
    """Persistence failed after the engine call; may need manual reconciliation."""
    code = 'storage_error'
    message = 'Error al guardar resultados'


def register_error_handlers(app):
    """Render SourcingError subclasses and stray exceptions as JSON."""

    @app.errorhandler(SourcingError)
    def handle_sourcing_error(error):
        if error.status_code >= 500:
            logger.error(f"{error.code}: {error}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'success': False, 'error': 'Recurso no encontrado', 'code': 'not_found'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({'success': False, 'error': 'Método no permitido', 'code': 'method_not_allowed'}), 405

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        if isinstance(error, HTTPException):
            return jsonify({'success': False, 'error': error.description, 'code': error.name}), error.code
        logger.exception(f"Unhandled error: {str(error)}")
        return jsonify({
            'success': False,
            'error': SourcingError.message,
            'code': SourcingError.code,
            'retryable': False,
        }), 500
