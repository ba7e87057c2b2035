"""
Sourcing routes.

POST /api/sourcing runs a free dry-run estimate (default) or a paid
execution against a published posting. Results of past executions are read
and followed up through the /api/vacantes and /api/sourcing/resultados routes.
"""

import logging
import uuid

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from errors import BadRequest
from ranking_service import RankingService
from routes import json_body
from sourcing.results import list_results, result_to_dict, update_status
from sourcing_service import SourcingService

logger = logging.getLogger(__name__)

sourcing_bp = Blueprint('sourcing', __name__, url_prefix='/api')


def build_sourcing_service():
    ranking = RankingService(
        api_key=current_app.config.get('OPENAI_API_KEY'),
        base_url=current_app.config.get('LLM_BASE_URL'),
        model=current_app.config.get('LLM_MODEL'),
    )
    return SourcingService(ranking_service=ranking)


def _parse_uuid(value, field):
    if not value or not isinstance(value, str):
        raise BadRequest(f'{field} es requerido')
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise BadRequest(f'{field} inválido')


@sourcing_bp.route('/sourcing', methods=['POST'])
@login_required
def run_sourcing():
    """Dry-run estimate or paid execution of AI sourcing for a posting"""
    data = json_body()
    posting_id = _parse_uuid(data.get('publicacion_id'), 'publicacion_id')

    dry_run = data.get('dry_run', True)
    if not isinstance(dry_run, bool):
        raise BadRequest('dry_run debe ser booleano')

    result = build_sourcing_service().run(current_user, posting_id, dry_run=dry_run)
    return jsonify(result), 200


@sourcing_bp.route('/vacantes/<requisition_id>/sourcing', methods=['GET'])
@login_required
def requisition_results(requisition_id):
    """Sourcing results for a requisition, best match first"""
    results = list_results(current_user, requisition_id)
    return jsonify({'success': True, 'resultados': results, 'total': len(results)}), 200


@sourcing_bp.route('/sourcing/resultados/<result_id>', methods=['PATCH'])
@login_required
def update_result_status(result_id):
    """Move a sourcing result through the contact workflow"""
    data = json_body()
    note = data.get('notas')
    if note is not None and not isinstance(note, str):
        raise BadRequest('notas debe ser texto')

    result = update_status(current_user, result_id, data.get('estado'), note=note)
    return jsonify({'success': True, 'resultado': result_to_dict(result)}), 200
