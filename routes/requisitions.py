"""
Requisition lifecycle routes.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from models import REQUISITION_CLOSED
from sourcing_service import close_requisition

requisitions_bp = Blueprint('requisitions', __name__, url_prefix='/api')


@requisitions_bp.route('/vacantes/<requisition_id>/cerrar', methods=['POST'])
@login_required
def close(requisition_id):
    """Close or cancel a requisition; its postings are unpublished"""
    data = request.get_json(silent=True) or {}
    requisition = close_requisition(current_user, requisition_id, data.get('estado', REQUISITION_CLOSED))
    return jsonify({
        'success': True,
        'vacante': {
            'id': requisition.id,
            'estado': requisition.status,
            'fecha_cierre': requisition.closed_at.isoformat() if requisition.closed_at else None,
        },
    }), 200
