"""
Candidate routes: profile detail through the identity gate and paid unlock.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from errors import BadRequest
from identity_service import candidate_view, unlock_identity

candidates_bp = Blueprint('candidates', __name__, url_prefix='/api')


@candidates_bp.route('/candidatos/<candidate_user_id>', methods=['GET'])
@login_required
def candidate_detail(candidate_user_id):
    return jsonify({'success': True, 'candidato': candidate_view(current_user, candidate_user_id)}), 200


@candidates_bp.route('/candidatos/<candidate_user_id>/desbloquear', methods=['POST'])
@login_required
def unlock_candidate(candidate_user_id):
    """Pay to reveal a candidate's identity; repeating the call is free"""
    data = request.get_json(silent=True) or {}
    company_id = data.get('empresa_id')
    if company_id is not None and not isinstance(company_id, str):
        raise BadRequest('empresa_id inválido')

    result = unlock_identity(current_user, candidate_user_id, company_id=company_id)
    if result.already_unlocked:
        mensaje = 'La identidad de este candidato ya estaba desbloqueada'
    else:
        mensaje = f'Identidad desbloqueada ({result.credits_consumed} créditos)'

    return jsonify({
        'success': True,
        'ya_desbloqueado': result.already_unlocked,
        'creditos_consumidos': result.credits_consumed,
        'origen_pago': result.provenance,
        'mensaje': mensaje,
        'candidato': candidate_view(current_user, candidate_user_id),
    }), 200
