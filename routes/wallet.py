"""
Wallet routes: balances, movement history and inherited-credit transfers.
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from errors import BadRequest, Forbidden
from routes import company_member_required, json_body
from wallet_service import PAYER_COMPANY, PAYER_RECRUITER, Payer, WalletLedger

logger = logging.getLogger(__name__)

wallet_bp = Blueprint('wallet', __name__, url_prefix='/api')

MAX_MOVEMENTS = 200


def _positive_amount(value):
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise BadRequest('cantidad debe ser un entero mayor a cero')
    return value


def _recruiter_wallet_dict(wallet):
    return {
        'creditos_propios': wallet.own_credits if wallet else 0,
        'creditos_heredados': wallet.inherited_credits if wallet else 0,
        'creditos_disponibles': wallet.available_credits if wallet else 0,
    }


@wallet_bp.route('/wallet', methods=['GET'])
@login_required
def wallet_summary():
    """Caller's own balances: recruiter wallet and one per company membership"""
    ledger = WalletLedger()
    payload = {'success': True, 'reclutador': None, 'empresas': []}

    recruiter = current_user.recruiter_profile
    if recruiter is not None:
        wallet = ledger.get_wallet(Payer(PAYER_RECRUITER, current_user.id, recruiter_id=recruiter.id))
        payload['reclutador'] = _recruiter_wallet_dict(wallet)

    for company_id in current_user.company_ids():
        wallet = ledger.get_wallet(Payer(PAYER_COMPANY, current_user.id, company_id=company_id))
        payload['empresas'].append({
            'empresa_id': company_id,
            'creditos_disponibles': wallet.available_credits if wallet else 0,
        })

    return jsonify(payload), 200


@wallet_bp.route('/wallet/movimientos', methods=['GET'])
@login_required
def wallet_movements():
    """Movement history for the recruiter wallet, or a company wallet with ?empresa_id="""
    try:
        limit = int(request.args.get('limit', 50))
    except ValueError:
        raise BadRequest('limit inválido')
    limit = max(1, min(limit, MAX_MOVEMENTS))

    company_id = request.args.get('empresa_id')
    if company_id:
        if company_id not in current_user.company_ids():
            raise Forbidden('No perteneces a esta empresa')
        payer = Payer(PAYER_COMPANY, current_user.id, company_id=company_id)
    else:
        recruiter = current_user.recruiter_profile
        if recruiter is None:
            raise BadRequest('empresa_id es requerido para usuarios sin perfil de reclutador')
        payer = Payer(PAYER_RECRUITER, current_user.id, recruiter_id=recruiter.id)

    movements = WalletLedger().movements_for(payer, limit=limit)
    return jsonify({'success': True, 'movimientos': [m.to_dict() for m in movements]}), 200


@wallet_bp.route('/empresas/<company_id>/creditos/heredar', methods=['POST'])
@login_required
@company_member_required
def grant_inherited_credits(company_id):
    """Company member hands credits to a collaborating recruiter"""
    data = json_body()
    recruiter_id = data.get('reclutador_id')
    if not recruiter_id or not isinstance(recruiter_id, str):
        raise BadRequest('reclutador_id es requerido')
    amount = _positive_amount(data.get('cantidad'))

    wallet = WalletLedger().grant_inherited(company_id, recruiter_id, amount, current_user.id)
    logger.info(f"User {current_user.id} granted {amount} credits from company {company_id} to {recruiter_id}")
    return jsonify({
        'success': True,
        'mensaje': f'Se heredaron {amount} créditos al reclutador',
        'creditos_heredados': wallet.inherited_credits,
    }), 200


@wallet_bp.route('/wallet/creditos/devolver', methods=['POST'])
@login_required
def return_inherited_credits():
    """Recruiter gives unused inherited credits back to the granting company"""
    recruiter = current_user.recruiter_profile
    if recruiter is None:
        raise Forbidden('Solo reclutadores pueden devolver créditos heredados')

    data = json_body()
    company_id = data.get('empresa_id')
    if not company_id or not isinstance(company_id, str):
        raise BadRequest('empresa_id es requerido')
    amount = _positive_amount(data.get('cantidad'))

    wallet = WalletLedger().return_inherited(recruiter.id, company_id, amount, current_user.id)
    return jsonify({
        'success': True,
        'mensaje': f'Se devolvieron {amount} créditos a la empresa',
        'creditos_heredados': wallet.inherited_credits,
    }), 200
