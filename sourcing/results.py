"""
Sourcing results: listing and the contact-status state machine.

    pending    -> contacted | not_interested | discarded
    contacted  -> interested | not_interested | discarded
    interested -> applied | discarded
    any        -> discarded

Transitions are always caller-initiated; nothing expires on its own.
"""

import logging
from datetime import datetime

from extensions import db
from errors import BadRequest, InvalidStatusTransition, NotFound
from models import CandidateProfile, SourcingResult
from sourcing.authorization import authorize_requisition

logger = logging.getLogger(__name__)

STATUS_PENDING = 'pending'
STATUS_CONTACTED = 'contacted'
STATUS_INTERESTED = 'interested'
STATUS_NOT_INTERESTED = 'not_interested'
STATUS_APPLIED = 'applied'
STATUS_DISCARDED = 'discarded'

TRANSITIONS = {
    STATUS_PENDING: {STATUS_CONTACTED, STATUS_NOT_INTERESTED, STATUS_DISCARDED},
    STATUS_CONTACTED: {STATUS_INTERESTED, STATUS_NOT_INTERESTED, STATUS_DISCARDED},
    STATUS_INTERESTED: {STATUS_APPLIED, STATUS_DISCARDED},
    STATUS_NOT_INTERESTED: {STATUS_DISCARDED},
    STATUS_APPLIED: {STATUS_DISCARDED},
    STATUS_DISCARDED: set(),
}

# Spanish labels used by the web client
STATUS_ALIASES = {
    'pendiente': STATUS_PENDING,
    'contactado': STATUS_CONTACTED,
    'interesado': STATUS_INTERESTED,
    'no_interesado': STATUS_NOT_INTERESTED,
    'postulado': STATUS_APPLIED,
    'descartado': STATUS_DISCARDED,
}


def normalize_status(value):
    if not isinstance(value, str) or not value.strip():
        raise BadRequest('estado es requerido')
    status = value.strip().lower()
    status = STATUS_ALIASES.get(status, status)
    if status not in TRANSITIONS:
        raise BadRequest(f'estado inválido: {value}')
    return status


def can_transition(current, new) -> bool:
    return new in TRANSITIONS.get(current, set())


def result_to_dict(result, candidate=None) -> dict:
    return {
        'id': result.id,
        'lote_sourcing': result.batch_id,
        'vacante_id': result.requisition_id,
        'candidato_user_id': result.candidate_user_id,
        'score_match': result.score,
        'razon_match': result.rationale,
        'habilidades_coincidentes': result.matched_skills or [],
        'experiencia_relevante': result.relevant_experience or [],
        'estado': result.status,
        'notas_contacto': result.follow_up_note,
        'fecha_contacto': result.contacted_at.isoformat() if result.contacted_at else None,
        'created_at': result.created_at.isoformat() if result.created_at else None,
        'perfil_candidato': candidate,
    }


def list_results(user, requisition_id):
    """Results for a requisition, best score first, candidates seen through the identity gate."""
    from identity_service import can_view_identity, candidate_to_dict

    authorize_requisition(user, requisition_id)
    results = (
        SourcingResult.query
        .filter_by(requisition_id=requisition_id)
        .order_by(SourcingResult.score.desc(), SourcingResult.created_at.asc())
        .all()
    )
    profiles = {}
    if results:
        ids = [r.candidate_user_id for r in results]
        profiles = {p.user_id: p for p in CandidateProfile.query.filter(CandidateProfile.user_id.in_(ids)).all()}

    payload = []
    for result in results:
        profile = profiles.get(result.candidate_user_id)
        candidate = None
        if profile is not None:
            candidate = candidate_to_dict(profile, can_view_identity(user, result.candidate_user_id))
        payload.append(result_to_dict(result, candidate))
    return payload


def update_status(user, result_id, new_status, note=None, now=None):
    result = db.session.get(SourcingResult, result_id)
    if result is None:
        raise NotFound('Resultado de sourcing no encontrado')
    if result.executor_user_id != user.id:
        authorize_requisition(user, result.requisition_id)

    status = normalize_status(new_status)
    now = now or datetime.utcnow()

    if status == result.status:
        # note-only update
        if note is None:
            raise InvalidStatusTransition(f'El resultado ya está en estado {status}')
        result.follow_up_note = note
    else:
        if not can_transition(result.status, status):
            raise InvalidStatusTransition(f'No se puede pasar de {result.status} a {status}')
        logger.info(f"Sourcing result {result.id}: {result.status} -> {status}")
        result.status = status
        result.contacted_at = now
        if note is not None:
            result.follow_up_note = note

    db.session.commit()
    return result
