"""
Identity-Unlock Gate.

Candidate identity (name, email, phone, location) is visible to a viewer only
if at least one of these holds:
  1. the candidate applied to a posting of a requisition the viewer owns
     (company member) or is assigned to (recruiter),
  2. the viewer holds a paid plan,
  3. an explicit unlock grant exists for the viewer's recruiter profile or
     one of the viewer's companies,
  4. the candidate is part of a sourcing batch the viewer executed.
Otherwise identity fields are redacted. Grants are permanent and never
depend on the current credit balance.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from extensions import db
from errors import Forbidden, NotFound
from models import (
    Application, CandidateProfile, CompanyRecruiter, IdentityUnlock, Posting,
    RecruiterAssignment, Requisition, SourcingResult,
)
from sourcing.authorization import is_company_member
from sourcing.settings import get_int_setting
from wallet_service import ACTION_CANDIDATE_CONTACT, PAYER_COMPANY, PAYER_RECRUITER, Payer, WalletLedger

logger = logging.getLogger(__name__)

REDACTED_FIELDS = ('nombre_completo', 'email', 'telefono', 'ubicacion')


@dataclass
class UnlockResult:
    already_unlocked: bool
    credits_consumed: int = 0
    provenance: Optional[str] = None


def has_unlock_grant(candidate_user_id, recruiter_id=None, company_ids=()) -> bool:
    clauses = []
    if recruiter_id:
        clauses.append(IdentityUnlock.recruiter_id == recruiter_id)
    if company_ids:
        clauses.append(IdentityUnlock.company_id.in_(list(company_ids)))
    if not clauses:
        return False
    return IdentityUnlock.query.filter(
        IdentityUnlock.candidate_user_id == candidate_user_id,
        or_(*clauses),
    ).first() is not None


def grant_unlock(candidate_user_id, provenance, recruiter_id=None, company_id=None,
                 credits_consumed=0, batch_id=None) -> bool:
    """Insert a grant if the pair has none. Returns True if a row was created.

    Joins the caller's transaction; a concurrent insert of the same pair is
    absorbed by a savepoint rather than failing the outer transaction.
    """
    holder = {'recruiter_id': recruiter_id} if recruiter_id else {'company_id': company_id}
    if IdentityUnlock.query.filter_by(candidate_user_id=candidate_user_id, **holder).first():
        return False

    try:
        with db.session.begin_nested():
            db.session.add(IdentityUnlock(
                candidate_user_id=candidate_user_id,
                provenance=provenance,
                credits_consumed=credits_consumed,
                batch_id=batch_id,
                **holder,
            ))
    except IntegrityError:
        logger.info(f"Unlock grant already present for candidate {candidate_user_id} ({holder})")
        return False
    return True


def _has_direct_application(viewer, candidate_user_id) -> bool:
    company_ids = viewer.company_ids()
    recruiter = viewer.recruiter_profile

    ownership = []
    if company_ids:
        ownership.append(Requisition.company_id.in_(company_ids))
    if recruiter is not None:
        assigned = db.session.query(RecruiterAssignment.requisition_id).filter(
            RecruiterAssignment.recruiter_id == recruiter.id,
            RecruiterAssignment.is_active.is_(True),
        )
        ownership.append(Requisition.id.in_(assigned))
    if not ownership:
        return False

    return (
        db.session.query(Application.id)
        .join(Posting, Posting.id == Application.posting_id)
        .join(Requisition, Requisition.id == Posting.requisition_id)
        .filter(Application.candidate_user_id == candidate_user_id, or_(*ownership))
        .first()
    ) is not None


def can_view_identity(viewer, candidate_user_id) -> bool:
    if viewer is None:
        return False
    if viewer.id == candidate_user_id:
        return True
    if _has_direct_application(viewer, candidate_user_id):
        return True
    if viewer.has_paid_plan:
        return True
    recruiter = viewer.recruiter_profile
    if has_unlock_grant(candidate_user_id, recruiter_id=recruiter.id if recruiter else None,
                        company_ids=viewer.company_ids()):
        return True
    return SourcingResult.query.filter_by(
        candidate_user_id=candidate_user_id, executor_user_id=viewer.id
    ).first() is not None


def candidate_to_dict(profile, full_access: bool) -> dict:
    data = {
        'user_id': profile.user_id,
        'nombre_completo': profile.full_name,
        'email': profile.email,
        'telefono': profile.phone,
        'ubicacion': profile.location,
        'puesto_actual': profile.current_title,
        'empresa_actual': profile.current_company,
        'nivel_educacion': profile.education_level,
        'carrera': profile.degree,
        'habilidades_tecnicas': profile.technical_skills or [],
        'habilidades_blandas': profile.soft_skills or [],
        'experiencia_laboral': profile.work_experience or [],
        'salario_esperado_min': profile.salary_expectation_min,
        'salario_esperado_max': profile.salary_expectation_max,
        'disponibilidad': profile.availability,
        'modalidad_preferida': profile.preferred_work_mode,
        'resumen_profesional': profile.professional_summary,
        'identidad_desbloqueada': full_access,
    }
    if not full_access:
        for key in REDACTED_FIELDS:
            data[key] = None
    return data


def candidate_view(viewer, candidate_user_id) -> dict:
    profile = db.session.get(CandidateProfile, candidate_user_id)
    if profile is None:
        raise NotFound('Candidato no encontrado')
    return candidate_to_dict(profile, can_view_identity(viewer, candidate_user_id))


def _unlock_payer(user, company_id=None) -> Payer:
    recruiter = user.recruiter_profile
    if recruiter is not None:
        attributed = None
        if company_id and CompanyRecruiter.query.filter_by(
                company_id=company_id, recruiter_id=recruiter.id, is_active=True).first():
            attributed = company_id
        return Payer(PAYER_RECRUITER, user.id, company_id=attributed, recruiter_id=recruiter.id)

    company_ids = user.company_ids()
    if company_id:
        if not is_company_member(user.id, company_id):
            raise Forbidden('No perteneces a esta empresa')
        return Payer(PAYER_COMPANY, user.id, company_id=company_id)
    if company_ids:
        return Payer(PAYER_COMPANY, user.id, company_id=company_ids[0])
    raise Forbidden('Solo reclutadores o empresas pueden desbloquear identidades')


def unlock_identity(user, candidate_user_id, company_id=None, ledger=None) -> UnlockResult:
    """Pay to reveal one candidate's identity. Idempotent per (payer, candidate)."""
    ledger = ledger or WalletLedger()
    profile = db.session.get(CandidateProfile, candidate_user_id)
    if profile is None:
        raise NotFound('Candidato no encontrado')

    payer = _unlock_payer(user, company_id)
    holder = {'recruiter_id': payer.recruiter_id} if payer.kind == PAYER_RECRUITER else {'company_id': payer.company_id}

    if IdentityUnlock.query.filter_by(candidate_user_id=candidate_user_id, **holder).first():
        return UnlockResult(already_unlocked=True)

    cost = get_int_setting('costo_desbloqueo')
    try:
        plan, _ = ledger.debit(
            payer, cost, ACTION_CANDIDATE_CONTACT,
            description=f"Desbloqueo de identidad: {profile.full_name or 'Candidato'}",
            candidate_user_id=candidate_user_id,
        )
        created = grant_unlock(candidate_user_id, plan.provenance, credits_consumed=cost, **holder)
        if not created:
            # Lost a race with a concurrent unlock of the same pair: do not charge twice
            db.session.rollback()
            return UnlockResult(already_unlocked=True)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Identity unlocked: candidate={candidate_user_id} payer={payer.kind} provenance={plan.provenance}")
    return UnlockResult(already_unlocked=False, credits_consumed=cost, provenance=plan.provenance)
