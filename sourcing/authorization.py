"""
Authorization resolver for sourcing actions.

A caller may act on a requisition either as the recruiter currently assigned
to it or as a member of the owning company. The decision is always made from
the database on the current request; nothing is cached between calls.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from extensions import db
from errors import Forbidden, NotFound
from models import CompanyMember, Posting, RecruiterProfile, Requisition

logger = logging.getLogger(__name__)

ROLE_RECRUITER = 'recruiter'
ROLE_COMPANY = 'company'


@dataclass
class SourcingContext:
    user: object
    requisition: Requisition
    role: str
    company_id: str
    recruiter: Optional[RecruiterProfile] = None
    posting: Optional[Posting] = None

    @property
    def is_recruiter(self) -> bool:
        return self.role == ROLE_RECRUITER


def is_company_member(user_id, company_id) -> bool:
    if not company_id:
        return False
    return CompanyMember.query.filter_by(company_id=company_id, user_id=user_id).first() is not None


def resolve_role(user, requisition):
    """Return (role, recruiter_profile). Raises Forbidden when the caller has no claim."""
    assignment = requisition.active_assignment()
    if assignment is not None:
        recruiter = RecruiterProfile.query.filter_by(id=assignment.recruiter_id, user_id=user.id).first()
        if recruiter is not None:
            return ROLE_RECRUITER, recruiter

    if requisition.created_by_user_id == user.id or is_company_member(user.id, requisition.company_id):
        return ROLE_COMPANY, None

    logger.warning(f"Insufficient permissions: user={user.id} requisition={requisition.id}")
    raise Forbidden()


def authorize_sourcing(user, posting_id) -> SourcingContext:
    """Resolve the caller's role for sourcing against a published posting of an open requisition."""
    posting = db.session.get(Posting, posting_id)
    if posting is None or not posting.is_published:
        logger.warning(f"Posting not found or unpublished: user={user.id} posting={posting_id}")
        raise NotFound()

    requisition = posting.requisition
    if requisition is None or not requisition.is_open:
        logger.warning(f"Requisition not open for posting {posting_id}")
        raise NotFound()

    role, recruiter = resolve_role(user, requisition)
    return SourcingContext(
        user=user,
        requisition=requisition,
        role=role,
        company_id=requisition.company_id,
        recruiter=recruiter,
        posting=posting,
    )


def authorize_requisition(user, requisition_id) -> SourcingContext:
    """Same ownership check, for reads and follow-up on a requisition in any state."""
    requisition = db.session.get(Requisition, requisition_id)
    if requisition is None:
        raise NotFound('Vacante no encontrada')

    role, recruiter = resolve_role(user, requisition)
    return SourcingContext(
        user=user,
        requisition=requisition,
        role=role,
        company_id=requisition.company_id,
        recruiter=recruiter,
    )
