"""
Candidate pool selection for a requisition.

Candidates who applied to any posting of the requisition, or who already
appear in a sourcing result for it, are excluded in the query itself, so the
fetch cap applies to eligible candidates only.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy import select

from errors import NoCandidatesAvailable
from models import Application, CandidateProfile, Posting, SourcingResult
from sourcing.settings import get_int_setting

logger = logging.getLogger(__name__)


@dataclass
class CandidatePool:
    candidates: List[CandidateProfile] = field(default_factory=list)
    analysis_cap: int = 50

    @property
    def available(self) -> int:
        return len(self.candidates)

    @property
    def to_analyze(self) -> int:
        return min(self.available, self.analysis_cap)

    def analysis_batch(self) -> List[CandidateProfile]:
        return list(self.candidates[:self.analysis_cap])


def excluded_candidate_ids(requisition_id):
    """Subqueries for candidates already applied or already sourced for this requisition."""
    applied = (
        select(Application.candidate_user_id)
        .join(Posting, Posting.id == Application.posting_id)
        .where(Posting.requisition_id == requisition_id)
    )
    sourced = select(SourcingResult.candidate_user_id).where(SourcingResult.requisition_id == requisition_id)
    return applied, sourced


def select_pool(requisition_id, pool_size=None, analysis_cap=None) -> CandidatePool:
    pool_size = pool_size or get_int_setting('pool_size')
    analysis_cap = analysis_cap or get_int_setting('max_candidatos_analisis')

    applied, sourced = excluded_candidate_ids(requisition_id)
    candidates = (
        CandidateProfile.query
        .filter(
            CandidateProfile.user_id.not_in(applied),
            CandidateProfile.user_id.not_in(sourced),
        )
        # indexed profiles first, freshest index first
        .order_by(
            CandidateProfile.ai_indexed_at.is_(None),
            CandidateProfile.ai_indexed_at.desc(),
            CandidateProfile.created_at.asc(),
            CandidateProfile.user_id.asc(),
        )
        .limit(pool_size)
        .all()
    )

    indexed = sum(1 for c in candidates if c.ai_indexed_at is not None)
    logger.info(
        f"Candidate pool for requisition {requisition_id}: {len(candidates)} available "
        f"({indexed} indexed, {len(candidates) - indexed} not indexed)"
    )

    if not candidates:
        logger.info(f"No candidates available for requisition {requisition_id}")
        raise NoCandidatesAvailable(
            mensaje='Todos los candidatos ya fueron postulados o sourced para esta vacante'
        )

    return CandidatePool(candidates=candidates, analysis_cap=analysis_cap)
