"""
Dry-run rate limiting backed by the audit log.

Window counts are computed from SourcingAudit rows at decision time instead of
a separate counter, so the limiter and the audit trail always agree.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from extensions import db
from errors import RateLimited
from models import AUDIT_DRY_RUN, SourcingAudit
from sourcing.settings import get_int_setting

logger = logging.getLogger(__name__)


@dataclass
class DryRunQuota:
    daily_used: int
    daily_limit: int
    vacancy_used: int
    vacancy_limit: int

    @property
    def remaining_today_after_this(self) -> int:
        return max(0, self.daily_limit - (self.daily_used + 1))


def count_actions(user_id, action, since, requisition_id=None) -> int:
    query = SourcingAudit.query.filter(
        SourcingAudit.user_id == user_id,
        SourcingAudit.action == action,
        SourcingAudit.created_at >= since,
    )
    if requisition_id is not None:
        query = query.filter(SourcingAudit.requisition_id == requisition_id)
    return query.count()


def check_dry_run_quota(user_id, requisition_id, now=None) -> DryRunQuota:
    """Raise RateLimited if either 24h window is full; writes nothing."""
    now = now or datetime.utcnow()
    since = now - timedelta(hours=get_int_setting('rate_limit_window_hours'))

    quota = DryRunQuota(
        daily_used=count_actions(user_id, AUDIT_DRY_RUN, since),
        daily_limit=get_int_setting('dry_run_daily_limit'),
        vacancy_used=count_actions(user_id, AUDIT_DRY_RUN, since, requisition_id=requisition_id),
        vacancy_limit=get_int_setting('dry_run_per_vacancy_limit'),
    )

    if quota.daily_used >= quota.daily_limit:
        logger.info(f"Dry-run daily limit reached: user={user_id} used={quota.daily_used}")
        raise RateLimited('Límite diario de simulaciones alcanzado. Intenta mañana.')

    if quota.vacancy_used >= quota.vacancy_limit:
        logger.info(
            f"Dry-run per-vacancy limit reached: user={user_id} requisition={requisition_id} "
            f"used={quota.vacancy_used}"
        )
        raise RateLimited('Límite de simulaciones para esta vacante alcanzado.')

    return quota


def record_action(user_id, requisition_id, posting_id, action) -> SourcingAudit:
    """Append one audit row. Caller commits."""
    row = SourcingAudit(
        user_id=user_id,
        requisition_id=requisition_id,
        posting_id=posting_id,
        action=action,
        created_at=datetime.utcnow(),
    )
    db.session.add(row)
    return row
