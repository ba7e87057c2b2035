"""
Dry-run rate limiting tests.

Windows are counted from SourcingAudit rows: 3 per (user, requisition)
and 20 per user, both over the trailing 24 hours.
"""

from datetime import datetime, timedelta

import pytest

from conftest import get_user
from errors import RateLimited
from models import AUDIT_DRY_RUN, AUDIT_EXECUTION, SourcingAudit
from sourcing.rate_limits import check_dry_run_quota, count_actions


def _audit(db, user_id, requisition_id, action=AUDIT_DRY_RUN, hours_ago=1):
    db.session.add(SourcingAudit(
        user_id=user_id,
        requisition_id=requisition_id,
        action=action,
        created_at=datetime.utcnow() - timedelta(hours=hours_ago),
    ))


class TestDryRunWindows:

    def test_fourth_dry_run_on_same_requisition_rejected(self, app_ctx, world):
        """Three dry-runs pass; the fourth is RateLimited and writes no audit row."""
        from sourcing_service import SourcingService
        user = get_user(world.owner_id)
        service = SourcingService()

        for _ in range(3):
            service.dry_run(user, world.posting_id)

        with pytest.raises(RateLimited) as exc:
            service.dry_run(user, world.posting_id)

        assert exc.value.status_code == 429
        assert exc.value.retryable is True
        assert SourcingAudit.query.filter_by(user_id=world.owner_id, action=AUDIT_DRY_RUN).count() == 3

    def test_old_rows_fall_out_of_window(self, app_ctx, world):
        from extensions import db
        for _ in range(3):
            _audit(db, world.owner_id, world.requisition_id, hours_ago=25)
        db.session.commit()

        quota = check_dry_run_quota(world.owner_id, world.requisition_id)
        assert quota.vacancy_used == 0
        assert quota.remaining_today_after_this == 19

    def test_daily_limit_across_requisitions(self, app_ctx, world):
        from extensions import db
        from models import Requisition
        other = Requisition(company_id=world.company_id, title='Otra vacante', created_by_user_id=world.owner_id)
        db.session.add(other)
        db.session.flush()
        for _ in range(20):
            _audit(db, world.owner_id, other.id)
        db.session.commit()

        with pytest.raises(RateLimited) as exc:
            check_dry_run_quota(world.owner_id, world.requisition_id)
        assert 'diario' in exc.value.message

    def test_executions_do_not_count(self, app_ctx, world):
        from extensions import db
        for _ in range(5):
            _audit(db, world.owner_id, world.requisition_id, action=AUDIT_EXECUTION)
        db.session.commit()

        quota = check_dry_run_quota(world.owner_id, world.requisition_id)
        assert quota.vacancy_used == 0

    def test_limits_are_configurable(self, app_ctx, world):
        from extensions import db
        from sourcing.settings import set_setting
        set_setting('dry_run_per_vacancy_limit', 1)
        _audit(db, world.owner_id, world.requisition_id)
        db.session.commit()

        with pytest.raises(RateLimited):
            check_dry_run_quota(world.owner_id, world.requisition_id)

    def test_count_is_per_user(self, app_ctx, world):
        from extensions import db
        for _ in range(3):
            _audit(db, world.recruiter_user_id, world.requisition_id)
        db.session.commit()

        since = datetime.utcnow() - timedelta(hours=24)
        assert count_actions(world.owner_id, AUDIT_DRY_RUN, since) == 0
        assert count_actions(world.recruiter_user_id, AUDIT_DRY_RUN, since,
                             requisition_id=world.requisition_id) == 3
