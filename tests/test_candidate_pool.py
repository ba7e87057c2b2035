"""
Candidate pool selection tests.

Applied and already-sourced candidates are excluded before the fetch cap;
indexed profiles come first.
"""

import pytest

from errors import NoCandidatesAvailable
from sourcing.candidate_pool import select_pool


def _source(db, world, candidate_id, batch_id='batch-seed'):
    from models import SourcingBatch, SourcingResult
    if db.session.get(SourcingBatch, batch_id) is None:
        db.session.add(SourcingBatch(id=batch_id, requisition_id=world.requisition_id, executor_user_id=world.owner_id,
                                     provenance='company', total_cost=50))
        db.session.flush()
    db.session.add(SourcingResult(batch_id=batch_id, requisition_id=world.requisition_id,
                                  candidate_user_id=candidate_id, executor_user_id=world.owner_id, score=50))


class TestSelectPool:

    def test_indexed_profiles_first(self, app_ctx, world):
        pool = select_pool(world.requisition_id)
        assert pool.available == 12
        flags = [c.ai_indexed_at is not None for c in pool.candidates]
        assert flags == sorted(flags, reverse=True)
        # freshest index first
        assert pool.candidates[0].user_id == world.candidate_ids[0]

    def test_applied_and_sourced_excluded(self, app_ctx, world):
        from extensions import db
        from models import Application
        db.session.add(Application(posting_id=world.posting_id, candidate_user_id=world.candidate_ids[0]))
        _source(db, world, world.candidate_ids[1])
        db.session.commit()

        pool = select_pool(world.requisition_id)
        ids = {c.user_id for c in pool.candidates}
        assert world.candidate_ids[0] not in ids
        assert world.candidate_ids[1] not in ids
        assert pool.available == 10

    def test_exclusion_applies_before_fetch_cap(self, app_ctx, world):
        from extensions import db
        for candidate_id in world.candidate_ids[:5]:
            _source(db, world, candidate_id)
        db.session.commit()

        pool = select_pool(world.requisition_id, pool_size=7)
        assert pool.available == 7
        assert not {c.user_id for c in pool.candidates} & set(world.candidate_ids[:5])

    def test_analysis_cap(self, app_ctx, world):
        pool = select_pool(world.requisition_id, analysis_cap=5)
        assert pool.to_analyze == 5
        assert len(pool.analysis_batch()) == 5

    def test_everyone_sourced(self, app_ctx, world):
        from extensions import db
        for candidate_id in world.candidate_ids:
            _source(db, world, candidate_id)
        db.session.commit()

        with pytest.raises(NoCandidatesAvailable) as exc:
            select_pool(world.requisition_id)
        assert exc.value.status_code == 404
