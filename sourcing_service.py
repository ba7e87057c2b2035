"""
Sourcing Service - credit-gated AI candidate sourcing.

Dry run (free, rate limited):
  1. Authorize caller against the posting's requisition
  2. Check credits are sufficient (read only)
  3. Select the eligible candidate pool
  4. Enforce both 24h dry-run windows
  5. Append one 'dry_run' audit row and return the estimate

Execution:
  1-3 as above, re-evaluated from scratch
  4. Append and commit the 'execution' audit row (before the engine call)
  5. Build the prompt and call the ranking engine (no locks held)
  6. In one transaction: debit the wallet, create the batch, insert the
     results and grant identity unlocks
"""

import logging
import time
import uuid
from datetime import datetime
from decimal import ROUND_DOWN, Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from extensions import db
from errors import (
    BadRequest, Forbidden, InsufficientCredits, InvalidStatusTransition, NoCandidatesAvailable, NotFound,
    ServiceUnavailable, SourcingError, StorageError,
)
from identity_service import grant_unlock
from models import (
    AUDIT_DRY_RUN, AUDIT_EXECUTION, REQUISITION_CLOSED, REQUISITION_TERMINAL_STATES,
    Requisition, SourcingBatch, SourcingResult,
)
from ranking_service import RankingService
from sourcing.authorization import authorize_sourcing, is_company_member
from sourcing.candidate_pool import select_pool
from sourcing.prompt_utils import build_vacancy_info, fit_prompt
from sourcing.rate_limits import check_dry_run_quota, record_action
from sourcing.settings import get_int_setting
from wallet_service import ACTION_SOURCING, Payer, WalletLedger

logger = logging.getLogger(__name__)


def split_cost(cost: int, count: int) -> list:
    """Per-result share of one charge, rounded down to cents; the last share takes the remainder."""
    total = Decimal(cost)
    base = (total / count).quantize(Decimal('0.01'), rounding=ROUND_DOWN)
    shares = [base] * (count - 1) + [total - base * (count - 1)]
    return [float(share) for share in shares]


def _sourced_among(requisition_id, candidate_ids) -> set:
    return {
        row.candidate_user_id for row in SourcingResult.query.filter(
            SourcingResult.requisition_id == requisition_id,
            SourcingResult.candidate_user_id.in_(candidate_ids),
        ).all()
    }


class SourcingService:

    def __init__(self, ranking_service: RankingService = None, ledger: WalletLedger = None):
        self.ranking = ranking_service or RankingService()
        self.ledger = ledger or WalletLedger()

    def run(self, user, posting_id, dry_run=True) -> dict:
        logger.info(f"Sourcing started: user={user.id} posting={posting_id} dry_run={dry_run}")
        if dry_run:
            return self.dry_run(user, posting_id)
        return self.execute(user, posting_id)

    def _check_credits(self, payer: Payer, cost: int):
        # Always a fresh read; a dry-run estimate is never reused
        if self.ledger.available_credits(payer) < cost:
            logger.warning(f"Insufficient credits: user={payer.user_id} payer={payer.kind} required={cost}")
            raise InsufficientCredits('Créditos insuficientes para ejecutar sourcing', creditos_requeridos=cost)

    def _audit(self, user, ctx, action):
        try:
            record_action(user.id, ctx.requisition.id, ctx.posting.id, action)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Storage failure writing {action} audit for requisition {ctx.requisition.id}: {str(e)}")
            raise StorageError() from e

    def dry_run(self, user, posting_id) -> dict:
        ctx = authorize_sourcing(user, posting_id)
        requisition = ctx.requisition
        cost = get_int_setting('costo_sourcing')

        self._check_credits(Payer.from_context(ctx), cost)
        pool = select_pool(requisition.id)
        quota = check_dry_run_quota(user.id, requisition.id)

        self._audit(user, ctx, AUDIT_DRY_RUN)

        logger.info(f"Dry run completed: user={user.id} requisition={requisition.id} daily_count={quota.daily_used + 1}")
        return {
            'success': True,
            'dry_run': True,
            'mensaje': 'Simulación exitosa - No se consumieron créditos',
            'vacante': {'id': requisition.id, 'titulo': ctx.posting.title},
            'candidatos_a_analizar': pool.to_analyze,
            'costo_creditos': cost,
            'creditos_suficientes': True,
            'simulaciones_restantes_hoy': quota.remaining_today_after_this,
        }

    def execute(self, user, posting_id) -> dict:
        started = time.time()
        ctx = authorize_sourcing(user, posting_id)
        requisition = ctx.requisition
        posting = ctx.posting
        payer = Payer.from_context(ctx)
        cost = get_int_setting('costo_sourcing')
        max_results = get_int_setting('max_candidatos')

        self._check_credits(payer, cost)
        pool = select_pool(requisition.id)

        if not self.ranking.is_configured:
            raise ServiceUnavailable()

        # Audited before the engine call so failed attempts stay visible
        self._audit(user, ctx, AUDIT_EXECUTION)

        vacancy_info = build_vacancy_info(requisition, posting, requisition.company)
        prompt, batch = fit_prompt(
            vacancy_info, pool.analysis_batch(), max_results,
            max_length=get_int_setting('max_prompt_length'),
            min_candidates=get_int_setting('min_candidatos_analisis'),
        )
        if len(batch) < pool.to_analyze:
            logger.warning(
                f"Prompt reduced for requisition {requisition.id}: {pool.to_analyze} -> {len(batch)} candidates "
                f"(prompt length {len(prompt)})"
            )

        logger.info(f"Ranking call: requisition={requisition.id} candidates={len(batch)} prompt_length={len(prompt)}")
        try:
            matches = self.ranking.rank(prompt, batch, max_results)
        except SourcingError as e:
            logger.error(f"Ranking failed: user={user.id} requisition={requisition.id} code={e.code}")
            raise

        batch_id = str(uuid.uuid4())
        logger.info(f"Matches found: requisition={requisition.id} total={len(matches)} batch={batch_id}")

        plan, stored = self._persist(ctx, payer, cost, matches, batch_id, len(batch))

        elapsed_ms = int((time.time() - started) * 1000)
        logger.info(
            f"Sourcing completed: user={user.id} requisition={requisition.id} batch={batch_id} "
            f"found={stored} credits={cost} provenance={plan.provenance} elapsed_ms={elapsed_ms}"
        )
        return {
            'success': True,
            'lote_sourcing': batch_id,
            'candidatos_encontrados': stored,
            'creditos_consumidos': cost,
            'origen_pago': plan.provenance,
            'mensaje': f'Se encontraron {stored} candidatos potenciales para la vacante "{posting.title}"',
        }

    def _persist(self, ctx, payer, cost, matches, batch_id, analyzed):
        """Debit + batch + results + unlock grants as one transaction.

        Retried on wallet version conflicts (bounded by debit_max_attempts)
        and whenever a concurrent run took some of the ranked candidates;
        each such retry drops at least one candidate, so the loop ends.
        """
        requisition_id = ctx.requisition.id
        posting_id = ctx.posting.id
        title = ctx.posting.title
        recruiter_id = ctx.recruiter.id if ctx.is_recruiter else None
        company_id = None if ctx.is_recruiter else ctx.company_id
        # Resolve indices against the exact batch sent, once
        ranked = [(m.candidate.user_id, m) for m in matches]
        ranked_ids = [cid for cid, _ in ranked]
        attempts = max(1, get_int_setting('debit_max_attempts'))
        attempt = 0

        while True:
            try:
                already_sourced = _sourced_among(requisition_id, ranked_ids)
                fresh = [(cid, m) for cid, m in ranked if cid not in already_sourced]
                if not fresh:
                    db.session.rollback()
                    logger.warning(f"All ranked candidates were sourced concurrently for requisition {requisition_id}")
                    raise NoCandidatesAvailable()

                plan, _ = self.ledger.debit(
                    payer, cost, ACTION_SOURCING,
                    description=f'Sourcing IA para vacante: {title}',
                    requisition_id=requisition_id,
                    batch_id=batch_id,
                    method='automatico_ia',
                    extra={'candidatos_analizados': analyzed, 'candidatos_encontrados': len(fresh)},
                )

                db.session.add(SourcingBatch(
                    id=batch_id,
                    requisition_id=requisition_id,
                    posting_id=posting_id,
                    executor_user_id=ctx.user.id,
                    recruiter_id=recruiter_id,
                    company_id=ctx.company_id,
                    provenance=plan.provenance,
                    total_cost=cost,
                    candidates_analyzed=analyzed,
                ))
                shares = split_cost(cost, len(fresh))
                for (candidate_id, match), share in zip(fresh, shares):
                    db.session.add(SourcingResult(
                        batch_id=batch_id,
                        requisition_id=requisition_id,
                        posting_id=posting_id,
                        candidate_user_id=candidate_id,
                        executor_user_id=ctx.user.id,
                        recruiter_id=recruiter_id,
                        company_id=ctx.company_id,
                        score=match.score,
                        rationale=match.rationale,
                        matched_skills=match.matched_skills,
                        relevant_experience=match.relevant_experience,
                        status='pending',
                        credits_consumed=share,
                    ))
                db.session.flush()

                for candidate_id, _ in fresh:
                    grant_unlock(candidate_id, plan.provenance, recruiter_id=recruiter_id,
                                 company_id=company_id, batch_id=batch_id)

                db.session.commit()
                return plan, len(fresh)

            except StaleDataError:
                db.session.rollback()
                attempt += 1
                logger.warning(f"Wallet changed concurrently (attempt {attempt}/{attempts}) for batch {batch_id}")
                if attempt >= attempts:
                    logger.error(f"RECONCILE: execution audit without batch {batch_id} after wallet conflicts")
                    raise StorageError()
            except IntegrityError as e:
                db.session.rollback()
                taken = _sourced_among(requisition_id, ranked_ids) - already_sourced
                if not taken:
                    logger.error(
                        f"RECONCILE: integrity failure persisting batch {batch_id} for requisition "
                        f"{requisition_id}: {str(e)}"
                    )
                    raise StorageError() from e
                logger.warning(
                    f"{len(taken)} ranked candidates sourced concurrently for requisition {requisition_id}, "
                    f"retrying batch {batch_id} without them"
                )
            except SourcingError:
                db.session.rollback()
                raise
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(
                    f"RECONCILE: storage failure persisting batch {batch_id} for requisition "
                    f"{requisition_id}: {str(e)}"
                )
                raise StorageError() from e


def close_requisition(user, requisition_id, status=REQUISITION_CLOSED, now=None):
    """Move an open requisition to closed/cancelled and unpublish its postings.

    Terminal: no further sourcing runs against it. Existing results stay
    readable and their contact workflow keeps working.
    """
    if status not in REQUISITION_TERMINAL_STATES:
        raise BadRequest(f'estado inválido: {status}')

    requisition = db.session.get(Requisition, requisition_id)
    if requisition is None:
        raise NotFound('Vacante no encontrada')
    if requisition.created_by_user_id != user.id and not is_company_member(user.id, requisition.company_id):
        raise Forbidden('Solo la empresa dueña puede cerrar la vacante')
    if not requisition.is_open:
        raise InvalidStatusTransition(f'La vacante ya está en estado {requisition.status}')

    now = now or datetime.utcnow()
    requisition.status = status
    requisition.closed_at = now
    unpublished = 0
    for posting in requisition.postings.filter_by(is_published=True):
        posting.is_published = False
        posting.unpublished_at = now
        unpublished += 1
    db.session.commit()

    logger.info(f"Requisition {requisition.id} {status} by user {user.id}, {unpublished} postings unpublished")
    return requisition
