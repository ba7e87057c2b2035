"""
Wallet Ledger - credit balances for recruiters and companies.

Recruiter wallets hold two pools: own credits and credits inherited from a
company they collaborate with. Debits drain the inherited pool first and fall
back to own credits for the remainder; whenever inherited credits take part,
the whole debit is attributed to 'recruiter-inherited'. Company wallets have a
single pool.

The split is decided once by a pure planning function (DebitPlan) and then
applied to a row-locked, version-stamped wallet inside the caller's
transaction, together with the CreditMovement that documents it.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func

from extensions import db
from errors import BadRequest, Forbidden, InsufficientCredits
from models import (
    PROVENANCE_COMPANY, PROVENANCE_RECRUITER, PROVENANCE_RECRUITER_INHERITED,
    CompanyRecruiter, CompanyWallet, CreditMovement, RecruiterWallet,
)

logger = logging.getLogger(__name__)

PAYER_RECRUITER = 'recruiter'
PAYER_COMPANY = 'company'

# Movement action kinds
ACTION_SOURCING = 'sourcing_ia'
ACTION_CANDIDATE_CONTACT = 'candidate_contact'
ACTION_CREDIT_INHERITANCE = 'credit_inheritance'
ACTION_CREDIT_RETURN = 'credit_return'


@dataclass(frozen=True)
class Payer:
    kind: str
    user_id: str
    company_id: Optional[str] = None
    recruiter_id: Optional[str] = None

    @classmethod
    def from_context(cls, ctx):
        if ctx.is_recruiter:
            return cls(PAYER_RECRUITER, ctx.user.id, company_id=ctx.company_id, recruiter_id=ctx.recruiter.id)
        return cls(PAYER_COMPANY, ctx.user.id, company_id=ctx.company_id)


@dataclass(frozen=True)
class DebitPlan:
    from_inherited: int
    from_own: int
    provenance: str

    @property
    def total(self) -> int:
        return self.from_inherited + self.from_own


def plan_recruiter_debit(own: int, inherited: int, amount: int) -> DebitPlan:
    """Inherited first, remainder from own. Raises InsufficientCredits if own+inherited < amount."""
    own = own or 0
    inherited = inherited or 0
    if amount <= 0:
        raise BadRequest('La cantidad debe ser mayor a cero')
    if own + inherited < amount:
        raise InsufficientCredits(creditos_requeridos=amount)

    if inherited >= amount:
        return DebitPlan(from_inherited=amount, from_own=0, provenance=PROVENANCE_RECRUITER_INHERITED)
    if inherited > 0:
        return DebitPlan(from_inherited=inherited, from_own=amount - inherited,
                         provenance=PROVENANCE_RECRUITER_INHERITED)
    return DebitPlan(from_inherited=0, from_own=amount, provenance=PROVENANCE_RECRUITER)


def plan_company_debit(available: int, amount: int) -> DebitPlan:
    available = available or 0
    if amount <= 0:
        raise BadRequest('La cantidad debe ser mayor a cero')
    if available < amount:
        raise InsufficientCredits(creditos_requeridos=amount)
    return DebitPlan(from_inherited=0, from_own=amount, provenance=PROVENANCE_COMPANY)


def plan_debit(wallet, amount: int) -> DebitPlan:
    if wallet is None:
        raise InsufficientCredits(creditos_requeridos=amount)
    if isinstance(wallet, RecruiterWallet):
        return plan_recruiter_debit(wallet.own_credits, wallet.inherited_credits, amount)
    return plan_company_debit(wallet.available_credits, amount)


def _wallet_total(wallet) -> int:
    if wallet is None:
        return 0
    return wallet.available_credits or 0


class WalletLedger:
    """
    Read and mutate wallets. debit() joins the caller's transaction and never
    commits; grant_inherited()/return_inherited() are standalone operations and
    commit on success.
    """

    def get_wallet(self, payer: Payer, lock: bool = False):
        if payer.kind == PAYER_RECRUITER:
            query = RecruiterWallet.query.filter_by(recruiter_id=payer.recruiter_id)
        else:
            query = CompanyWallet.query.filter_by(company_id=payer.company_id)
        # Always re-read the row; never trust an identity-map copy from earlier in the request
        query = query.populate_existing()
        if lock:
            query = query.with_for_update()
        return query.first()

    def available_credits(self, payer: Payer) -> int:
        return _wallet_total(self.get_wallet(payer))

    def debit(self, payer: Payer, amount: int, action_kind: str, description: str,
              requisition_id=None, batch_id=None, candidate_user_id=None,
              method='manual', extra=None):
        """Lock, plan, apply and document a debit. Returns (DebitPlan, CreditMovement)."""
        wallet = self.get_wallet(payer, lock=True)
        plan = plan_debit(wallet, amount)
        before = _wallet_total(wallet)

        if isinstance(wallet, RecruiterWallet):
            wallet.inherited_credits -= plan.from_inherited
            wallet.own_credits -= plan.from_own
        else:
            wallet.available_credits -= plan.from_own

        movement = CreditMovement(
            payer_kind=payer.kind,
            provenance=plan.provenance,
            recruiter_wallet_id=wallet.id if isinstance(wallet, RecruiterWallet) else None,
            company_wallet_id=wallet.id if isinstance(wallet, CompanyWallet) else None,
            company_id=payer.company_id,
            actor_user_id=payer.user_id,
            action_kind=action_kind,
            amount=-amount,
            from_inherited=plan.from_inherited,
            from_own=plan.from_own,
            balance_before=before,
            balance_after=before - amount,
            description=description,
            requisition_id=requisition_id,
            candidate_user_id=candidate_user_id,
            batch_id=batch_id,
            method=method,
            extra=extra,
        )
        db.session.add(movement)
        # Surfaces StaleDataError here if another transaction changed the wallet
        db.session.flush()

        logger.info(
            f"Debited {amount} credits from {payer.kind} wallet {wallet.id} "
            f"({action_kind}, provenance={plan.provenance}, batch={batch_id})"
        )
        return plan, movement

    def _get_or_create_recruiter_wallet(self, recruiter_id):
        wallet = (RecruiterWallet.query.filter_by(recruiter_id=recruiter_id)
                  .populate_existing().with_for_update().first())
        if wallet is None:
            wallet = RecruiterWallet(recruiter_id=recruiter_id, own_credits=0, inherited_credits=0)
            db.session.add(wallet)
            db.session.flush()
        return wallet

    def grant_inherited(self, company_id, recruiter_id, amount: int, actor_user_id):
        """Move credits from a company wallet into a collaborating recruiter's inherited pool."""
        if amount is None or amount <= 0:
            raise BadRequest('La cantidad debe ser mayor a cero')

        link = CompanyRecruiter.query.filter_by(company_id=company_id, recruiter_id=recruiter_id,
                                                is_active=True).first()
        if link is None:
            raise Forbidden('El reclutador no colabora con esta empresa')

        try:
            company_wallet = self.get_wallet(Payer(PAYER_COMPANY, actor_user_id, company_id=company_id), lock=True)
            plan = plan_debit(company_wallet, amount)
            recruiter_wallet = self._get_or_create_recruiter_wallet(recruiter_id)

            company_before = company_wallet.available_credits
            recruiter_before = recruiter_wallet.available_credits
            company_wallet.available_credits -= plan.from_own
            recruiter_wallet.inherited_credits += amount

            db.session.add(CreditMovement(
                payer_kind=PAYER_COMPANY, provenance=PROVENANCE_COMPANY,
                company_wallet_id=company_wallet.id, company_id=company_id, actor_user_id=actor_user_id,
                action_kind=ACTION_CREDIT_INHERITANCE, amount=-amount, from_own=amount,
                balance_before=company_before, balance_after=company_before - amount,
                description=f'Créditos heredados a reclutador {recruiter_id}',
                extra={'recruiter_id': recruiter_id},
            ))
            db.session.add(CreditMovement(
                payer_kind=PAYER_RECRUITER, provenance=PROVENANCE_RECRUITER_INHERITED,
                recruiter_wallet_id=recruiter_wallet.id, company_id=company_id, actor_user_id=actor_user_id,
                action_kind=ACTION_CREDIT_INHERITANCE, amount=amount, from_inherited=amount,
                balance_before=recruiter_before, balance_after=recruiter_before + amount,
                description='Créditos heredados de empresa',
            ))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Company {company_id} granted {amount} inherited credits to recruiter {recruiter_id}")
        return recruiter_wallet

    def returnable_inherited(self, recruiter_wallet, company_id) -> int:
        """Inherited credits that can go back to company_id: net granted by it, capped by the pool."""
        if recruiter_wallet is None:
            return 0
        net = db.session.query(func.coalesce(func.sum(CreditMovement.amount), 0)).filter(
            CreditMovement.recruiter_wallet_id == recruiter_wallet.id,
            CreditMovement.company_id == company_id,
            CreditMovement.action_kind.in_([ACTION_CREDIT_INHERITANCE, ACTION_CREDIT_RETURN]),
        ).scalar()
        return max(0, min(int(net or 0), recruiter_wallet.inherited_credits or 0))

    def return_inherited(self, recruiter_id, company_id, amount: int, actor_user_id):
        """Give unused inherited credits back to the company that granted them."""
        if amount is None or amount <= 0:
            raise BadRequest('La cantidad debe ser mayor a cero')

        try:
            recruiter_wallet = (RecruiterWallet.query.filter_by(recruiter_id=recruiter_id)
                                .populate_existing().with_for_update().first())
            returnable = self.returnable_inherited(recruiter_wallet, company_id)
            if amount > returnable:
                raise InsufficientCredits('No tienes suficientes créditos heredados de esta empresa')

            company_wallet = self.get_wallet(Payer(PAYER_COMPANY, actor_user_id, company_id=company_id), lock=True)
            if company_wallet is None:
                company_wallet = CompanyWallet(company_id=company_id, available_credits=0)
                db.session.add(company_wallet)
                db.session.flush()

            recruiter_before = recruiter_wallet.available_credits
            company_before = company_wallet.available_credits
            recruiter_wallet.inherited_credits -= amount
            company_wallet.available_credits += amount

            db.session.add(CreditMovement(
                payer_kind=PAYER_RECRUITER, provenance=PROVENANCE_RECRUITER_INHERITED,
                recruiter_wallet_id=recruiter_wallet.id, company_id=company_id, actor_user_id=actor_user_id,
                action_kind=ACTION_CREDIT_RETURN, amount=-amount, from_inherited=amount,
                balance_before=recruiter_before, balance_after=recruiter_before - amount,
                description='Devolución de créditos heredados',
            ))
            db.session.add(CreditMovement(
                payer_kind=PAYER_COMPANY, provenance=PROVENANCE_COMPANY,
                company_wallet_id=company_wallet.id, company_id=company_id, actor_user_id=actor_user_id,
                action_kind=ACTION_CREDIT_RETURN, amount=amount, from_own=amount,
                balance_before=company_before, balance_after=company_before + amount,
                description=f'Devolución de créditos de reclutador {recruiter_id}',
                extra={'recruiter_id': recruiter_id},
            ))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Recruiter {recruiter_id} returned {amount} inherited credits to company {company_id}")
        return recruiter_wallet

    def movements_for(self, payer: Payer, limit: int = 50):
        wallet = self.get_wallet(payer)
        if wallet is None:
            return []
        query = CreditMovement.query
        if isinstance(wallet, RecruiterWallet):
            query = query.filter(CreditMovement.recruiter_wallet_id == wallet.id)
        else:
            query = query.filter(CreditMovement.company_wallet_id == wallet.id)
        return query.order_by(CreditMovement.created_at.desc(), CreditMovement.id.desc()).limit(limit).all()
