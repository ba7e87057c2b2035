import uuid
from datetime import datetime

from flask_login import UserMixin
from sqlalchemy import event

from extensions import db


def _uuid():
    return str(uuid.uuid4())


# Requisition lifecycle
REQUISITION_OPEN = 'open'
REQUISITION_CLOSED = 'closed'
REQUISITION_CANCELLED = 'cancelled'
REQUISITION_TERMINAL_STATES = (REQUISITION_CLOSED, REQUISITION_CANCELLED)

# Payment provenance recorded on batches, grants and movements
PROVENANCE_RECRUITER = 'recruiter'
PROVENANCE_COMPANY = 'company'
PROVENANCE_RECRUITER_INHERITED = 'recruiter-inherited'

# Audit actions
AUDIT_DRY_RUN = 'dry_run'
AUDIT_EXECUTION = 'execution'


class User(UserMixin, db.Model):
    """Identity issued by the session provider"""
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(255), unique=True, nullable=False)
    display_name = db.Column(db.String(255), nullable=True)
    has_paid_plan = db.Column(db.Boolean, default=False, nullable=False)
    is_active_account = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    recruiter_profile = db.relationship('RecruiterProfile', backref='user', uselist=False)
    memberships = db.relationship('CompanyMember', backref='user', lazy='dynamic')

    @property
    def is_active(self):
        return self.is_active_account

    def company_ids(self):
        return [m.company_id for m in self.memberships]

    def __repr__(self):
        return f'<User {self.email}>'


class Company(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    sector = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    wallet = db.relationship('CompanyWallet', backref='company', uselist=False)

    def __repr__(self):
        return f'<Company {self.name}>'


class CompanyMember(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.String(36), db.ForeignKey('company.id'), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    role = db.Column(db.String(50), default='admin')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint('company_id', 'user_id', name='uq_company_member'),)


class RecruiterProfile(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), unique=True, nullable=False)
    display_name = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    wallet = db.relationship('RecruiterWallet', backref='recruiter', uselist=False)

    def __repr__(self):
        return f'<RecruiterProfile {self.id}>'


class CompanyRecruiter(db.Model):
    """Collaboration between a company and an external recruiter"""
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.String(36), db.ForeignKey('company.id'), nullable=False, index=True)
    recruiter_id = db.Column(db.String(36), db.ForeignKey('recruiter_profile.id'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint('company_id', 'recruiter_id', name='uq_company_recruiter'),)


class Requisition(db.Model):
    """An open job (vacante) owned by exactly one company"""
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    company_id = db.Column(db.String(36), db.ForeignKey('company.id'), nullable=False, index=True)
    created_by_user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)
    title = db.Column(db.String(255), nullable=False)
    required_profile = db.Column(db.Text, nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    work_mode = db.Column(db.String(50), nullable=True)
    approved_salary = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    client_name = db.Column(db.String(255), nullable=True)
    area = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=REQUISITION_OPEN)
    closed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship('Company', backref='requisitions')
    postings = db.relationship('Posting', backref='requisition', lazy='dynamic')
    assignments = db.relationship('RecruiterAssignment', backref='requisition', lazy='dynamic')

    @property
    def is_open(self):
        return self.status == REQUISITION_OPEN

    def active_assignment(self):
        return self.assignments.filter_by(is_active=True).order_by(RecruiterAssignment.assigned_at.desc()).first()

    def __repr__(self):
        return f'<Requisition {self.title} ({self.status})>'


class RecruiterAssignment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    requisition_id = db.Column(db.String(36), db.ForeignKey('requisition.id'), nullable=False, index=True)
    recruiter_id = db.Column(db.String(36), db.ForeignKey('recruiter_profile.id'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    assigned_at = db.Column(db.DateTime, default=datetime.utcnow)

    recruiter = db.relationship('RecruiterProfile')


class Posting(db.Model):
    """Published, candidate-facing projection of a requisition"""
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    requisition_id = db.Column(db.String(36), db.ForeignKey('requisition.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    required_profile = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(255), nullable=True)
    work_mode = db.Column(db.String(50), nullable=True)
    approved_salary = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    client_area = db.Column(db.String(255), nullable=True)
    is_published = db.Column(db.Boolean, default=True, nullable=False)
    published_at = db.Column(db.DateTime, default=datetime.utcnow)
    unpublished_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f'<Posting {self.title}>'


class CandidateProfile(db.Model):
    """Professional attributes plus access-controlled identity attributes"""
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), primary_key=True)

    # Identity (gated)
    full_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    location = db.Column(db.String(255), nullable=True)

    # Professional
    current_title = db.Column(db.String(255), nullable=True)
    current_company = db.Column(db.String(255), nullable=True)
    education_level = db.Column(db.String(100), nullable=True)
    degree = db.Column(db.String(255), nullable=True)
    technical_skills = db.Column(db.JSON, default=list)
    soft_skills = db.Column(db.JSON, default=list)
    work_experience = db.Column(db.JSON, default=list)
    salary_expectation_min = db.Column(db.Float, nullable=True)
    salary_expectation_max = db.Column(db.Float, nullable=True)
    availability = db.Column(db.String(100), nullable=True)
    preferred_work_mode = db.Column(db.String(50), nullable=True)
    professional_summary = db.Column(db.Text, nullable=True)

    # AI indexing
    ai_summary = db.Column(db.Text, nullable=True)
    sourcing_keywords = db.Column(db.JSON, default=list)
    detected_industries = db.Column(db.JSON, default=list)
    ai_experience_level = db.Column(db.String(50), nullable=True)
    ai_indexed_at = db.Column(db.DateTime, nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<CandidateProfile {self.user_id}>'


class Application(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    posting_id = db.Column(db.String(36), db.ForeignKey('posting.id'), nullable=False, index=True)
    candidate_user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    posting = db.relationship('Posting')

    __table_args__ = (db.UniqueConstraint('posting_id', 'candidate_user_id', name='uq_application'),)


class RecruiterWallet(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    recruiter_id = db.Column(db.String(36), db.ForeignKey('recruiter_profile.id'), unique=True, nullable=False)
    own_credits = db.Column(db.Integer, nullable=False, default=0)
    inherited_credits = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {'version_id_col': version_id}
    __table_args__ = (
        db.CheckConstraint('own_credits >= 0', name='ck_recruiter_own_non_negative'),
        db.CheckConstraint('inherited_credits >= 0', name='ck_recruiter_inherited_non_negative'),
    )

    @property
    def available_credits(self):
        return (self.own_credits or 0) + (self.inherited_credits or 0)

    def __repr__(self):
        return f'<RecruiterWallet {self.recruiter_id}>'


class CompanyWallet(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.String(36), db.ForeignKey('company.id'), unique=True, nullable=False)
    available_credits = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {'version_id_col': version_id}
    __table_args__ = (
        db.CheckConstraint('available_credits >= 0', name='ck_company_credits_non_negative'),
    )

    def __repr__(self):
        return f'<CompanyWallet {self.company_id}>'


class CreditMovement(db.Model):
    """Immutable billing trail; one row per credit movement on one wallet"""
    id = db.Column(db.Integer, primary_key=True)
    payer_kind = db.Column(db.String(20), nullable=False)  # 'recruiter' or 'company'
    provenance = db.Column(db.String(30), nullable=False)
    recruiter_wallet_id = db.Column(db.Integer, db.ForeignKey('recruiter_wallet.id'), nullable=True, index=True)
    company_wallet_id = db.Column(db.Integer, db.ForeignKey('company_wallet.id'), nullable=True, index=True)
    company_id = db.Column(db.String(36), db.ForeignKey('company.id'), nullable=True, index=True)
    actor_user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)
    action_kind = db.Column(db.String(50), nullable=False)
    amount = db.Column(db.Integer, nullable=False)  # negative = debit
    from_inherited = db.Column(db.Integer, nullable=False, default=0)
    from_own = db.Column(db.Integer, nullable=False, default=0)
    balance_before = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)
    requisition_id = db.Column(db.String(36), db.ForeignKey('requisition.id'), nullable=True, index=True)
    candidate_user_id = db.Column(db.String(36), nullable=True)
    batch_id = db.Column(db.String(36), nullable=True, index=True)
    method = db.Column(db.String(30), nullable=False, default='manual')
    extra = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'origen_pago': self.provenance,
            'tipo_accion': self.action_kind,
            'creditos_cantidad': self.amount,
            'creditos_antes': self.balance_before,
            'creditos_despues': self.balance_after,
            'descripcion': self.description,
            'vacante_id': self.requisition_id,
            'lote_sourcing': self.batch_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class SourcingAudit(db.Model):
    """Append-only log of sourcing actions; also the rate-limit source of truth"""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    requisition_id = db.Column(db.String(36), db.ForeignKey('requisition.id'), nullable=False)
    posting_id = db.Column(db.String(36), db.ForeignKey('posting.id'), nullable=True)
    action = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index('ix_sourcing_audit_user_action_created', 'user_id', 'action', 'created_at'),
        db.Index('ix_sourcing_audit_user_req_action_created', 'user_id', 'requisition_id', 'action', 'created_at'),
    )


class SourcingBatch(db.Model):
    """One execution call; charged exactly once"""
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    requisition_id = db.Column(db.String(36), db.ForeignKey('requisition.id'), nullable=False, index=True)
    posting_id = db.Column(db.String(36), db.ForeignKey('posting.id'), nullable=True)
    executor_user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    recruiter_id = db.Column(db.String(36), db.ForeignKey('recruiter_profile.id'), nullable=True)
    company_id = db.Column(db.String(36), db.ForeignKey('company.id'), nullable=True)
    provenance = db.Column(db.String(30), nullable=False)
    total_cost = db.Column(db.Integer, nullable=False)
    candidates_analyzed = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    results = db.relationship('SourcingResult', backref='batch', lazy='dynamic')


class SourcingResult(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    batch_id = db.Column(db.String(36), db.ForeignKey('sourcing_batch.id'), nullable=False, index=True)
    requisition_id = db.Column(db.String(36), db.ForeignKey('requisition.id'), nullable=False, index=True)
    posting_id = db.Column(db.String(36), db.ForeignKey('posting.id'), nullable=True)
    candidate_user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    executor_user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    recruiter_id = db.Column(db.String(36), db.ForeignKey('recruiter_profile.id'), nullable=True)
    company_id = db.Column(db.String(36), db.ForeignKey('company.id'), nullable=True)
    score = db.Column(db.Integer, nullable=False)
    rationale = db.Column(db.String(255), nullable=True)
    matched_skills = db.Column(db.JSON, default=list)
    relevant_experience = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), nullable=False, default='pending')
    follow_up_note = db.Column(db.Text, nullable=True)
    contacted_at = db.Column(db.DateTime, nullable=True)
    credits_consumed = db.Column(db.Float, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('requisition_id', 'candidate_user_id', name='uq_sourcing_requisition_candidate'),
    )


class IdentityUnlock(db.Model):
    """Permanent identity grant for a (recruiter-or-company, candidate) pair"""
    id = db.Column(db.Integer, primary_key=True)
    recruiter_id = db.Column(db.String(36), db.ForeignKey('recruiter_profile.id'), nullable=True, index=True)
    company_id = db.Column(db.String(36), db.ForeignKey('company.id'), nullable=True, index=True)
    candidate_user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    provenance = db.Column(db.String(30), nullable=False)
    credits_consumed = db.Column(db.Integer, nullable=False, default=0)
    batch_id = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('recruiter_id', 'candidate_user_id', name='uq_unlock_recruiter_candidate'),
        db.UniqueConstraint('company_id', 'candidate_user_id', name='uq_unlock_company_candidate'),
        db.CheckConstraint('recruiter_id IS NOT NULL OR company_id IS NOT NULL', name='ck_unlock_holder'),
    )


class SourcingSettings(db.Model):
    """Runtime overrides for sourcing tunables (cost, limits, model)"""
    id = db.Column(db.Integer, primary_key=True)
    setting_key = db.Column(db.String(100), unique=True, nullable=False)
    setting_value = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<SourcingSettings {self.setting_key}: {self.setting_value}>'


def _reject_mutation(mapper, connection, target):
    raise ValueError(f"{type(target).__name__} rows are append-only")


for _immutable in (SourcingAudit, CreditMovement):
    event.listen(_immutable, 'before_update', _reject_mutation)
    event.listen(_immutable, 'before_delete', _reject_mutation)
