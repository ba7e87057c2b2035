"""
Pytest fixtures for the sourcing service tests.

Provides a per-test Flask app on in-memory SQLite, a seeded world
(company, recruiter, requisition, posting, candidates, wallets), bearer
token headers and a mocked OpenAI client.
"""

import json
import os
import sys
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

# Ensure the project root is in the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@pytest.fixture(scope='function')
def app():
    """
    Create a Flask application instance backed by a fresh in-memory database.
    """
    yield from build_app('sqlite:///:memory:')


def build_app(database_uri):
    # CRITICAL: clear production settings BEFORE building the app
    # DATABASE_URL would add PostgreSQL pool options; the key would enable the real engine
    for var in ('DATABASE_URL', 'OPENAI_API_KEY', 'LLM_BASE_URL', 'LLM_MODEL', 'SENTRY_DSN'):
        os.environ.pop(var, None)
    os.environ['APP_ENV'] = 'testing'

    from extensions import create_app, db

    flask_app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret-key-for-pytest',
        'SQLALCHEMY_DATABASE_URI': database_uri,
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'OPENAI_API_KEY': None,
    })

    with flask_app.app_context():
        import models  # noqa: F401
        db.create_all()

    yield flask_app

    with flask_app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def app_ctx(app):
    """Push an application context for service-level tests."""
    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def client(app):
    """
    Create a test client for the Flask application.

    Requests get their own application context, so the current user is
    resolved from the bearer token on every call.
    """
    return app.test_client()


@pytest.fixture
def auth_header(app):
    """Build an Authorization header for a user id."""
    from auth_tokens import issue_token

    def _header(user_id):
        with app.app_context():
            token = issue_token(SimpleNamespace(id=user_id))
        return {'Authorization': f'Bearer {token}'}

    return _header


@pytest.fixture
def world(app):
    """
    Seed one company with an owner, an assigned recruiter who collaborates
    with it, an open requisition with a published posting, 12 candidates and
    both wallets (recruiter own=30 inherited=20, company=100).
    """
    from extensions import db
    from models import (
        CandidateProfile, Company, CompanyMember, CompanyRecruiter, CompanyWallet, Posting,
        RecruiterAssignment, RecruiterProfile, RecruiterWallet, Requisition, User,
    )

    with app.app_context():
        owner = User(email='owner@empresa.mx', display_name='Dueña Empresa')
        recruiter_user = User(email='reclutador@agencia.mx', display_name='Reclutador Externo')
        outsider = User(email='outsider@otra.mx', display_name='Sin Relación')
        db.session.add_all([owner, recruiter_user, outsider])
        company = Company(name='Empresa Demo', sector='Tecnología')
        db.session.add(company)
        db.session.flush()

        db.session.add(CompanyMember(company_id=company.id, user_id=owner.id))
        recruiter = RecruiterProfile(user_id=recruiter_user.id, display_name='Reclutador Externo')
        db.session.add(recruiter)
        db.session.flush()
        db.session.add(CompanyRecruiter(company_id=company.id, recruiter_id=recruiter.id, is_active=True))

        requisition = Requisition(
            company_id=company.id,
            created_by_user_id=owner.id,
            title='Desarrollador Python',
            required_profile='Python, Flask, SQL, 3+ años de experiencia',
            work_mode='remoto',
            approved_salary=45000,
            area='Ingeniería',
        )
        db.session.add(requisition)
        db.session.flush()

        posting = Posting(
            requisition_id=requisition.id,
            title='Desarrollador Python Sr',
            required_profile='Python, Flask, SQL',
            location='CDMX',
            work_mode='remoto',
            is_published=True,
        )
        db.session.add(posting)
        db.session.add(RecruiterAssignment(requisition_id=requisition.id, recruiter_id=recruiter.id))

        candidate_ids = []
        now = datetime.utcnow()
        for i in range(12):
            user = User(email=f'candidato{i}@correo.mx')
            db.session.add(user)
            db.session.flush()
            db.session.add(CandidateProfile(
                user_id=user.id,
                full_name=f'Candidato Número {i}',
                email=f'candidato{i}@correo.mx',
                phone=f'55000000{i:02d}',
                location='CDMX',
                current_title='Backend Developer',
                technical_skills=['Python', 'SQL'],
                work_experience=[{'puesto': 'Developer', 'empresa': f'Empresa {i}'}],
                ai_indexed_at=now - timedelta(days=i) if i % 2 == 0 else None,
                created_at=now - timedelta(minutes=i),
            ))
            candidate_ids.append(user.id)

        recruiter_wallet = RecruiterWallet(recruiter_id=recruiter.id, own_credits=30, inherited_credits=20)
        company_wallet = CompanyWallet(company_id=company.id, available_credits=100)
        db.session.add_all([recruiter_wallet, company_wallet])
        db.session.commit()

        return SimpleNamespace(
            owner_id=owner.id,
            recruiter_user_id=recruiter_user.id,
            outsider_id=outsider.id,
            company_id=company.id,
            recruiter_id=recruiter.id,
            requisition_id=requisition.id,
            posting_id=posting.id,
            candidate_ids=candidate_ids,
        )


def get_user(user_id):
    from extensions import db
    from models import User
    return db.session.get(User, user_id)


def engine_reply(entries):
    """Chat-completion response whose message content is the JSON of entries."""
    content = entries if isinstance(entries, str) else json.dumps(entries)
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


def ranking_entries(indices, base_score=90):
    return [
        {
            'index': index,
            'score': base_score - n,
            'rationale': f'Buen match técnico #{index}',
            'matched_skills': ['Python'],
            'relevant_experience': ['Developer'],
        }
        for n, index in enumerate(indices)
    ]


@pytest.fixture
def mock_openai(mocker):
    """
    Mock the OpenAI client used by RankingService to avoid real API calls.

    Returns the mocked chat.completions.create; set .return_value or
    .side_effect in the test.
    """
    mock = mocker.patch('ranking_service.OpenAI')
    create = mock.return_value.with_options.return_value.chat.completions.create
    create.return_value = engine_reply(ranking_entries(range(10)))
    return create


@pytest.fixture
def ranking_service(app_ctx, mock_openai):
    from ranking_service import RankingService
    return RankingService(api_key='test-key')
