"""
Bearer-token authentication.

The identity provider issues signed, time-limited tokens carrying the user id.
Flask-Login resolves them per request through a request_loader, so every API
call is authenticated independently and nothing is kept in the session.
"""

import logging

from flask import current_app, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from extensions import db, login_manager

logger = logging.getLogger(__name__)

TOKEN_SALT = 'sourcing-api-token'


def _serializer():
    return URLSafeTimedSerializer(current_app.secret_key, salt=TOKEN_SALT)


def issue_token(user):
    """Sign a bearer token for the given user"""
    return _serializer().dumps({'uid': user.id})


def verify_token(token):
    """Return the user id carried by a valid token, or None"""
    max_age = current_app.config.get('TOKEN_MAX_AGE_SECONDS')
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        logger.info("Bearer token expired")
        return None
    except BadSignature:
        logger.warning(f"Invalid bearer token ***{token[-4:] if token else ''}")
        return None
    return payload.get('uid') if isinstance(payload, dict) else None


@login_manager.request_loader
def load_user_from_request(req):
    from models import User

    auth_header = req.headers.get('Authorization', '')
    if not auth_header.lower().startswith('bearer '):
        return None
    token = auth_header[7:].strip()
    if not token:
        return None

    user_id = verify_token(token)
    if not user_id:
        return None

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    from errors import Unauthenticated

    logger.info(f"Unauthenticated request to {request.path}")
    error = Unauthenticated()
    return jsonify(error.to_dict()), error.status_code
