# Routes module for the sourcing service
# Flask blueprints organized by feature area

from functools import wraps

from flask import request
from flask_login import current_user

from errors import BadRequest, Forbidden


def json_body():
    """Return the request's JSON object or raise BadRequest."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest('El cuerpo de la solicitud debe ser un objeto JSON')
    return data


def company_member_required(f):
    """Decorator that restricts a <company_id> route to members of that company.
    Must be used AFTER @login_required."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        company_id = kwargs.get('company_id')
        if company_id not in current_user.company_ids():
            raise Forbidden('No perteneces a esta empresa')
        return f(*args, **kwargs)
    return decorated_function


def register_blueprints(app):
    from routes.candidates import candidates_bp
    from routes.health import health_bp
    from routes.requisitions import requisitions_bp
    from routes.sourcing import sourcing_bp
    from routes.wallet import wallet_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(sourcing_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(candidates_bp)
    app.register_blueprint(requisitions_bp)
