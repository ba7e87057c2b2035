import os
import logging

from flask import Flask
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase
from werkzeug.middleware.proxy_fix import ProxyFix


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)

login_manager = LoginManager()

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    app = Flask(__name__)

    env = (os.environ.get('APP_ENV') or os.environ.get('ENVIRONMENT') or 'production').lower()
    app.config['ENVIRONMENT'] = env
    logger.info(f"App environment set to: {env}")

    app.secret_key = os.environ.get("SESSION_SECRET") or os.urandom(24).hex()
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    # Bearer-token API: no cookies are issued, the session is never used for auth
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
    app.config['TOKEN_MAX_AGE_SECONDS'] = int(os.environ.get('TOKEN_MAX_AGE_SECONDS', 60 * 60 * 12))

    app.config['OPENAI_API_KEY'] = os.environ.get('OPENAI_API_KEY')
    app.config['LLM_BASE_URL'] = os.environ.get('LLM_BASE_URL')
    app.config['LLM_MODEL'] = os.environ.get('LLM_MODEL')

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        app.config["SQLALCHEMY_DATABASE_URI"] = database_url
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_recycle": 300,
            "pool_pre_ping": True,
            "pool_size": 20,
            "max_overflow": 30
        }
    else:
        app.logger.warning("DATABASE_URL not set, using default SQLite for development")
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///sourcing_dev.db"

    if test_config:
        app.config.update(test_config)

    db.init_app(app)
    login_manager.init_app(app)
    app.login_manager = login_manager

    from sentry_config import init_sentry
    init_sentry(app)

    import auth_tokens  # noqa: F401  registers the Flask-Login request loader
    from errors import register_error_handlers
    from routes import register_blueprints

    register_error_handlers(app)
    register_blueprints(app)

    @app.after_request
    def set_security_headers(response):
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['X-XSS-Protection'] = '0'
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        # Responses may carry unlocked candidate identity
        response.headers['Cache-Control'] = 'no-store'
        return response

    return app
