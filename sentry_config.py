"""
Error reporting for the sourcing API.

Only production deployments with SENTRY_DSN report to Sentry; every other
environment logs why reporting stayed off and carries on.

Events never carry request bodies (candidate identity, prompt material)
nor bearer tokens: the SDK is told not to capture bodies and scrub_event
strips whatever request data still reaches before_send.

Env vars:
    SENTRY_DSN                   project DSN, reporting is off without it
    SENTRY_TRACES_SAMPLE_RATE    share of requests traced (default 0.2)
    SENTRY_PROFILES_SAMPLE_RATE  share of traced requests profiled (default 0.1)
    GIT_SHA                      release tag attached to events
"""

import os
import logging

logger = logging.getLogger(__name__)

SCRUBBED_HEADERS = ('authorization', 'cookie')
FILTERED = '[Filtered]'


def scrub_event(event, hint):
    """before_send hook: strip request bodies and credentials from the event"""
    request_info = event.get('request')
    if isinstance(request_info, dict):
        request_info.pop('data', None)
        request_info.pop('cookies', None)
        headers = request_info.get('headers')
        if isinstance(headers, dict):
            for name in list(headers):
                if name.lower() in SCRUBBED_HEADERS:
                    headers[name] = FILTERED
    return event


def _sample_rate(var, default):
    return float(os.environ.get(var, default))


def init_sentry(app):
    """Turn on Sentry reporting for the app. Returns whether it was enabled."""
    dsn = os.environ.get('SENTRY_DSN', '').strip()
    environment = app.config.get('ENVIRONMENT', 'development')

    if not dsn or environment != 'production':
        logger.info(f"Error reporting off (dsn set: {bool(dsn)}, environment: {environment})")
        return False

    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    try:
        traces = _sample_rate('SENTRY_TRACES_SAMPLE_RATE', '0.2')
        profiles = _sample_rate('SENTRY_PROFILES_SAMPLE_RATE', '0.1')
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            release=os.environ.get('GIT_SHA', 'unknown'),
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=traces,
            profiles_sample_rate=profiles,
            send_default_pii=False,
            max_request_body_size='never',
            before_send=scrub_event,
        )
    except ValueError as e:
        # bad DSN or sample rate; the API keeps serving without reporting
        logger.error(f"Error reporting not started: {str(e)}")
        return False

    logger.info(f"Error reporting on: traces={traces} profiles={profiles}")
    return True
