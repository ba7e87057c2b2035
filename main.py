#!/usr/bin/env python3
"""
Main entry point for the Flask application.
Provides deployment-ready configuration with a startup health check.
"""
import os
import sys
import logging

# Configure logging before importing the app
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('app.log', mode='a')
    ]
)

logger = logging.getLogger(__name__)


def check_environment():
    """Check required environment variables"""
    required_env_vars = ['SESSION_SECRET', 'DATABASE_URL', 'OPENAI_API_KEY']
    missing_vars = [var for var in required_env_vars if not os.environ.get(var)]

    if missing_vars:
        logger.warning(f"Missing environment variables: {missing_vars}")
        # Tokens signed with a random secret do not survive a restart
        if 'SESSION_SECRET' in missing_vars:
            os.environ['SESSION_SECRET'] = os.urandom(24).hex()
            logger.info("Generated fallback SESSION_SECRET for deployment")

    return not missing_vars


def initialize_app():
    """Initialize the Flask application and run a startup health check"""
    logger.info("Starting application initialization...")
    check_environment()

    from app import app

    logger.info("Flask application imported successfully")

    with app.test_client() as client:
        response = client.get('/health')
        if response.status_code == 200 and response.get_json().get('database') == 'connected':
            logger.info("Health check passed during startup")
        else:
            logger.warning(f"Health check degraded during startup: {response.get_data(as_text=True)}")

    return app


app = initialize_app()

if __name__ == '__main__':
    # Development server - not used in production deployment
    logger.info("Starting development server...")
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=False)
