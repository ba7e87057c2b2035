import os
import logging

from extensions import create_app, db

logging.basicConfig(
    level=logging.DEBUG if os.environ.get('APP_ENV', '').lower() == 'development' else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
# Suppress verbose logging from external libraries
logging.getLogger('urllib3').setLevel(logging.WARNING)
logging.getLogger('httpx').setLevel(logging.WARNING)
logging.getLogger('openai').setLevel(logging.WARNING)

app = create_app()

# Import models so every table is registered before create_all
import models  # noqa: E402,F401

# Initialize database tables
with app.app_context():
    db.create_all()
