"""
wsgi.py — Production entry point.

    gunicorn backend.wsgi:app
    flask --app backend.wsgi run --port 8000
"""

import os

from backend.app import create_app

app = create_app(os.getenv("FLASK_ENV", "development"))
