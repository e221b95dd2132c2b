"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi sweep-access-tokens
    gunicorn wsgi:app
"""

from lotflow import create_app

app = create_app()
