"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi messaging-init
    gunicorn wsgi:app
"""

from todo_app import create_app

app = create_app()
