"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi seed-demo
    flask --app wsgi issue-token <member_id>
"""

from app import create_app

app = create_app()
