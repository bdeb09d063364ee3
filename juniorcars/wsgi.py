"""WSGI entry point: ``gunicorn juniorcars.wsgi:app``."""
from . import create_app

app = create_app()
