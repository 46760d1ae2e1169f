# backend/wsgi.py
from rrsa import create_app

app = create_app()
