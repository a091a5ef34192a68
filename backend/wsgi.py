# backend/wsgi.py
from shiftpos import create_app

app = create_app()
