# backend/wsgi.py
from laundrypos import create_app

app = create_app()
