# backend/wsgi.py
from coopshop import create_app

app = create_app()
