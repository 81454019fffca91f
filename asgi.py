"""
asgi.py -- ASGI entry point for taskwarden.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app  # noqa: F401
