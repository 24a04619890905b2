"""
asgi.py -- ASGI entry point for tokengate.

Run with:  uvicorn asgi:app --reload
           python main.py
"""

from api.main import app

__all__ = ["app"]
