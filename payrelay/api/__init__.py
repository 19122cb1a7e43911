"""
HTTP surface (FastAPI). Build the app with ``create_app``; ``payrelay.api.main:app`` is the uvicorn entry point.
"""
from .app import create_app

__all__ = ["create_app"]
