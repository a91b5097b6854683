"""
API module for the claim lifecycle.

Exposes wallet binding, claim creation, reload, and decrypt-and-verify
over HTTP with FastAPI.
"""

from .app import app, main

__all__ = ["app", "main"]
