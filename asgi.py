"""
asgi.py -- Application assembly for the HonestInvoice verification service.

Run with:  uvicorn asgi:app --reload

The session core (auth.session) is a library embedded in the client
application; only the verification boundary is served over HTTP.
"""

from api.main import app

__all__ = ["app"]
