"""
asgi.py -- ASGI entry point for BusTrack.

Process managers import `app` from here rather than from api/main.py so the
deployment command stays stable if the app is ever assembled from more than
one layer.

Run with:  uvicorn asgi:app --reload
           uvicorn asgi:app --host 0.0.0.0 --port 3000 --proxy-headers
"""

from api.main import app

__all__ = ["app"]
