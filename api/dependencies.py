"""
api/dependencies.py -- FastAPI Depends() helpers shared by the v1 routers.

Services live on app.state (built in the lifespan); these accessors keep route
signatures typed and let tests swap the app state without touching routes.

cancel_token() gives each request a CancellationToken whose probe is
Request.is_disconnected, so a client that hangs up stops the service at its
next checkpoint.
"""

from __future__ import annotations

from fastapi import Request

from auth.service import IdentityService
from core.cancellation import CancellationToken
from fleet.service import BusService


def cancel_token(request: Request) -> CancellationToken:
    return CancellationToken(probe=request.is_disconnected)


def get_identity_service(request: Request) -> IdentityService:
    return request.app.state.identity


def get_bus_service(request: Request) -> BusService:
    return request.app.state.buses
