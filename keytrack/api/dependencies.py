# =======================================================================================
# keytrack/api/dependencies.py - FastAPI Dependencies
# =======================================================================================
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..models.schemas import Actor
from ..services.auth_service import AuthService
from ..services.dashboard_service import DashboardService
from ..services.fanout import FanoutHub
from ..services.key_admin import KeyAdminService
from ..services.key_store import KeyStore
from ..services.key_transitions import KeyTransitionService

bearer_scheme = HTTPBearer(auto_error=False)


def get_key_store(request: Request) -> KeyStore:
    return request.app.state.key_store


def get_transitions(request: Request) -> KeyTransitionService:
    return request.app.state.transitions


def get_key_admin(request: Request) -> KeyAdminService:
    return request.app.state.key_admin


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_dashboard_service(request: Request) -> DashboardService:
    return request.app.state.dashboard_service


def get_fanout(request: Request) -> FanoutHub:
    return request.app.state.fanout


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> Actor:
    """Resolve the bearer token to the acting user; 401 when missing or unknown."""
    token = credentials.credentials if credentials else None
    return auth_service.resolve_token(token)
