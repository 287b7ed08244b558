# =======================================================================================
# keytrack/api/routes/auth.py - Frontend Authentication Endpoints
# =======================================================================================


from fastapi import APIRouter, Depends, status

from ...models.schemas import Actor, AuthResponse, LoginRequest, RegisterRequest
from ...services.auth_service import AuthService
from ..dependencies import get_auth_service, get_current_actor

router = APIRouter()


@router.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register_user(request: RegisterRequest, auth_service: AuthService = Depends(get_auth_service)):
    # TODO: restrict security/admin self-registration once an invite flow exists
    actor = auth_service.register(request.name, request.email, request.password, request.role)
    token = auth_service.issue_token(actor)
    return AuthResponse(token=token, message="User created successfully", user=actor)


@router.post("/auth/login", response_model=AuthResponse)
def login_user(request: LoginRequest, auth_service: AuthService = Depends(get_auth_service)):
    actor = auth_service.authenticate(request.email, request.password)
    token = auth_service.issue_token(actor)
    return AuthResponse(token=token, message="Login successful", user=actor)


@router.get("/auth/me", response_model=AuthResponse)
def current_user(actor: Actor = Depends(get_current_actor)):
    return AuthResponse(user=actor)
