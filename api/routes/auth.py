"""
api/routes/auth.py -- Registration and login endpoints.

Routes:
  POST /register -- create an account; 201 {message}
  POST /login    -- verify credentials; 200 {token, user}

Security:
  Unknown login and wrong password return the same 401 body, and
  AuthService runs bcrypt in both cases (timing equalization).
  Cache-Control: no-store on login responses so tokens are not cached.
  Neither handler logs the request body.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from api.models import AccountProfile, LoginRequest, LoginResponse, MessageResponse, RegisterRequest
from auth.service import AuthService

# Auth policy: both routes are public -- they are how a caller gets a token.
router = APIRouter()


@router.post("/register", response_model=MessageResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> MessageResponse:
    """Create an account.

    Sync handler: bcrypt hashing blocks, so FastAPI runs this in its thread
    pool instead of on the event loop.
    """
    auth_service: AuthService = request.app.state.auth_service
    auth_service.register(
        login=body.login,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return MessageResponse(message="User registered successfully")


@router.post("/login", response_model=LoginResponse)
def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Exchange login and password for a 7-day bearer token and the profile."""
    auth_service: AuthService = request.app.state.auth_service
    token, account = auth_service.login(body.login, body.password)
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(token=token, user=AccountProfile.from_account(account))
