from typing import Optional

from fastapi import APIRouter, Depends, Form, Request, Response, status
from fastapi.responses import JSONResponse

from oggole.auth import AuthService
from oggole.config import Settings
from oggole.dependencies import get_app_settings, get_auth_service, get_current_user, get_session_token
from oggole.exceptions import StorageError
from oggole.models import User
from oggole.schemas import MessageResponse, SessionResponse, UserResponse
from oggole.security import clear_session_cookie, get_client_ip, set_session_cookie

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    response: Response,
    username: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    password2: str = Form(""),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Create new user account and sign it in.

    Error cases:
    - 400: Missing field or passwords differ
    - 409: Username or email already exists
    - 500: Database error (the account may exist; log in separately)
    """
    session = auth.register(username, email, password, password2, get_client_ip(request))
    set_session_cookie(response, session.token, settings)
    return session


@router.post("/login", response_model=SessionResponse)
def login(
    request: Request,
    response: Response,
    username: str = Form(""),
    password: str = Form(""),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Authenticate user and create session.

    POST only; a GET never reaches the service.
    The 401 message is the same for unknown users and wrong passwords.
    """
    session = auth.login(username, password, get_client_ip(request))
    set_session_cookie(response, session.token, settings)
    return session


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Invalidate session and clear cookie.

    Returns success even if session doesn't exist (idempotent).
    The cookie is cleared even when the delete fails.
    """
    try:
        auth.logout(token, get_client_ip(request))
    except StorageError as exc:
        error_response = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
        clear_session_cookie(error_response, settings)
        return error_response

    clear_session_cookie(response, settings)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
def get_current_user_info(user: User = Depends(get_current_user)):
    """
    Get authenticated user's information.

    Returns 401 if not authenticated (handled by dependency).
    """
    return user
