import secrets
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException, Request, status

from oggole.auth import AuthService
from oggole.config import Settings
from oggole.exceptions import ConfigurationError
from oggole.metrics import Metrics
from oggole.models import User
from oggole.search import DocumentIndex, SearchService
from oggole.security import SESSION_COOKIE_NAME
from oggole.weather import WeatherCache


# Services are built once in create_app() and live on app.state

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_search_service(request: Request) -> SearchService:
    return request.app.state.search_service


def get_document_index(request: Request) -> DocumentIndex:
    return request.app.state.document_index


def get_weather_cache(request: Request) -> WeatherCache:
    return request.app.state.weather_cache


def get_metrics(request: Request) -> Metrics:
    return request.app.state.metrics


def get_session_token(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> Optional[str]:
    return session_token


def get_current_user(
    token: Optional[str] = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    """
    Resolve the session cookie to a user.

    NotFoundError / ExpiredError propagate and become 401 responses.
    """
    username = auth.validate_session(token)
    user = auth.get_user(username)
    if user is None:
        # Session outlived its user row; treat as no session
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


def require_crawler_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """
    Guard for the bulk ingestion endpoint.

    Constant-time comparison against the configured static key.
    """
    if not settings.crawler_api_key:
        raise ConfigurationError("Page ingestion is not configured")
    if not x_api_key or not secrets.compare_digest(x_api_key.encode(), settings.crawler_api_key.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key")
