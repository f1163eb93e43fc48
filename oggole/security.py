"""
Token, password-hash and cookie helpers shared by the auth routes and service.
"""
import secrets

from argon2 import PasswordHasher
from fastapi import Request, Response

from oggole.config import Settings

# Floors for the tunable Argon2id costs (OWASP minimum: m=19 MiB, t=2, p=1)
MIN_TIME_COST = 2
MIN_MEMORY_COST = 19456
MIN_PARALLELISM = 1

TOKEN_BYTES = 32
SESSION_COOKIE_NAME = "session_token"


def build_password_hasher(settings: Settings) -> PasswordHasher:
    """
    Argon2id hasher with the configured costs.

    Argon2 salts every hash and encodes its parameters in the hash string,
    so raising the costs later only affects new hashes.
    Values below the floors are raised to the floor.
    """
    return PasswordHasher(
        time_cost=max(settings.password_hash_time_cost, MIN_TIME_COST),
        memory_cost=max(settings.password_hash_memory_cost, MIN_MEMORY_COST),
        parallelism=max(settings.password_hash_parallelism, MIN_PARALLELISM),
    )


def generate_token() -> str:
    """
    Generate cryptographically secure session token.

    32 bytes (256 bits) of randomness, URL-safe base64 without padding
    (43 characters), safe to put in a cookie as-is.
    """
    return secrets.token_urlsafe(TOKEN_BYTES)


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    """
    Set session cookie with security flags.

    The cookie only contains the opaque token.
    All user data stays server-side.
    """
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=settings.session_max_age,
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    """Clear the session cookie with a negative max-age."""
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value="",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=-1,
        path="/",
    )


def get_client_ip(request: Request) -> str:
    """
    Client address for login telemetry.

    Behind the reverse proxy the first X-Forwarded-For entry is the client.
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"
