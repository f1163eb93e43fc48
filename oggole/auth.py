import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from oggole.database import utcnow
from oggole.exceptions import (
    AuthenticationError,
    ConflictError,
    ExpiredError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from oggole.models import Session as SessionModel, User
from oggole.security import generate_token

logger = logging.getLogger(__name__)


class AuthService:
    """
    Registration, login and server-side sessions.

    Owns its session factory; every operation opens and closes its own
    database session. Uniqueness of usernames, emails and tokens is
    enforced by the database, the existence checks here only give a
    friendlier error in the common case.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        hasher: PasswordHasher,
        session_lifetime: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._hasher = hasher
        self._session_lifetime = session_lifetime
        self._clock = clock
        # Hashed with the live parameters so verifying it costs the same as a real hash
        self._dummy_hash = hasher.hash(secrets.token_urlsafe(16))

    def register(
        self,
        username: str,
        email: str,
        password: str,
        password_confirmation: str,
        client_ip: str,
    ) -> SessionModel:
        """
        Create an account and sign it in.

        The user row is committed before the session is created. If the
        session insert fails the account stays; the caller gets a
        StorageError and can log in normally.
        """
        username = (username or "").strip()
        # Normalize email to prevent duplicate accounts with different casing
        email = (email or "").strip().lower()

        if not username or not email or not password or not password_confirmation:
            raise ValidationError("Username, email and both password fields are required")
        if password != password_confirmation:
            raise ValidationError("Passwords do not match")

        try:
            with self._session_factory() as db:
                if db.scalar(select(User.id).where(User.username == username)) is not None:
                    raise ConflictError("Username already taken")
                if db.scalar(select(User.id).where(User.email == email)) is not None:
                    raise ConflictError("Email already registered")

                now = self._clock()
                db.add(User(
                    username=username,
                    email=email,
                    password_hash=self._hasher.hash(password),
                    registration_ip=client_ip,
                    registration_time=now,
                    login_count=0,
                ))
                try:
                    db.commit()
                except IntegrityError:
                    # Lost a race with a concurrent registration
                    db.rollback()
                    logger.info("Registration for %s rejected by uniqueness constraint", username)
                    raise ConflictError("Username or email already registered")
        except SQLAlchemyError:
            logger.exception("Registration failed for %s", username)
            raise StorageError("Registration failed, please try again later")

        logger.info("Registered user %s from %s", username, client_ip)

        try:
            return self._create_session(username)
        except SQLAlchemyError:
            logger.exception("Session creation failed after registering %s", username)
            raise StorageError("Account created, but signing in failed. Please log in.")

    def login(self, username: str, password: str, client_ip: str) -> SessionModel:
        """
        Authenticate and issue a new session.

        The Argon2 verification runs whether or not the user exists, so
        "unknown user" and "wrong password" take the same time and end in
        the same AuthenticationError and the same log line.
        """
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password are required")

        try:
            with self._session_factory() as db:
                user = db.scalar(select(User).where(User.username == username))
        except SQLAlchemyError:
            logger.exception("Credential lookup failed")
            raise StorageError("Login is temporarily unavailable")

        stored_hash = user.password_hash if user is not None else self._dummy_hash
        password_ok = self._verify(stored_hash, password)

        if user is None or not password_ok:
            logger.warning("Failed login attempt for %s from %s", username, client_ip)
            raise AuthenticationError()

        try:
            session = self._create_session(user.username)
        except SQLAlchemyError:
            logger.exception("Session creation failed for %s", user.username)
            raise StorageError("Login is temporarily unavailable")

        self._record_login(user, password, client_ip)
        logger.info("User %s logged in from %s", user.username, client_ip)
        return session

    def validate_session(self, token: Optional[str]) -> str:
        """Return the username a live session token belongs to. Read-only."""
        if not token:
            raise NotFoundError()

        try:
            with self._session_factory() as db:
                session = db.get(SessionModel, token)
        except SQLAlchemyError:
            logger.exception("Session lookup failed")
            raise StorageError("Session lookup failed")

        if session is None:
            raise NotFoundError()
        if session.expires_at <= self._clock():
            raise ExpiredError()
        return session.username

    def logout(self, token: Optional[str], client_ip: str) -> None:
        """
        Delete the session. Idempotent: unknown or empty tokens are fine.
        """
        if not token:
            return

        try:
            with self._session_factory() as db:
                result = db.execute(delete(SessionModel).where(SessionModel.token == token))
                db.commit()
        except SQLAlchemyError:
            logger.exception("Logout failed for request from %s", client_ip)
            raise StorageError("Logout failed, please try again later")

        if result.rowcount:
            logger.info("Session revoked from %s", client_ip)

    def get_user(self, username: str) -> Optional[User]:
        try:
            with self._session_factory() as db:
                return db.scalar(select(User).where(User.username == username))
        except SQLAlchemyError:
            logger.exception("User lookup failed")
            raise StorageError("User lookup failed")

    def revoke_user_sessions(self, username: str) -> int:
        """
        Delete all sessions for a user.

        For password changes and "log out everywhere".
        Returns number of sessions deleted.
        """
        try:
            with self._session_factory() as db:
                result = db.execute(delete(SessionModel).where(SessionModel.username == username))
                db.commit()
        except SQLAlchemyError:
            logger.exception("Revoking sessions failed for %s", username)
            raise StorageError("Revoking sessions failed")
        return result.rowcount

    def cleanup_expired_sessions(self) -> int:
        """
        Remove expired sessions from database.

        Optional housekeeping; expired sessions are already rejected at
        validation time. Returns number of sessions cleaned up.
        """
        try:
            with self._session_factory() as db:
                result = db.execute(delete(SessionModel).where(SessionModel.expires_at <= self._clock()))
                db.commit()
        except SQLAlchemyError:
            logger.exception("Expired session cleanup failed")
            raise StorageError("Expired session cleanup failed")
        if result.rowcount:
            logger.info("Removed %d expired sessions", result.rowcount)
        return result.rowcount

    def _verify(self, password_hash: str, password: str) -> bool:
        try:
            return self._hasher.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    def _create_session(self, username: str) -> SessionModel:
        now = self._clock()
        session = SessionModel(
            token=generate_token(),
            username=username,
            created_at=now,
            expires_at=now + self._session_lifetime,
        )
        with self._session_factory() as db:
            db.add(session)
            db.commit()
        return session

    def _record_login(self, user: User, password: str, client_ip: str) -> None:
        """Login telemetry. Failures are logged, the login still succeeds."""
        values = {
            "last_login_ip": client_ip,
            "last_login_time": self._clock(),
            "login_count": User.login_count + 1,
        }
        # Upgrade hashes created with weaker parameters
        if self._hasher.check_needs_rehash(user.password_hash):
            values["password_hash"] = self._hasher.hash(password)

        try:
            with self._session_factory() as db:
                db.execute(update(User).where(User.id == user.id).values(**values))
                db.commit()
        except SQLAlchemyError:
            logger.warning("Could not record login for %s", user.username, exc_info=True)
