"""Authentication service for Replyscope.

Local users with Argon2 password hashes and server-side sessions. Enough to
give report admission an authenticated caller.
"""

import uuid
from datetime import timedelta
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy.orm import Session as DBSession

from replyscope_core.domain.models import LocalUser, Session, utcnow

# Password hasher configuration (OWASP recommendations)
_password_hasher = PasswordHasher(
    time_cost=3,
    memory_cost=65536,  # 64MB
    parallelism=4,
    hash_len=32,
    salt_len=16,
)

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    """Hash a password using Argon2."""
    return _password_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against its Argon2 hash.

    Malformed hashes count as a mismatch.
    """
    if not password:
        return False

    try:
        return _password_hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: DBSession):
        self.db = db

    def create_user(self, username: str, password: str) -> LocalUser:
        """Create a local user.

        Raises:
            ValueError: If the username is blank, the password too short or
                the username taken.
        """
        username = (username or "").strip()
        if not username:
            raise ValueError("username must not be empty")

        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        if self.db.query(LocalUser).filter_by(username=username).first() is not None:
            raise ValueError(f"username '{username}' is taken")

        user = LocalUser(
            username=username,
            password_hash=hash_password(password),
            created_at=utcnow(),
        )
        self.db.add(user)
        self.db.flush()
        return user

    def create_session(self, user_id: int, expire_hours: int = 24 * 7) -> str:
        """Create a new session for a user.

        Returns:
            The session ID (UUID string).
        """
        session_id = str(uuid.uuid4())
        now = utcnow()

        self.db.add(
            Session(
                id=session_id,
                user_id=user_id,
                created_at=now,
                expires_at=now + timedelta(hours=expire_hours),
            )
        )
        return session_id

    def validate_session(self, session_id: Optional[str]) -> Optional[LocalUser]:
        """Return the session's user, or None if missing or expired."""
        if not session_id:
            return None

        session = self.db.query(Session).filter_by(id=session_id).first()
        if session is None or session.expires_at < utcnow():
            return None

        return self.db.query(LocalUser).filter_by(id=session.user_id).first()

    def invalidate_session(self, session_id: str) -> None:
        """Delete a session."""
        self.db.query(Session).filter_by(id=session_id).delete()

    def authenticate_user(self, username: str, password: str) -> Optional[LocalUser]:
        """Authenticate a user by username and password.

        Returns:
            The LocalUser if authentication succeeds, None otherwise.
        """
        user = self.db.query(LocalUser).filter_by(username=username).first()

        if user is None or not verify_password(password, user.password_hash):
            return None

        user.last_login_at = utcnow()
        return user
