"""Unit tests for authentication functionality.

Tests cover:
- Password hashing and verification
- User creation
- Session creation, validation, and expiry
"""

from datetime import timedelta
from uuid import UUID

import pytest
from sqlalchemy.orm import Session as DBSession

from replyscope_core.domain.models import LocalUser, Session, utcnow
from replyscope_core.domain.services.auth import (
    AuthService,
    hash_password,
    verify_password,
)
from tests.factories import create_local_user, create_session


class TestPasswordHashing:
    """Tests for password hashing and verification."""

    def test_hash_is_not_plaintext(self):
        assert hash_password("my-secure-password") != "my-secure-password"

    def test_hashes_are_salted(self):
        """Hashing the same password twice produces different hashes."""
        assert hash_password("my-secure-password") != hash_password("my-secure-password")

    def test_verify_password_correct(self):
        hashed = hash_password("my-secure-password")

        assert verify_password("my-secure-password", hashed) is True

    def test_verify_password_incorrect(self):
        hashed = hash_password("my-secure-password")

        assert verify_password("wrong-password", hashed) is False

    def test_verify_empty_password(self):
        assert verify_password("", hash_password("my-secure-password")) is False

    def test_malformed_hash_is_mismatch(self):
        assert verify_password("password", "not-an-argon2-hash") is False

    def test_unicode_password(self):
        hashed = hash_password("pässwörd-日本語")

        assert verify_password("pässwörd-日本語", hashed) is True


class TestCreateUser:
    """Tests for AuthService.create_user."""

    def test_create_user(self, db_session: DBSession):
        user = AuthService(db_session).create_user("  owner  ", "long-enough")

        assert user.id is not None
        assert user.username == "owner"
        assert verify_password("long-enough", user.password_hash)

    @pytest.mark.parametrize(
        "username,password",
        [("", "long-enough"), ("   ", "long-enough"), ("owner", "short")],
    )
    def test_rejects_invalid_input(self, db_session, username, password):
        with pytest.raises(ValueError):
            AuthService(db_session).create_user(username, password)

    def test_rejects_taken_username(self, db_session):
        create_local_user(db_session, username="owner")

        with pytest.raises(ValueError, match="taken"):
            AuthService(db_session).create_user("owner", "long-enough")


class TestSessionService:
    """Tests for session creation and management."""

    def test_create_session(self, db_session: DBSession):
        user = create_local_user(db_session)

        session_id = AuthService(db_session).create_session(user.id, expire_hours=24)
        db_session.flush()

        UUID(session_id)
        session = db_session.get(Session, session_id)
        assert session.user_id == user.id
        expected = utcnow() + timedelta(hours=24)
        assert abs((session.expires_at - expected).total_seconds()) < 60

    def test_validate_session_valid(self, db_session):
        user = create_local_user(db_session)
        session = create_session(db_session, user)

        assert AuthService(db_session).validate_session(session.id).id == user.id

    def test_validate_session_expired(self, db_session):
        user = create_local_user(db_session)
        session = create_session(db_session, user, expires_in=timedelta(seconds=-1))

        assert AuthService(db_session).validate_session(session.id) is None

    @pytest.mark.parametrize("session_id", [None, "", "missing-session"])
    def test_validate_session_unknown(self, db_session, session_id):
        assert AuthService(db_session).validate_session(session_id) is None

    def test_invalidate_session(self, db_session):
        user = create_local_user(db_session)
        session_id = create_session(db_session, user).id
        service = AuthService(db_session)

        service.invalidate_session(session_id)

        assert service.validate_session(session_id) is None


class TestAuthenticateUser:
    """Tests for AuthService.authenticate_user."""

    def test_success_updates_last_login(self, db_session):
        create_local_user(db_session, username="owner", password="correct-password")

        user = AuthService(db_session).authenticate_user("owner", "correct-password")

        assert isinstance(user, LocalUser)
        assert user.last_login_at is not None

    def test_wrong_password(self, db_session):
        create_local_user(db_session, username="owner", password="correct-password")

        assert AuthService(db_session).authenticate_user("owner", "wrong") is None

    def test_unknown_user(self, db_session):
        assert AuthService(db_session).authenticate_user("nobody", "password") is None
