# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

WHY: Secure session management with automatic timeout and revocation.
Tokens are random, hashed in the database, and time-limited to one
working shift.

MULTI-TENANT: Sessions capture business_id at creation time. This
establishes the tenant context (AuthContext) for every authenticated
request without repeated lookups.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 8-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 30-minute idle timeout (SESSION_IDLE_TIMEOUT)
- Revocable on logout or when the user is deactivated
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..context import AuthContext
from ..extensions import db
from ..models import Business, SessionToken, User
from ..time_utils import utcnow
from . import auth_service


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=8)
SESSION_IDLE_TIMEOUT = timedelta(minutes=30)


@dataclass
class SessionContext:
    """Everything validate_session knows about an authenticated request."""
    user: User
    session: SessionToken
    business_id: int

    def auth_context(self, ip_address: str | None = None, user_agent: str | None = None) -> AuthContext:
        return AuthContext(
            user_id=self.user.id,
            business_id=self.business_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )


def generate_token() -> str:
    """64-character hex token (32 bytes of entropy); only ever sent to the client."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is enough for high-entropy tokens (unlike passwords)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    user: User,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a session for an authenticated user.

    Returns (session_record, plaintext_token).
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        business_id=user.business_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, plaintext_token


def login(
    email: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[User, str] | None:
    """Authenticate and open a session. Returns (user, token) or None on bad credentials."""
    user = auth_service.authenticate(email, password)
    if user is None:
        return None
    _, token = create_session(user, user_agent=user_agent, ip_address=ip_address)
    return user, token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a bearer token and return its SessionContext.

    Returns None if the token is unknown, revoked, past its absolute
    lifetime, idle for too long, or its user/business was deactivated.
    Idle and deactivation cases also revoke the session. Updates
    last_used_at on success.
    """
    if not token:
        return None

    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if session is None:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User account deactivated")
        db.session.commit()
        return None

    business = db.session.get(Business, session.business_id)
    if business is None or not business.is_active:
        _revoke(session, "Business deactivated")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, business_id=session.business_id)


def logout(token: str, reason: str = "User logout") -> bool:
    """Revoke a session. Returns False if the token was unknown or already revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if session is None:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", commit: bool = True) -> int:
    """
    Revoke every active session of a user. Returns how many were revoked.

    commit=False lets a caller fold this into its own transaction.
    """
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _revoke(session, reason)

    if commit:
        db.session.commit()
    return len(sessions)
