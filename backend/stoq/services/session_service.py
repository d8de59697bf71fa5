# Overview: Service-layer operations for session tokens; issue, validate and revoke.

"""
Bearer sessions for storefront and admin clients.

The client holds a random 64-hex-char token; the sessions table only ever
sees its SHA-256 digest. A session dies when any of these happens first:
ABSOLUTE_TIMEOUT after sign-in, IDLE_TIMEOUT without a request, explicit
revocation, or the account being deactivated.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from stoq.time_utils import utcnow


ABSOLUTE_TIMEOUT = timedelta(hours=24)
IDLE_TIMEOUT = timedelta(hours=2)

# Dead rows are kept this long for support questions before cleanup
RETENTION = timedelta(days=30)


@dataclass
class SessionContext:
    """Validated session: the user plus the token row it came from."""
    user: User
    session: SessionToken


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens carry 256 bits of entropy, so a fast digest is enough here
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _live_row(token: str):
    return (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.is_revoked.is_(False))
        .first()
    )


def create_session(user_id: int, user_agent: str | None = None, ip_address: str | None = None):
    """
    Sign a user in.

    Returns (session_row, token). Only the row is persisted; the token is
    handed to the client once.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User account is deactivated")

    token = generate_token()
    issued = utcnow()
    row = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=issued,
        last_used_at=issued,
        expires_at=issued + ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(row)
    db.session.commit()
    return row, token


def _revoke(session: SessionToken, reason: str, now=None) -> None:
    session.is_revoked = True
    session.revoked_at = now or utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token, or None if it can no longer be used.

    Idle sessions and sessions of deactivated accounts are revoked on the
    way out; a good session has its last_used_at bumped.
    """
    row = _live_row(token)
    if row is None:
        return None

    now = utcnow()
    if now > row.expires_at:
        return None

    if now - row.last_used_at > IDLE_TIMEOUT:
        _revoke(row, "Idle timeout", now)
        db.session.commit()
        return None

    owner = row.user
    if owner is None or not owner.is_active:
        _revoke(row, "User account deactivated", now)
        db.session.commit()
        return None

    row.last_used_at = now
    db.session.commit()
    return SessionContext(user=owner, session=row)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """False when the token was unknown or already revoked."""
    row = _live_row(token)
    if row is None:
        return False
    _revoke(row, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    now = utcnow()
    rows = (
        db.session.query(SessionToken)
        .filter(SessionToken.user_id == user_id, SessionToken.is_revoked.is_(False))
        .all()
    )
    for row in rows:
        _revoke(row, reason, now)
    db.session.commit()
    return len(rows)


def cleanup_expired_sessions() -> int:
    """Hard-delete dead sessions older than RETENTION. Returns the row count."""
    now = utcnow()
    dead = db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True))
    count = (
        db.session.query(SessionToken)
        .filter(dead, SessionToken.created_at < now - RETENTION)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return count
