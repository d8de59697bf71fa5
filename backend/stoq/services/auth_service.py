# Overview: Service-layer operations for auth; password hashing, signup and credential checks.

"""
Accounts and credentials.

Wholesale prices are only for known buyers, so every customer signs up
into approval_status "pending" and waits for an admin. Passwords are
bcrypt hashed (12 rounds) after a strength check; sessions live in
session_service.
"""

import re

import bcrypt

from ..extensions import db
from ..models import User
from ..models.auth import ROLE_USER, ROLE_ADMIN, APPROVAL_PENDING, APPROVAL_APPROVED
from stoq.time_utils import utcnow


BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 8

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"\d"), "Password must contain at least one digit"),
    (re.compile(r"[!@#$%^&*(),.'\":{}|<>]"), "Password must contain at least one special character"),
)

# Profile fields a customer may set at signup
SIGNUP_PROFILE_FIELDS = (
    "first_name", "last_name", "phone",
    "business_name", "business_address", "business_city", "business_state",
    "business_country", "business_years", "business_website", "business_email",
    "shipping_address", "billing_address",
)


class PasswordValidationError(Exception):
    """A new password is too weak."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    for pattern, message in PASSWORD_RULES:
        if not pattern.search(password):
            raise PasswordValidationError(message)


def hash_password(password: str) -> str:
    """Strength-check, then bcrypt. Returns the hash as text for the users table."""
    validate_password_strength(password)
    digest = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return digest.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    # checkpw compares in constant time; a malformed stored hash is a mismatch
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def create_user(
    email: str,
    password: str,
    profile: dict | None = None,
    role: str = ROLE_USER,
) -> User:
    """
    Create a new account with bcrypt password hashing.

    Customers start pending; admins are created approved (CLI only).

    Raises:
        ValueError: If the email is invalid or already registered
        PasswordValidationError: If password doesn't meet requirements
    """
    email = normalize_email(email)
    if not EMAIL_PATTERN.match(email):
        raise ValueError("A valid email address is required")

    existing = db.session.query(User).filter(User.email == email).first()
    if existing:
        raise ValueError("An account with this email already exists")

    password_hash = hash_password(password)

    profile = profile or {}
    unknown = sorted(set(profile) - set(SIGNUP_PROFILE_FIELDS))
    if unknown:
        raise ValueError(f"Field not allowed: {', '.join(unknown)}")

    user = User(
        email=email,
        password_hash=password_hash,
        role=role,
        approval_status=APPROVAL_APPROVED if role == ROLE_ADMIN else APPROVAL_PENDING,
        approval_status_updated_at=utcnow() if role == ROLE_ADMIN else None,
        **{k: (v.strip() if isinstance(v, str) else v) for k, v in profile.items()},
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    The active user for these credentials (stamping last_login_at), else None.

    Pending and rejected customers can still sign in; the approval gate is
    applied when they try to order.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if user is None or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValueError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.session.commit()
