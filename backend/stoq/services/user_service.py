# Overview: Service-layer operations for user profiles; approval gate, profile edits and admin listing.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import User
from ..models.auth import APPROVAL_STATUSES
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from stoq.time_utils import utcnow
from .session_service import revoke_all_user_sessions


PROFILE_POLICY = ModelValidationPolicy(
    writable_fields={
        "first_name", "last_name", "phone",
        "business_name", "business_address", "business_city", "business_state",
        "business_country", "business_years", "business_website", "business_email",
        "shipping_address", "billing_address",
    },
)


class UserError(Exception):
    """Raised for user administration errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def get_user(user_id: int) -> User | None:
    return db.session.query(User).filter_by(id=user_id).first()


def update_approval_status(user_id: int, status: str, actor: User) -> User:
    """Admin decision on a wholesale account. Any status may follow any other."""
    if not actor.is_admin:
        raise UserError("Only admins can change approval status")
    if status not in APPROVAL_STATUSES:
        raise UserError(
            "Valid status is required (pending, approved, or rejected)",
            details={"allowed": list(APPROVAL_STATUSES)},
        )

    user = get_user(user_id)
    if not user:
        raise UserError("User profile not found")

    previous = user.approval_status
    user.approval_status = status
    user.approval_status_updated_at = utcnow()
    db.session.commit()

    current_app.logger.info(
        "User %s approval %s -> %s by user %s", user.id, previous, status, actor.id
    )
    return user


def update_profile(user_id: int, patch: dict) -> User:
    """Partial profile update; only PROFILE_POLICY fields are writable."""
    user = get_user(user_id)
    if not user:
        raise UserError("User profile not found")

    clean = validate_payload(model=User, payload=patch, policy=PROFILE_POLICY, partial=True)
    if clean.get("business_years") is not None and clean["business_years"] < 0:
        raise ValidationError("business_years must be >= 0")

    for k, v in clean.items():
        setattr(user, k, v if v != "" else None)

    db.session.commit()
    return user


def set_active(user_id: int, is_active: bool, actor: User) -> User:
    if not actor.is_admin:
        raise UserError("Only admins can deactivate accounts")
    user = get_user(user_id)
    if not user:
        raise UserError("User profile not found")
    if user.id == actor.id and not is_active:
        raise UserError("You cannot deactivate your own account")

    user.is_active = is_active
    db.session.commit()
    if not is_active:
        revoke_all_user_sessions(user.id, reason="User account deactivated")
    return user


def list_users(
    search: str | None = None,
    approval_status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Admin user listing, newest signups first."""
    query = db.session.query(User)

    if approval_status and approval_status != "all":
        if approval_status not in APPROVAL_STATUSES:
            raise ValidationError(f"approval_status must be one of {', '.join(APPROVAL_STATUSES)}")
        query = query.filter(User.approval_status == approval_status)

    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        query = query.filter(or_(
            User.email.ilike(like),
            User.first_name.ilike(like),
            User.last_name.ilike(like),
            User.business_name.ilike(like),
        ))

    query = query.order_by(User.created_at.desc(), User.id.desc())

    if page is None:
        users = query.all()
        return {"users": [u.to_dict() for u in users], "count": len(users)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    users = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "users": [u.to_dict() for u in users],
        "count": len(users),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
