from __future__ import annotations

from ..extensions import db
from stoq.time_utils import to_utc_z


ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)

APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"
APPROVAL_STATUSES = (APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED)


class User(db.Model):
    """
    Storefront account plus the business profile attached to it.

    WHY: A wholesale buyer must be approved by an admin before ordering.
    The same row carries the business block printed on invoices, so the
    profile is not split into its own table.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role_approval", "role", "approval_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)

    # Admin gate for placing orders
    approval_status = db.Column(db.String(16), nullable=False, default=APPROVAL_PENDING, index=True)
    approval_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Personal details
    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    # Business details
    business_name = db.Column(db.String(255), nullable=True)
    business_address = db.Column(db.String(512), nullable=True)
    business_city = db.Column(db.String(128), nullable=True)
    business_state = db.Column(db.String(128), nullable=True)
    business_country = db.Column(db.String(64), nullable=True)
    business_years = db.Column(db.Integer, nullable=True)
    business_website = db.Column(db.String(255), nullable=True)
    business_email = db.Column(db.String(255), nullable=True)

    # Default addresses copied onto new orders
    shipping_address = db.Column(db.String(512), nullable=True)
    billing_address = db.Column(db.String(512), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_approved(self) -> bool:
        return self.approval_status == APPROVAL_APPROVED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "approval_status": self.approval_status,
            "approval_status_updated_at": to_utc_z(self.approval_status_updated_at),
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "business_name": self.business_name,
            "business_address": self.business_address,
            "business_city": self.business_city,
            "business_state": self.business_state,
            "business_country": self.business_country,
            "business_years": self.business_years,
            "business_website": self.business_website,
            "business_email": self.business_email,
            "shipping_address": self.shipping_address,
            "billing_address": self.billing_address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer session tokens.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - 24-hour absolute timeout
    - 2-hour idle timeout
    - Revocable on logout
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
        }
