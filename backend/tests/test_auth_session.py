"""
Accounts, sessions and the approval gate.
"""

from datetime import timedelta

import pytest

from stoq.models import SessionToken, User
from stoq.models.auth import APPROVAL_APPROVED, APPROVAL_PENDING, APPROVAL_REJECTED
from stoq.services import auth_service, session_service, user_service
from stoq.services.auth_service import PasswordValidationError
from stoq.services.user_service import UserError
from stoq.time_utils import utcnow
from stoq.validation import ValidationError
from conftest import PASSWORD


# =============================================================================
# Passwords and signup
# =============================================================================

@pytest.mark.parametrize("password", [
    "Sh0rt!",
    "alllowercase1!",
    "ALLUPPERCASE1!",
    "NoDigitsHere!",
    "NoSpecials123",
])
def test_weak_passwords_rejected(password):
    with pytest.raises(PasswordValidationError):
        auth_service.validate_password_strength(password)


def test_hash_and_verify():
    hashed = auth_service.hash_password(PASSWORD)
    assert hashed != PASSWORD
    assert auth_service.verify_password(PASSWORD, hashed)
    assert not auth_service.verify_password("Wrong123!", hashed)
    assert not auth_service.verify_password(PASSWORD, "not-a-bcrypt-hash")


def test_signup_starts_pending(db_session):
    user = auth_service.create_user(
        "  Owner@Shop.TEST ", PASSWORD, profile={"business_name": " Corner Cell ", "business_country": "Canada"}
    )

    assert user.email == "owner@shop.test"
    assert user.approval_status == APPROVAL_PENDING
    assert user.approval_status_updated_at is None
    assert user.business_name == "Corner Cell"
    assert not user.is_admin


def test_signup_rejects_duplicates_and_bad_input(db_session, customer):
    with pytest.raises(ValueError, match="already exists"):
        auth_service.create_user("BUYER@shop.test", PASSWORD)
    with pytest.raises(ValueError, match="valid email"):
        auth_service.create_user("not-an-email", PASSWORD)
    with pytest.raises(ValueError, match="Field not allowed"):
        auth_service.create_user("new2@shop.test", PASSWORD, profile={"role": "admin"})


def test_admin_accounts_start_approved(db_session):
    admin = auth_service.create_user("ops@stoq.test", PASSWORD, role="admin")
    assert admin.approval_status == APPROVAL_APPROVED
    assert admin.approval_status_updated_at is not None


def test_login_is_case_insensitive(customer):
    user = auth_service.authenticate("Buyer@Shop.Test", PASSWORD)
    assert user is not None
    assert user.last_login_at is not None
    assert auth_service.authenticate("buyer@shop.test", "Wrong123!") is None


def test_pending_users_can_still_sign_in(pending_customer):
    assert auth_service.authenticate(pending_customer.email, PASSWORD) is not None


def test_inactive_users_cannot_sign_in(db_session, customer):
    customer.is_active = False
    db_session.commit()
    assert auth_service.authenticate(customer.email, PASSWORD) is None


def test_change_password(db_session, customer):
    with pytest.raises(ValueError):
        auth_service.change_password(customer, "Wrong123!", "Another123!")

    auth_service.change_password(customer, PASSWORD, "Another123!")
    assert auth_service.authenticate(customer.email, "Another123!") is not None


# =============================================================================
# Sessions
# =============================================================================

def test_session_round_trip(customer):
    session, token = session_service.create_session(customer.id, user_agent="pytest", ip_address="127.0.0.1")

    assert session.token_hash == session_service.hash_token(token)
    assert session.token_hash != token

    ctx = session_service.validate_session(token)
    assert ctx.user.id == customer.id
    assert ctx.session.id == session.id


def test_unknown_token_is_invalid(db_session):
    assert session_service.validate_session("f" * 64) is None


def test_idle_session_is_revoked(db_session, customer):
    session, token = session_service.create_session(customer.id)
    session.last_used_at = utcnow() - timedelta(hours=3)
    db_session.commit()

    assert session_service.validate_session(token) is None
    assert db_session.get(SessionToken, session.id).revoked_reason == "Idle timeout"


def test_expired_session_is_invalid(db_session, customer):
    session, token = session_service.create_session(customer.id)
    session.expires_at = utcnow() - timedelta(minutes=1)
    db_session.commit()

    assert session_service.validate_session(token) is None


def test_logout_revokes_token(customer):
    _, token = session_service.create_session(customer.id)
    assert session_service.revoke_session(token)
    assert session_service.validate_session(token) is None
    assert not session_service.revoke_session(token)


def test_cleanup_removes_old_dead_sessions(db_session, customer):
    old, _ = session_service.create_session(customer.id)
    old.created_at = utcnow() - timedelta(days=40)
    old.expires_at = utcnow() - timedelta(days=39)
    _, live_token = session_service.create_session(customer.id)
    db_session.commit()

    assert session_service.cleanup_expired_sessions() == 1
    assert session_service.validate_session(live_token) is not None


def test_deactivated_users_lose_sessions(admin_user, customer):
    _, first = session_service.create_session(customer.id)
    _, second = session_service.create_session(customer.id)

    user_service.set_active(customer.id, False, admin_user)

    assert session_service.validate_session(first) is None
    assert session_service.validate_session(second) is None
    with pytest.raises(ValueError):
        session_service.create_session(customer.id)


# =============================================================================
# Approval and profiles
# =============================================================================

def test_admin_approves_and_can_reverse(admin_user, pending_customer):
    user = user_service.update_approval_status(pending_customer.id, APPROVAL_APPROVED, admin_user)
    assert user.is_approved
    assert user.approval_status_updated_at is not None

    user = user_service.update_approval_status(pending_customer.id, APPROVAL_REJECTED, admin_user)
    assert user.approval_status == APPROVAL_REJECTED


def test_approval_requires_admin_and_known_status(admin_user, customer, pending_customer):
    with pytest.raises(UserError, match="Only admins"):
        user_service.update_approval_status(pending_customer.id, APPROVAL_APPROVED, customer)
    with pytest.raises(UserError):
        user_service.update_approval_status(pending_customer.id, "maybe", admin_user)
    with pytest.raises(UserError, match="not found"):
        user_service.update_approval_status(424242, APPROVAL_APPROVED, admin_user)


def test_admin_cannot_deactivate_self(admin_user):
    with pytest.raises(UserError):
        user_service.set_active(admin_user.id, False, admin_user)


def test_profile_update(db_session, customer):
    user = user_service.update_profile(customer.id, {"business_years": 4, "phone": "", "first_name": "Dana"})
    assert user.business_years == 4
    assert user.phone is None
    assert user.first_name == "Dana"

    with pytest.raises(ValidationError):
        user_service.update_profile(customer.id, {"business_years": -2})
    with pytest.raises(ValidationError, match="Field not allowed"):
        user_service.update_profile(customer.id, {"approval_status": "approved"})


def test_list_users_filters(admin_user, customer, pending_customer):
    pending = user_service.list_users(approval_status=APPROVAL_PENDING)
    assert [u["email"] for u in pending["users"]] == [pending_customer.email]

    found = user_service.list_users(search="phone shop")
    assert [u["email"] for u in found["users"]] == [customer.email]

    paged = user_service.list_users(page=1, per_page=2)
    assert paged["pagination"]["total"] == 3

    with pytest.raises(ValidationError):
        user_service.list_users(approval_status="banned")


def test_user_rows_are_never_hard_deleted(admin_user, customer, db_session):
    user_service.set_active(customer.id, False, admin_user)
    assert db_session.get(User, customer.id) is not None
