# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/stoq/routes/auth.py
"""
Authentication API routes

- Self-signup creates a pending wholesale account
- Session management with bearer tokens
- Pending/rejected accounts can sign in; ordering is gated separately
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.auth_service import PasswordValidationError, SIGNUP_PROFILE_FIELDS
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, session, token) -> dict:
    return {
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
    }


@auth_bp.post("/signup")
def signup_route():
    """
    Create a customer account in approval_status "pending" and sign it in.

    Body: email, password, plus any business/profile fields.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return jsonify({"error": "email and password required"}), 400

    profile = {k: data[k] for k in SIGNUP_PROFILE_FIELDS if k in data}
    extra = sorted(set(data) - set(SIGNUP_PROFILE_FIELDS) - {"email", "password"})
    if extra:
        return jsonify({"error": f"Field not allowed: {', '.join(extra)}"}), 400

    try:
        user = auth_service.create_user(email=email, password=password, profile=profile)
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except Exception:
        current_app.logger.exception("Failed to create session after signup")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("New signup %s (user %s) awaiting approval", user.email, user.id)
    return jsonify({**_session_payload(user, session, token), "message": "Signup successful"}), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            current_app.logger.info("Failed login for %s from %s", email, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({**_session_payload(user, session, token), "message": "Login successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session token used for this request."""
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    session_service.revoke_session(token, reason="User logout")
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """Change password and sign out every other session."""
    data = request.get_json(silent=True) or {}
    current_password = data.get("current_password")
    new_password = data.get("new_password")
    if not current_password or not new_password:
        return jsonify({"error": "current_password and new_password required"}), 400

    try:
        auth_service.change_password(g.current_user, current_password, new_password)
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    session_service.revoke_all_user_sessions(g.current_user.id, reason="Password changed")
    session, token = session_service.create_session(
        user_id=g.current_user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({**_session_payload(g.current_user, session, token), "message": "Password changed"}), 200
