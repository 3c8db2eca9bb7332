from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..app import db
from ..models import User
from ..shared.rbac import issue_token, login_required

bp = Blueprint("auth", __name__, url_prefix="/auth")


def _user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "fullName": user.full_name,
        "role": user.role,
    }


@bp.post("/login")
def login():
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    if not email or not password:
        return jsonify({"message": "Email and password are required"}), 400
    user = User.query.filter(db.func.lower(User.email) == email).first()
    if not user or not user.check_password(password):
        current_app.logger.info("[AUTH] login failed email=%s", email)
        return jsonify({"message": "Invalid credentials"}), 401
    if not user.is_active:
        return jsonify({"message": "Account is not active"}), 403
    if user.password_needs_rehash():
        user.set_password(password)
        db.session.commit()
    current_app.logger.info("[AUTH] login user=%s", user.id)
    return jsonify({"token": issue_token(user), "user": _user_payload(user)})


@bp.get("/me")
@login_required
def me(current_user):
    return jsonify(_user_payload(current_user))
