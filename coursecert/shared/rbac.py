from functools import wraps

from flask import current_app, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..app import db
from ..models import User

TOKEN_SALT = "api-auth"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.secret_key, salt=TOKEN_SALT)


def issue_token(user: User) -> str:
    return _serializer().dumps({"id": user.id})


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _authenticate():
    """Return ``(user, None)`` or ``(None, error_response)``."""
    token = _bearer_token()
    if not token:
        return None, (jsonify({"message": "Authentication required"}), 401)
    try:
        payload = _serializer().loads(
            token, max_age=current_app.config["AUTH_TOKEN_MAX_AGE"]
        )
    except (BadSignature, SignatureExpired):
        return None, (jsonify({"message": "Invalid or expired token"}), 401)
    user_id = payload.get("id") if isinstance(payload, dict) else None
    user = db.session.get(User, user_id) if user_id else None
    if not user:
        return None, (jsonify({"message": "User not found"}), 401)
    if not user.is_active:
        return None, (jsonify({"message": "Account is not active"}), 403)
    return user, None


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user, error = _authenticate()
        if error:
            return error
        return fn(*args, **kwargs, current_user=user)

    return wrapper


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user, error = _authenticate()
        if error:
            return error
        if not user.is_admin:
            return jsonify({"message": "Unauthorized"}), 403
        return fn(*args, **kwargs, current_user=user)

    return wrapper


def can_manage_course(user: User, course) -> bool:
    """Admins manage every course; trainers only the ones they teach."""
    if user.is_admin:
        return True
    return user.role == "trainer" and course.instructor_id == user.id
