"""JWT access tokens for the API (HS256, signed with JWT_SECRET_KEY)."""
from datetime import datetime, timezone
from functools import wraps

import jwt
from flask import current_app, g, jsonify, request

ALGORITHM = "HS256"


def generate_token(user_id: str, username: str = None) -> str:
    """Generate an access token identifying the user."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "username": username,
        "iat": now,
        "exp": now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"],
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET_KEY"], algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    return jwt.decode(token, current_app.config["JWT_SECRET_KEY"], algorithms=[ALGORITHM])


def token_required(view):
    """
    Require a valid ``Authorization: Bearer <token>`` header.

    401 when the token is missing, 403 when it is invalid or expired.
    The user id is available through ``current_user_id()``.
    """
    @wraps(view)
    def wrapper(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        parts = auth_header.split(" ")
        if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
            return jsonify({"message": "Authentication required"}), 401

        try:
            payload = decode_token(parts[1])
        except jwt.ExpiredSignatureError:
            return jsonify({"message": "Token expired"}), 403
        except jwt.InvalidTokenError:
            return jsonify({"message": "Invalid token"}), 403

        if not payload.get("sub"):
            return jsonify({"message": "Invalid token"}), 403

        g.user_id = payload["sub"]
        return view(*args, **kwargs)

    return wrapper


def current_user_id() -> str:
    """Id of the user authenticated by ``token_required``."""
    return g.user_id
