import logging

from flask import Blueprint, request, jsonify
from splitbook.auth.tokens import generate_token
from bcrypt import hashpw, gensalt, checkpw
from datetime import datetime
from pymongo.errors import DuplicateKeyError

from splitbook.extensions import db

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


def _credentials(data, fields):
    """The requested fields if every one is a non-empty string, else None."""
    values = [data.get(k) for k in fields]
    if not all(isinstance(v, str) and v for v in values):
        return None
    return values


def _public_user(user):
    return {
        "id": str(user["_id"]),
        "username": user["username"],
        "email": user["email"],
    }


@auth_bp.route("/register", methods=["POST"])
def register():
    data = request.get_json(silent=True) or {}

    credentials = _credentials(data, ("username", "email", "password"))
    if credentials is None:
        return jsonify({"message": "Please provide username, email and password."}), 400
    username, email, password = credentials

    if db.users.find_one({"$or": [{"username": username}, {"email": email}]}):
        return jsonify({"message": "Username or email already exists"}), 400

    user = {
        "username": username,
        "email": email,
        "password_hash": hashpw(password.encode(), gensalt(10)),
        "avatar": "",
        "created_at": datetime.utcnow(),
    }

    try:
        res = db.users.insert_one(user)
    except DuplicateKeyError:
        # Lost a race with a concurrent registration
        return jsonify({"message": "Username or email already exists"}), 400

    user["_id"] = res.inserted_id
    token = generate_token(res.inserted_id, user["username"])
    logger.info("Registered user %s", user["username"])

    return jsonify({
        "message": "User registered successfully",
        "token": token,
        "user": _public_user(user),
    }), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    credentials = _credentials(data, ("username", "password"))
    if credentials is None:
        return jsonify({"message": "Invalid credentials"}), 400
    username, password = credentials

    user = db.users.find_one({"username": username})

    if not user or not checkpw(password.encode(), user["password_hash"]):
        return jsonify({"message": "Invalid credentials"}), 400

    token = generate_token(user["_id"], user["username"])

    return jsonify({
        "message": "Login successful",
        "token": token,
        "user": _public_user(user),
    })
