from flask import Blueprint, jsonify
from splitbook.auth.tokens import token_required, current_user_id
from bson import ObjectId
from splitbook.extensions import db as mongo

users_bp = Blueprint("users", __name__)

# Never leave the database
PRIVATE_FIELDS = {"password_hash": 0}


def _serialize(user):
    user["_id"] = str(user["_id"])
    if user.get("created_at"):
        user["created_at"] = user["created_at"].isoformat()
    return user


@users_bp.route("/", methods=["GET"])
@token_required
def list_users():
    """All registered users, for picking payers and participants."""
    users = mongo.users.find({}, PRIVATE_FIELDS).sort("username", 1)
    return jsonify([_serialize(u) for u in users])


@users_bp.route("/me", methods=["GET"])
@token_required
def me():
    uid = current_user_id()
    user = mongo.users.find_one({"_id": ObjectId(uid)}, PRIVATE_FIELDS)

    if not user:
        return jsonify({"message": "User not found"}), 404

    return jsonify(_serialize(user))
