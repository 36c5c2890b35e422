# splitbook/expenses/routes.py

import logging

from flask import Blueprint, request, jsonify
from splitbook.auth.tokens import token_required, current_user_id

from splitbook.errors import MalformedExpenseError
from splitbook.expenses.models import DEFAULT_CATEGORY
from splitbook.expenses.store import ExpenseStore

logger = logging.getLogger(__name__)

expenses_bp = Blueprint("expenses", __name__)

DEFAULT_CATEGORIES = [
    DEFAULT_CATEGORY,
    "Food",
    "Groceries",
    "Transport",
    "Travel",
    "Accommodation",
    "Entertainment",
    "Utilities",
    "Shopping",
    "Health",
]


@expenses_bp.route("/expenses", methods=["POST"])
@token_required
def add_expense():
    """
    Add a shared expense.

    Request body:
    {
        "description": "Dinner",
        "amount": 100.00,
        "category": "Food",        // optional, defaults to "General"
        "paidBy": "<user id>",
        "participants": ["<user id>", ...]
    }
    """
    data = request.get_json(silent=True) or {}

    description = data.get("description")
    amount = data.get("amount")
    paid_by = data.get("paidBy")
    participants = data.get("participants")

    if not description or amount is None or not paid_by or not participants:
        return jsonify({"message": "Please provide all required fields."}), 400

    if not isinstance(participants, list):
        return jsonify({"message": "Participants must be a list of user ids."}), 400

    try:
        expense = ExpenseStore.add(
            description=description,
            amount=amount,
            paid_by=paid_by,
            participants=participants,
            category=data.get("category"),
        )
    except MalformedExpenseError as e:
        return jsonify({"message": str(e)}), 400

    return jsonify({"message": "Expense added successfully", "expense": expense.to_dict()}), 201


@expenses_bp.route("/expenses", methods=["GET"])
@token_required
def list_expenses():
    """Expenses the current user paid for or participates in, newest first."""
    uid = current_user_id()
    expenses = ExpenseStore.find_visible(uid)
    return jsonify([e.to_dict() for e in expenses])


@expenses_bp.route("/categories", methods=["GET"])
@token_required
def list_categories():
    """Default categories followed by any other category already in use."""
    uid = current_user_id()
    in_use = ExpenseStore.categories_in_use(uid)
    categories = DEFAULT_CATEGORIES + [c for c in in_use if c not in DEFAULT_CATEGORIES]
    return jsonify(categories)
