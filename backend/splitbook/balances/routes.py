"""Balance and statistics endpoints for the current user."""

from flask import Blueprint, current_app, jsonify
from splitbook.auth.tokens import token_required, current_user_id

from splitbook.core import compute_balances, compute_statistics
from splitbook.expenses.store import ExpenseStore

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/balance", methods=["GET"])
@token_required
def balance():
    """
    Net balances of the current user against every counterparty.

    Returns:
    [
        {"owes": true, "amount": 20.0, "user": {"_id": "...", "username": "bob"}},
        ...
    ]

    owes = true  -> the current user owes that user
    owes = false -> that user owes the current user
    Settled counterparties are omitted.
    """
    uid = current_user_id()
    expenses = ExpenseStore.find_visible(uid)

    balances = compute_balances(
        uid,
        expenses,
        quantum=current_app.config["BALANCE_QUANTUM"],
        drift_tolerance=current_app.config["PRECISION_DRIFT_TOLERANCE"],
    )
    return jsonify([b.to_dict() for b in balances])


@balances_bp.route("/stats", methods=["GET"])
@token_required
def stats():
    """
    Expense totals by category and by month (12 most recent months).

    Returns:
    {
        "expensesByCategory": [{"_id": "Food", "total": 100.0, "count": 2}],
        "monthlyExpenses": [{"_id": {"year": 2024, "month": 5}, "total": 120.0}]
    }
    """
    uid = current_user_id()
    statistics = compute_statistics(ExpenseStore.find_visible(uid))
    return jsonify(statistics.to_dict())
