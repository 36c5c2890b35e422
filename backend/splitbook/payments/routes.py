"""
Payment routes for settling balances through Zarinpal.

Endpoints:
- POST /payments - Request a gateway redirect for a debt the user owes
- GET /payments/verify - Finalise a payment after the gateway redirect
- GET /payments - The user's payments, newest first
"""
import logging

from flask import Blueprint, current_app, request, jsonify
from splitbook.auth.tokens import token_required, current_user_id
from bson import ObjectId

from splitbook.core import compute_balances
from splitbook.errors import MalformedExpenseError
from splitbook.expenses.models import check_amount, to_decimal
from splitbook.expenses.store import ExpenseStore
from splitbook.extensions import db as mongo
from splitbook.payments.models import PaymentDB
from splitbook.payments.services.zarinpal import ZarinpalService
from splitbook.utils.enums import PaymentStatus

logger = logging.getLogger(__name__)

bp = Blueprint("payments", __name__)


def _amount_owed(user_id: str, to_user_id: str):
    """Net amount user_id owes to_user_id, or None if they owe nothing."""
    balances = compute_balances(
        user_id,
        ExpenseStore.find_visible(user_id),
        quantum=current_app.config["BALANCE_QUANTUM"],
        drift_tolerance=current_app.config["PRECISION_DRIFT_TOLERANCE"],
    )
    for balance in balances:
        if balance.counterparty.id == to_user_id and balance.owes:
            return balance.amount
    return None


def _already_processed(authority: str):
    return jsonify({"message": "Payment already processed", "payment": PaymentDB.find_by_authority(authority)})


@bp.route("/", methods=["POST"])
@token_required
def create_payment():
    """
    Request a payment redirect settling (part of) a debt.

    Request body:
    {
        "toUserId": "...",
        "amount": 20.00
    }

    Response:
    {
        "message": "Payment initiated",
        "paymentUrl": "https://sandbox.zarinpal.com/pg/StartPay/A000..."
    }
    """
    from_user_id = current_user_id()
    data = request.get_json(silent=True) or {}

    to_user_id = data.get("toUserId")
    if not to_user_id or not ObjectId.is_valid(str(to_user_id)):
        return jsonify({"message": "A valid toUserId is required"}), 400
    if to_user_id == from_user_id:
        return jsonify({"message": "Cannot pay yourself"}), 400

    try:
        amount = check_amount(to_decimal(data.get("amount")))
    except MalformedExpenseError:
        return jsonify({"message": "Invalid amount"}), 400

    if not mongo.users.find_one({"_id": ObjectId(to_user_id)}, {"_id": 1}):
        return jsonify({"message": "User not found"}), 404

    owed = _amount_owed(from_user_id, to_user_id)
    if owed is None:
        return jsonify({"message": "You do not owe this user"}), 400
    if amount > owed:
        return jsonify({"message": f"Amount exceeds what you owe ({owed})"}), 400

    logger.info("Initiating payment: %s from %s to %s", amount, from_user_id, to_user_id)

    gateway = ZarinpalService.from_config(current_app.config)
    response = gateway.request_redirect(from_user_id, to_user_id, amount)

    if "error" in response:
        error = response["error"]
        if error.get("type") == "gateway_error":
            return jsonify({
                "message": "Could not initiate payment with Zarinpal",
                "details": error.get("details")
            }), 400
        return jsonify({"message": "Server error while initiating payment"}), 500

    authority = response["data"]["authority"]
    PaymentDB.create(from_user_id, to_user_id, amount, authority)
    logger.info("Payment record saved with authority: %s", authority)

    return jsonify({"message": "Payment initiated", "paymentUrl": response["data"]["paymentUrl"]}), 201


@bp.route("/verify", methods=["GET"])
@token_required
def verify_payment():
    """
    Finalise a payment after the gateway sends the user back.

    Query params (as appended by the gateway to the callback URL):
    - Authority: gateway authority code
    - Status: "OK" if the user completed the payment, "NOK" otherwise
    """
    user_id = current_user_id()
    authority = request.args.get("Authority")
    status = request.args.get("Status")

    if not authority:
        return jsonify({"message": "Authority is required"}), 400

    payment = PaymentDB.find_by_authority(authority)
    if not payment or payment["from"] != user_id:
        return jsonify({"message": "Payment not found"}), 404

    if payment["status"] != PaymentStatus.PENDING.value:
        return _already_processed(authority)

    if status != "OK":
        if not PaymentDB.update_status(authority, PaymentStatus.FAILED):
            return _already_processed(authority)
        return jsonify({"message": "Payment was cancelled", "payment": PaymentDB.find_by_authority(authority)}), 400

    gateway = ZarinpalService.from_config(current_app.config)
    result = gateway.verify(authority, payment["amount"])

    if "error" in result:
        logger.error("Zarinpal verification failed for %s: %s", authority, result["error"])
        if not PaymentDB.update_status(authority, PaymentStatus.FAILED):
            return _already_processed(authority)
        return jsonify({
            "message": "Payment verification failed",
            "payment": PaymentDB.find_by_authority(authority)
        }), 400

    if not PaymentDB.update_status(authority, PaymentStatus.COMPLETED, {"ref_id": result["data"].get("ref_id")}):
        # Another verify request finalised it first
        return _already_processed(authority)
    logger.info("Payment %s completed, ref_id %s", authority, result["data"].get("ref_id"))

    return jsonify({"message": "Payment completed", "payment": PaymentDB.find_by_authority(authority)})


@bp.route("/", methods=["GET"])
@token_required
def list_payments():
    user_id = current_user_id()
    limit = min(request.args.get("limit", 20, type=int), 100)
    return jsonify(PaymentDB.find_by_user(user_id, limit=limit))
