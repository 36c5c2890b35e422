"""
Payment models for Zarinpal settlements.

A payment record is created when a gateway redirect is issued and finalised
when the gateway sends the user back.
"""
from datetime import datetime
from typing import Optional, Dict, Any, List
from bson import ObjectId
from bson.decimal128 import Decimal128

from splitbook.expenses.models import to_decimal
from splitbook.extensions import db as mongo
from splitbook.utils.enums import PaymentStatus


def _serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc["_id"] = str(doc["_id"])
    doc["from"] = str(doc["from"])
    doc["to"] = str(doc["to"])
    doc["amount"] = float(to_decimal(doc["amount"]))
    for key in ("created_at", "updated_at"):
        if doc.get(key):
            doc[key] = doc[key].isoformat()
    return doc


class PaymentDB:
    """Database operations for settlement payments."""

    COLLECTION = "payments"

    @classmethod
    def create(cls, from_user_id: str, to_user_id: str, amount: Any, authority: str) -> str:
        """
        Record a pending payment.

        Args:
            from_user_id: User paying
            to_user_id: User being paid
            amount: Amount in balance currency
            authority: Gateway authority code

        Returns:
            MongoDB document ID
        """
        doc = {
            "from": ObjectId(from_user_id),
            "to": ObjectId(to_user_id),
            "amount": Decimal128(to_decimal(amount)),
            "authority": authority,
            "status": PaymentStatus.PENDING.value,
            "created_at": datetime.utcnow(),
            "updated_at": datetime.utcnow(),
        }

        result = mongo.payments.insert_one(doc)
        return str(result.inserted_id)

    @classmethod
    def find_by_authority(cls, authority: str) -> Optional[Dict]:
        doc = mongo.payments.find_one({"authority": authority})
        if doc:
            return _serialize(doc)
        return None

    @classmethod
    def update_status(cls, authority: str, status: PaymentStatus, extra_data: Dict = None) -> bool:
        """
        Update payment status.

        Only pending payments can change status.

        Returns:
            True if updated, False if not found or already final
        """
        update = {
            "$set": {
                "status": status.value,
                "updated_at": datetime.utcnow()
            }
        }

        if extra_data:
            update["$set"].update(extra_data)

        result = mongo.payments.update_one(
            {"authority": authority, "status": PaymentStatus.PENDING.value},
            update
        )
        return result.modified_count > 0

    @classmethod
    def find_by_user(cls, user_id: str, limit: int = 20) -> List[Dict]:
        """Payments the user made or received, newest first."""
        oid = ObjectId(user_id)
        cursor = mongo.payments.find(
            {"$or": [{"from": oid}, {"to": oid}]}
        ).sort("created_at", -1).limit(limit)

        return [_serialize(doc) for doc in cursor]
