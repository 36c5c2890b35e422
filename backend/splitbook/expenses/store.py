"""
Expense Store - MongoDB persistence for expense records.

Stored document:
    {
        "description": str,
        "amount": Decimal128,
        "category": str,
        "paid_by": ObjectId,
        "participants": [ObjectId, ...],
        "date": datetime (aware UTC when written, naive UTC when read back)
    }
"""
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.decimal128 import Decimal128

from splitbook.errors import MalformedExpenseError
from splitbook.expenses.models import Expense, UserRef, normalize_category, to_decimal
from splitbook.extensions import db as mongo

logger = logging.getLogger(__name__)


def _object_id(value: Any, role: str) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise MalformedExpenseError(f"Invalid {role} id: {value!r}")
    return ObjectId(value)


class ExpenseStore:
    """Database operations for expenses."""

    COLLECTION = "expenses"

    @classmethod
    def _usernames(cls, user_ids: Iterable[ObjectId]) -> Dict[str, str]:
        """Resolve user ids to usernames with a single query."""
        ids = list(set(user_ids))
        if not ids:
            return {}
        cursor = mongo.users.find({"_id": {"$in": ids}}, {"username": 1})
        return {str(u["_id"]): u.get("username", "Unknown") for u in cursor}

    @classmethod
    def _to_expense(cls, doc: Dict[str, Any], usernames: Dict[str, str]) -> Expense:
        def ref(oid):
            uid = str(oid)
            return UserRef(id=uid, username=usernames.get(uid, "Unknown"))

        paid_by = doc.get("paid_by")
        return Expense(
            id=str(doc["_id"]),
            description=doc.get("description", ""),
            amount=to_decimal(doc.get("amount")),
            category=doc.get("category"),
            payer=ref(paid_by) if paid_by else None,
            participants=tuple(ref(p) for p in doc.get("participants") or []),
            timestamp=doc.get("date") or datetime.now(timezone.utc),
        )

    @classmethod
    def _hydrate(cls, docs: List[Dict[str, Any]]) -> List[Expense]:
        user_ids = []
        for doc in docs:
            if doc.get("paid_by"):
                user_ids.append(doc["paid_by"])
            user_ids.extend(doc.get("participants") or [])
        usernames = cls._usernames(user_ids)
        return [cls._to_expense(doc, usernames) for doc in docs]

    @classmethod
    def find_visible(cls, user_id: str) -> List[Expense]:
        """
        Get every expense the user paid for or participates in, newest first.

        Payer and participant ids are resolved to usernames.
        """
        oid = ObjectId(user_id)
        docs = list(mongo.expenses.find({
            "$or": [{"paid_by": oid}, {"participants": oid}]
        }).sort("date", -1))
        return cls._hydrate(docs)

    @classmethod
    def add(
        cls,
        description: str,
        amount: Any,
        paid_by: str,
        participants: List[str],
        category: Optional[str] = None,
    ) -> Expense:
        """
        Validate and store a new expense.

        Args:
            description: What the money was spent on
            amount: Positive amount (number or numeric string), at most
                MAX_AMOUNT with AMOUNT_PLACES decimal places
            paid_by: User ID of the payer
            participants: User IDs sharing the cost (may include the payer)
            category: Category label, "General" when blank

        Returns:
            The stored Expense

        Raises:
            MalformedExpenseError: a required field is missing or invalid,
                or a referenced user does not exist
        """
        if not description or not str(description).strip():
            raise MalformedExpenseError("Description is required")
        if not participants:
            raise MalformedExpenseError("Expense has no participants")

        payer_oid = _object_id(paid_by, "payer")
        participant_oids = []
        for p in participants:
            oid = _object_id(p, "participant")
            if oid not in participant_oids:
                participant_oids.append(oid)

        usernames = cls._usernames([payer_oid, *participant_oids])
        missing = [str(oid) for oid in [payer_oid, *participant_oids] if str(oid) not in usernames]
        if missing:
            raise MalformedExpenseError(f"Unknown user(s): {', '.join(sorted(set(missing)))}")

        # Building the model enforces the amount and participant invariants
        expense = Expense(
            description=str(description).strip(),
            amount=to_decimal(amount),
            category=normalize_category(category),
            payer=UserRef(id=str(payer_oid), username=usernames[str(payer_oid)]),
            participants=tuple(
                UserRef(id=str(oid), username=usernames[str(oid)]) for oid in participant_oids
            ),
            timestamp=datetime.now(timezone.utc),
        )

        doc = {
            "description": expense.description,
            "amount": Decimal128(expense.amount),
            "category": expense.category,
            "paid_by": payer_oid,
            "participants": participant_oids,
            "date": expense.timestamp,
        }
        result = mongo.expenses.insert_one(doc)
        logger.info(
            "Expense %s added: %s paid %s for %d participant(s)",
            result.inserted_id, expense.payer.username, expense.amount, len(participant_oids),
        )

        return replace(expense, id=str(result.inserted_id))

    @classmethod
    def categories_in_use(cls, user_id: str) -> List[str]:
        return sorted({e.category for e in cls.find_visible(user_id)})
