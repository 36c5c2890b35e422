"""Expense models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional, Tuple

from splitbook.errors import MalformedExpenseError

DEFAULT_CATEGORY = "General"

# Largest accepted amount and finest accepted fraction. Together at most 19
# significant digits, well inside Decimal128 and the engine's precision.
MAX_AMOUNT = Decimal("1E+12")
AMOUNT_PLACES = 6
AMOUNT_STEP = Decimal(1).scaleb(-AMOUNT_PLACES)

AMOUNT_CONTEXT = Context(prec=34, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    """
    Convert a stored or submitted amount to Decimal.

    Accepts Decimal, Decimal128 (anything with ``to_decimal``), int, float and
    numeric strings. Floats go through ``str`` so 0.1 stays 0.1.
    """
    if isinstance(value, bool):
        raise MalformedExpenseError(f"Amount must be a number, got {value!r}")
    if isinstance(value, Decimal):
        return value
    if hasattr(value, "to_decimal"):
        return value.to_decimal()
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, TypeError):
        raise MalformedExpenseError(f"Amount must be a number, got {value!r}")


def check_amount(amount: Decimal, expense_id: Optional[str] = None) -> Decimal:
    """Reject amounts that are not positive, too large or too finely divided."""
    if not amount.is_finite() or amount <= 0:
        raise MalformedExpenseError("Amount must be a positive number", expense_id)
    if amount > MAX_AMOUNT:
        raise MalformedExpenseError(f"Amount must not exceed {MAX_AMOUNT:f}", expense_id)
    if amount.quantize(AMOUNT_STEP, context=AMOUNT_CONTEXT) != amount:
        raise MalformedExpenseError(
            f"Amount must have at most {AMOUNT_PLACES} decimal places", expense_id
        )
    return amount


def as_utc(value: datetime) -> datetime:
    """Timestamps are aware UTC; naive values (as read back from MongoDB) are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_category(category: Optional[str]) -> str:
    if category is None or not str(category).strip():
        return DEFAULT_CATEGORY
    return str(category).strip()


@dataclass(frozen=True)
class UserRef:
    """A payer or participant expanded to its display name."""
    id: str
    username: str = "Unknown"

    def to_dict(self) -> Dict[str, str]:
        return {"_id": self.id, "username": self.username}


@dataclass(frozen=True)
class Expense:
    """
    A shared expense record.

    Construction enforces the creation invariants: a payer, at least one
    participant and a positive amount. Participants are de-duplicated by id
    keeping the first occurrence.
    """
    description: str
    amount: Decimal
    payer: UserRef
    participants: Tuple[UserRef, ...]
    category: str = DEFAULT_CATEGORY
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[str] = None

    def __post_init__(self):
        amount = check_amount(to_decimal(self.amount), self.id)
        if self.payer is None or not self.payer.id:
            raise MalformedExpenseError("Expense has no payer", self.id)

        unique = []
        seen = set()
        for participant in self.participants or ():
            if participant.id not in seen:
                seen.add(participant.id)
                unique.append(participant)
        if not unique:
            raise MalformedExpenseError("Expense has no participants", self.id)

        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "participants", tuple(unique))
        object.__setattr__(self, "category", normalize_category(self.category))
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))

    @property
    def participant_ids(self) -> Tuple[str, ...]:
        return tuple(p.id for p in self.participants)

    def involves(self, user_id: str) -> bool:
        """True if the user paid for or shares this expense."""
        return self.payer.id == user_id or user_id in self.participant_ids

    def users(self) -> Iterable[UserRef]:
        yield self.payer
        yield from self.participants

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "description": self.description,
            "amount": float(self.amount),
            "category": self.category,
            "paidBy": self.payer.to_dict(),
            "participants": [p.to_dict() for p in self.participants],
            "date": self.timestamp.isoformat(),
        }
