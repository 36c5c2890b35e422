"""
Balance Engine - Net pairwise debts between users.

Responsibilities:
- Accumulate per-expense shares into a pairwise ledger
- Keep the ledger anti-symmetric while accumulating
- Collapse the ledger into oriented, positive net balances for one user

Rounding policy:
    Shares are exact Decimal quotients (28 significant digits) and are never
    quantised while accumulating. Each pair's net is quantised once, at the
    output boundary, to ``quantum`` with ROUND_HALF_UP in a 60 digit context.
    ROUND_HALF_UP rounds half away from zero, so a pair rounds to the same
    magnitude from both sides. A pair whose rounded net is zero is settled and
    omitted. Amounts are bounded by ``MAX_AMOUNT`` and ``AMOUNT_PLACES``
    (see splitbook.expenses.models), so shares and nets stay well inside both
    contexts.
"""
import logging
import warnings
from collections import defaultdict
from dataclasses import dataclass
from decimal import Context, Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from splitbook.errors import MalformedExpenseError, PrecisionDriftWarning
from splitbook.expenses.models import Expense, UserRef, check_amount

logger = logging.getLogger(__name__)

DEFAULT_QUANTUM = Decimal("0.01")
DEFAULT_DRIFT_TOLERANCE = Decimal("0.000001")

# Private context so callers' decimal settings never change the result.
SHARE_CONTEXT = Context(prec=28, rounding=ROUND_HALF_UP)
# Wide enough to quantise any accumulated net of bounded amounts to a fine quantum.
OUTPUT_CONTEXT = Context(prec=60, rounding=ROUND_HALF_UP)

ZERO = Decimal("0")


@dataclass(frozen=True)
class NetBalance:
    """
    Net standing of the requesting user against one counterparty.

    ``owes`` is True when the requesting user owes the counterparty.
    ``amount`` is always strictly positive.
    """
    counterparty: UserRef
    owes: bool
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owes": self.owes,
            "amount": float(self.amount),
            "user": self.counterparty.to_dict(),
        }


class PairLedger:
    """
    Signed amounts keyed by ordered (debtor_id, creditor_id) pairs.

    A positive ``ledger[(a, b)]`` means a owes b. Every write updates both
    orientations, so ``ledger[(a, b)] == -ledger[(b, a)]`` at all times.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        self._counterparties: Dict[str, set] = defaultdict(set)

    def record(self, debtor_id: str, creditor_id: str, amount: Decimal) -> None:
        if debtor_id == creditor_id:
            # Self-debt carries no meaning
            return
        self._entries[(debtor_id, creditor_id)] = SHARE_CONTEXT.add(
            self._entries[(debtor_id, creditor_id)], amount
        )
        self._entries[(creditor_id, debtor_id)] = SHARE_CONTEXT.subtract(
            self._entries[(creditor_id, debtor_id)], amount
        )
        self._counterparties[debtor_id].add(creditor_id)
        self._counterparties[creditor_id].add(debtor_id)

    def net(self, user_id: str, counterparty_id: str) -> Decimal:
        """Signed amount user owes counterparty (negative: counterparty owes user)."""
        return self._entries.get((user_id, counterparty_id), ZERO)

    def counterparties(self, user_id: str) -> List[str]:
        return sorted(self._counterparties.get(user_id, ()))

    def __len__(self):
        return len(self._entries)


class UserDirectory:
    """Id -> UserRef lookup built once from an expense set."""

    def __init__(self, expenses: Iterable[Expense] = ()):
        self._users: Dict[str, UserRef] = {}
        for expense in expenses:
            for user in expense.users():
                self._users.setdefault(user.id, user)

    def get(self, user_id: str) -> UserRef:
        return self._users.get(user_id) or UserRef(id=user_id)


def validate_expense(expense: Expense) -> None:
    """Re-check creation invariants; the engine refuses partial results."""
    if expense.payer is None or not expense.payer.id:
        raise MalformedExpenseError("Expense has no payer", expense.id)
    if not expense.participants:
        raise MalformedExpenseError("Expense has no participants", expense.id)
    if not isinstance(expense.amount, Decimal):
        raise MalformedExpenseError("Amount must be a number", expense.id)
    check_amount(expense.amount, expense.id)


def build_ledger(expenses: Iterable[Expense]) -> Tuple[PairLedger, Decimal]:
    """
    Accumulate shares for every expense into a fresh ledger.

    Returns:
        Tuple of (ledger, accumulated residue of share * N against amount)
    """
    ledger = PairLedger()
    drift = ZERO

    for expense in expenses:
        validate_expense(expense)

        count = len(expense.participants)
        share = SHARE_CONTEXT.divide(expense.amount, Decimal(count))
        drift = SHARE_CONTEXT.add(
            drift, abs(SHARE_CONTEXT.subtract(expense.amount, SHARE_CONTEXT.multiply(share, Decimal(count))))
        )

        payer_id = expense.payer.id
        for participant in expense.participants:
            if participant.id == payer_id:
                continue
            ledger.record(participant.id, payer_id, share)

    return ledger, drift


def compute_balances(
    requesting_user_id: str,
    expenses: Iterable[Expense],
    quantum: Decimal = DEFAULT_QUANTUM,
    drift_tolerance: Optional[Decimal] = DEFAULT_DRIFT_TOLERANCE,
) -> List[NetBalance]:
    """
    Net pairwise balances of one user against everyone they share expenses with.

    Expenses the user neither paid for nor participates in are ignored.

    Args:
        requesting_user_id: User whose balances are computed
        expenses: The user's visible expenses
        quantum: Currency step used to round each net at the output boundary
        drift_tolerance: Residue above which a PrecisionDriftWarning is emitted

    Returns:
        One NetBalance per counterparty with non-zero standing, ordered by
        counterparty username then id

    Raises:
        MalformedExpenseError: an expense breaks the creation invariants
    """
    visible = [e for e in expenses if e.involves(requesting_user_id)]

    ledger, drift = build_ledger(visible)
    if drift_tolerance is not None and drift > drift_tolerance:
        logger.warning(
            "Share residue %s exceeds tolerance %s for user %s",
            drift, drift_tolerance, requesting_user_id,
        )
        warnings.warn(
            f"Accumulated share residue {drift} exceeds tolerance {drift_tolerance}",
            PrecisionDriftWarning,
            stacklevel=2,
        )

    directory = UserDirectory(visible)
    balances = []

    for counterparty_id in ledger.counterparties(requesting_user_id):
        net = ledger.net(requesting_user_id, counterparty_id).quantize(
            quantum, rounding=ROUND_HALF_UP, context=OUTPUT_CONTEXT
        )
        if net == 0:
            continue
        balances.append(NetBalance(
            counterparty=directory.get(counterparty_id),
            owes=net > 0,
            amount=abs(net),
        ))

    balances.sort(key=lambda b: (b.counterparty.username, b.counterparty.id))
    logger.debug(
        "Computed %d balance(s) for user %s from %d expense(s)",
        len(balances), requesting_user_id, len(visible),
    )
    return balances
