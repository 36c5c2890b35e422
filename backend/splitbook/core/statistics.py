"""Statistics aggregation over a user's visible expenses."""
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping

from splitbook.expenses.models import Expense

MONTH_LIMIT = 12


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    total: Decimal
    count: int


@dataclass(frozen=True)
class MonthTotal:
    year: int
    month: int
    total: Decimal


@dataclass(frozen=True)
class Statistics:
    """Raw totals only. Scaling for charts is left to the consumer."""
    by_category: Dict[str, CategoryTotal]
    by_month: List[MonthTotal]

    def to_dict(self) -> Dict[str, Any]:
        categories = sorted(self.by_category.values(), key=lambda c: (-c.total, c.category))
        return {
            "expensesByCategory": [
                {"_id": c.category, "total": float(c.total), "count": c.count}
                for c in categories
            ],
            "monthlyExpenses": [
                {"_id": {"year": m.year, "month": m.month}, "total": float(m.total)}
                for m in self.by_month
            ],
        }


def totals_by_category(expenses: Iterable[Expense]) -> Dict[str, CategoryTotal]:
    totals = defaultdict(lambda: Decimal("0"))
    counts = defaultdict(int)
    for expense in expenses:
        totals[expense.category] += expense.amount
        counts[expense.category] += 1
    return {
        category: CategoryTotal(category=category, total=total, count=counts[category])
        for category, total in totals.items()
    }


def totals_by_month(expenses: Iterable[Expense], limit: int = MONTH_LIMIT) -> List[MonthTotal]:
    """Totals for the ``limit`` most recent (year, month) buckets, newest first."""
    totals = defaultdict(lambda: Decimal("0"))
    for expense in expenses:
        totals[(expense.timestamp.year, expense.timestamp.month)] += expense.amount

    buckets = sorted(totals.items(), key=lambda item: item[0], reverse=True)[:limit]
    return [MonthTotal(year=year, month=month, total=total) for (year, month), total in buckets]


def compute_statistics(expenses: Iterable[Expense]) -> Statistics:
    expenses = list(expenses)
    return Statistics(
        by_category=totals_by_category(expenses),
        by_month=totals_by_month(expenses),
    )


def relative_widths(totals: Mapping[Any, Decimal]) -> Dict[Any, Decimal]:
    """
    Scale each total against the largest one, as a percentage.

    Empty input gives an empty mapping. When the largest total is zero every
    width is zero instead of dividing by it.
    """
    if not totals:
        return {}
    largest = max(totals.values())
    if largest <= 0:
        return {key: Decimal("0") for key in totals}
    return {key: (value / largest) * 100 for key, value in totals.items()}
