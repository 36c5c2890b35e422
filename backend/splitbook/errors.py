"""Errors raised by splitbook."""


class MalformedExpenseError(ValueError):
    """An expense breaks the creation invariants (payer, participants, amount)."""

    def __init__(self, message: str, expense_id: str = None):
        self.expense_id = expense_id
        if expense_id:
            message = f"{message} (expense {expense_id})"
        super().__init__(message)


class PrecisionDriftWarning(UserWarning):
    """Accumulated share residue exceeded the configured tolerance."""
