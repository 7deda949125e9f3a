"""
Domain errors.

Expected blocks subclass ValueError so callers can keep treating them the
way validation failures are treated (rejected action, not a crash).
"""


class EvaluationNotFoundError(LookupError):
    """Evaluation does not exist or belongs to another user."""


class EvaluationTransitionError(ValueError):
    """Evaluation is not in the status required by the requested action."""

    def __init__(self, evaluation_id: str, action: str, reason: str):
        self.evaluation_id = evaluation_id
        self.action = action
        self.reason = reason
        super().__init__(f"Cannot {action} evaluation {evaluation_id}: {reason}")


class BrokerageError(RuntimeError):
    """Quote lookup or order placement failed at the brokerage."""


class OrderTooSmallError(BrokerageError):
    def __init__(self, amount, price):
        self.amount = amount
        self.price = price
        super().__init__("Order amount too small to purchase any shares")


class BankSyncError(RuntimeError):
    """Bank aggregator refused or failed a transaction fetch."""
