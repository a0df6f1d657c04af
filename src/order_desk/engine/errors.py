"""
Error types raised by the engine, stores and services.
"""


class OrderDeskError(Exception):
    """Base class for every order desk error."""


class InvalidOrderInput(OrderDeskError, ValueError):
    """A raw order field is malformed or out of range."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class InvalidClassification(OrderDeskError, ValueError):
    """Unrecognized or missing channel / tier."""


class PersistenceFailure(OrderDeskError):
    """An external store call was rejected or could not complete."""


class ConsistencyViolation(OrderDeskError):
    """A write would break an invariant (negative balance, stale version, ...)."""


class NotFound(OrderDeskError, KeyError):
    """A referenced document does not exist."""

    def __str__(self):
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ''
