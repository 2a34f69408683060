"""Exception types shared across Conductor services."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from conductor.core.operation_log import OperationReceipt


class ConductorError(Exception):
    """Base class for expected, user-facing failures."""


class ValidationError(ConductorError):
    """A required argument is missing or malformed."""


class NotFoundError(ConductorError):
    """A referenced entity does not exist."""


class ReceiptBackedError(ConductorError):
    """A failure that has already been written to the operation log."""

    def __init__(self, message: str, receipt: "OperationReceipt"):
        super().__init__(message)
        self.receipt = receipt
