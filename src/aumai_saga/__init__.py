"""AumAI Saga — sequential asynchronous steps with reverse-order compensation."""

from aumai_saga.core import CONTRACT_VIOLATION_MESSAGE, Transaction
from aumai_saga.models import (
    Step,
    StepFailure,
    TransactionOptions,
    TransactionResult,
    TransactionState,
)

__version__ = "0.1.0"

__all__ = [
    "CONTRACT_VIOLATION_MESSAGE",
    "Transaction",
    "Step",
    "StepFailure",
    "TransactionOptions",
    "TransactionResult",
    "TransactionState",
]
