"""Pydantic models for aumai-saga."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field

__all__ = [
    "TransactionState",
    "TransactionOptions",
    "Step",
    "StepFailure",
    "TransactionResult",
]


class TransactionState(str, Enum):
    """Lifecycle states for a saga transaction."""

    idle = "idle"
    running = "running"
    rolling_back = "rolling_back"
    completed = "completed"


class TransactionOptions(BaseModel):
    """Behaviour switches for a :class:`~aumai_saga.core.Transaction`."""

    inject_context: bool = Field(
        default=False,
        description=(
            "Seed the context with caller-supplied values under the reserved prefix "
            "and pass the previous step's result to each action"
        ),
    )
    reserved_prefix: str = Field(
        default="$",
        min_length=1,
        description="Prefix that marks seeded context keys; step tags may not use it",
    )


class Step(BaseModel):
    """A single tagged unit of work with its optional compensating action."""

    tag: str = Field(..., description="Identifier used as log key and context key")
    action: Callable[..., Any] = Field(
        ..., description="Callable returning an awaitable that produces the step result"
    )
    compensation: Callable[..., Any] | None = Field(
        default=None,
        description="Undo callable run during rollback if the action succeeded",
    )


class StepFailure(BaseModel):
    """A failed step and the error value it settled with."""

    tag: str = Field(..., description="Tag of the failed step")
    error: Any = Field(default=None, description="Opaque error value (usually an exception)")


class TransactionResult(BaseModel):
    """Serialisable summary of a transaction run."""

    transaction_id: str = Field(..., description="ID of the transaction")
    state: TransactionState = Field(..., description="State at the time of the summary")
    succeeded: bool | None = Field(
        default=None, description="Final outcome, or None while not completed"
    )
    succeeded_steps: list[str] = Field(
        default_factory=list, description="Tags that completed, in completion order"
    )
    failed_steps: dict[str, str] = Field(
        default_factory=dict, description="Failed tags mapped to their error message"
    )
    skipped_steps: list[str] = Field(
        default_factory=list, description="Declared tags that neither succeeded nor failed"
    )
    started_at: datetime | None = Field(default=None, description="UTC start timestamp")
    finished_at: datetime | None = Field(default=None, description="UTC completion timestamp")
    running_time: float | None = Field(
        default=None, description="Elapsed or total run time in seconds"
    )
