"""Core logic for aumai-saga."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping

from aumai_saga.context import ContextStore
from aumai_saga.models import (
    Step,
    StepFailure,
    TransactionOptions,
    TransactionResult,
    TransactionState,
)

__all__ = ["Transaction", "CONTRACT_VIOLATION_MESSAGE"]

logger = logging.getLogger(__name__)

CONTRACT_VIOLATION_MESSAGE = "action did not return an awaitable"

# Type aliases for step callables
Action = Callable[..., Awaitable[Any]]
Compensation = Callable[[dict[str, Any]], Any]


def _drain_cancelling() -> bool:
    """Return True if the current task has a pending cancellation request.

    Distinguishes a cancelled step awaitable (a step failure) from the
    drain task itself being cancelled.
    """
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class Transaction:
    """Run an ordered list of asynchronous steps, compensating on failure.

    Steps are executed one at a time in the order they were added.  When a
    step fails, or :meth:`abort` is called, the compensations of every step
    that already succeeded are run in reverse completion order.  Nothing is
    raised out of :meth:`execute`; the outcome is read back through the
    accessor methods.

    Args:
        initial_context: Optional values made available to every step.  Only
            accepted with ``inject_context``; each key is stored under the
            reserved prefix so it never collides with a step tag.
        options: Behaviour switches, see
            :class:`~aumai_saga.models.TransactionOptions`.
        inject_context: Shortcut overriding ``options.inject_context``.

    Raises:
        ValueError: When *initial_context* is given without context injection.
    """

    def __init__(
        self,
        initial_context: Mapping[str, Any] | None = None,
        *,
        options: TransactionOptions | None = None,
        inject_context: bool | None = None,
    ) -> None:
        opts = options or TransactionOptions()
        if inject_context is not None:
            opts = opts.model_copy(update={"inject_context": inject_context})
        self._options: TransactionOptions = opts
        self.transaction_id: str = str(uuid.uuid4())
        self._context = ContextStore(opts.reserved_prefix if opts.inject_context else None)
        self._context.seed(initial_context or {})
        self._init_run_state()

    # ------------------------------------------------------------------
    # Builder / lifecycle API
    # ------------------------------------------------------------------

    def add(
        self,
        tag: str,
        action: Action,
        compensation: Compensation | None = None,
    ) -> Transaction:
        """Append a step to the queue.

        Calls made once the transaction has left the *idle* state are
        ignored.

        Args:
            tag: Step identifier; its result is stored in the context under it.
            action: Called with the context (and, with context injection, the
                previous step's result) and must return an awaitable.
            compensation: Optional undo callable, called with the context
                during rollback.  May return an awaitable.

        Returns:
            This transaction, for chaining.

        Raises:
            ValueError: When *tag* uses the reserved prefix, or *action* is
                not callable.
        """
        if self._state is not TransactionState.idle:
            logger.debug(
                "Transaction %s: ignoring step %r added in state %s",
                self.transaction_id,
                tag,
                self._state.value,
            )
            return self

        step = Step(tag=tag, action=action, compensation=compensation)
        if self._context.is_reserved(step.tag):
            raise ValueError(
                f"Step tag {step.tag!r} uses the reserved prefix "
                f"{self._options.reserved_prefix!r}."
            )
        self._steps.append(step)
        self._declared.append(step.tag)
        return self

    async def execute(self) -> Transaction:
        """Run the queued steps and return this transaction once settled.

        Only the first call starts a run; later calls, whether made while
        the run is in flight or after it completed, wait for the same run.
        Cancelling the awaiting caller does not cancel the run itself.
        """
        if self._completion is None:
            loop = asyncio.get_running_loop()
            self._started = time.monotonic()
            self._started_at = datetime.now(tz=timezone.utc)
            if not self._steps:
                self._complete(succeeded=True)
                self._completion = loop.create_future()
                self._completion.set_result(self)
            else:
                self._state = TransactionState.running
                logger.info(
                    "Transaction %s started with %d step(s)",
                    self.transaction_id,
                    len(self._steps),
                )
                self._completion = loop.create_task(self._drain())
        return await asyncio.shield(self._completion)

    def abort(self) -> bool:
        """Request that no further step be started.

        The step currently in flight is not interrupted.  Once it settles,
        already-succeeded steps are rolled back.

        Returns:
            True if the request was accepted, i.e. the transaction is running
            and at least one step is still queued.
        """
        if self._state is not TransactionState.running or not self._steps:
            return False
        logger.info("Transaction %s: abort requested", self.transaction_id)
        self._abort_requested = True
        return True

    def reset(self) -> Transaction:
        """Clear steps, logs, context and outcome, returning to *idle*.

        Raises:
            ValueError: When the transaction is running or rolling back.
        """
        if self._state in (TransactionState.running, TransactionState.rolling_back):
            raise ValueError(
                f"Cannot reset transaction {self.transaction_id!r} "
                f"in state {self._state.value!r}; wait for it to complete."
            )
        self._context.clear()
        self._init_run_state()
        return self

    # ------------------------------------------------------------------
    # Result accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> TransactionState:
        """Current lifecycle state."""
        return self._state

    @property
    def options(self) -> TransactionOptions:
        """Options this transaction was created with."""
        return self._options

    @property
    def context(self) -> dict[str, Any]:
        """The live context mapping passed to actions and compensations."""
        return self._context.data

    @property
    def steps(self) -> tuple[Step, ...]:
        """Steps still waiting in the queue."""
        return tuple(self._steps)

    @property
    def success_log(self) -> list[str]:
        """Tags of succeeded steps, in completion order."""
        return list(self._success_log)

    @property
    def failure_log(self) -> list[StepFailure]:
        """Failed steps and their errors, in failure order."""
        return list(self._failure_log)

    def results_from(self, tag: str) -> Any:
        """Return the result of step *tag*, or *None* if it never succeeded."""
        return self._context.result_from(tag)

    def results_all(self) -> dict[str, Any]:
        """Return a snapshot mapping of tag to result for all step results."""
        return self._context.results_all()

    def error_from(self, tag: str) -> Any:
        """Return the error recorded for *tag*, or *None*."""
        error = None
        for failure in self._failure_log:
            if failure.tag == tag:
                error = failure.error
        return error

    def errors_all(self) -> dict[str, Any]:
        """Return a mapping of failed tag to its (last) recorded error."""
        return {failure.tag: failure.error for failure in self._failure_log}

    def step_succeeded(self, tag: str) -> bool:
        """True if *tag* appears in the success log."""
        return tag in self._success_log

    def step_failed(self, tag: str) -> bool:
        """True if *tag* appears in the failure log."""
        return any(failure.tag == tag for failure in self._failure_log)

    def step_skipped(self, tag: str) -> bool:
        """True if *tag* neither succeeded nor failed (never reached)."""
        return not self.step_succeeded(tag) and not self.step_failed(tag)

    def success(self) -> bool:
        """True once completed with an empty failure log."""
        return self._outcome is True

    def failed(self) -> bool:
        """True once completed with at least one recorded failure."""
        return self._outcome is False

    def running_time(self) -> float | None:
        """Return elapsed seconds while running, or the total once completed.

        Returns *None* if the transaction has never been executed.
        """
        if self._started is None:
            return None
        if self._finished is None:
            return time.monotonic() - self._started
        return self._finished - self._started

    def summary(self) -> TransactionResult:
        """Return a serialisable :class:`~aumai_saga.models.TransactionResult`."""
        skipped: list[str] = []
        for tag in self._declared:
            if tag not in skipped and self.step_skipped(tag):
                skipped.append(tag)
        return TransactionResult(
            transaction_id=self.transaction_id,
            state=self._state,
            succeeded=self._outcome,
            succeeded_steps=list(self._success_log),
            failed_steps={tag: str(error) for tag, error in self.errors_all().items()},
            skipped_steps=skipped,
            started_at=self._started_at,
            finished_at=self._finished_at,
            running_time=self.running_time(),
        )

    def __repr__(self) -> str:
        return (
            f"Transaction(id={self.transaction_id!r}, state={self._state.value!r}, "
            f"steps={len(self._declared)})"
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _init_run_state(self) -> None:
        self._steps: deque[Step] = deque()
        self._declared: list[str] = []
        self._success_log: list[str] = []
        self._failure_log: list[StepFailure] = []
        self._compensations: list[Compensation | None] = []
        self._previous: Any = None
        self._state = TransactionState.idle
        self._abort_requested = False
        self._outcome: bool | None = None
        self._started: float | None = None
        self._finished: float | None = None
        self._started_at: datetime | None = None
        self._finished_at: datetime | None = None
        self._completion: asyncio.Future[Transaction] | None = None

    async def _drain(self) -> Transaction:
        """Execute queued steps until the queue empties, a step fails, or abort.

        If the drain task itself is cancelled, the cancellation propagates
        without rollback, but the transaction is still left *completed*.
        """
        try:
            while True:
                if self._abort_requested or self._failure_log:
                    await self._rollback()
                    break
                if not self._steps:
                    break
                await self._run_step(self._steps.popleft())
                # Yield to the loop between steps instead of chaining directly.
                await asyncio.sleep(0)
        finally:
            self._complete(succeeded=not self._failure_log)
        return self

    async def _run_step(self, step: Step) -> None:
        if self._options.inject_context:
            args: tuple[Any, ...] = (self._context.data, self._previous)
        else:
            args = (self._context.data,)

        logger.debug("Transaction %s: running step %r", self.transaction_id, step.tag)
        try:
            pending = step.action(*args)
        except Exception as exc:  # noqa: BLE001
            self._mark_failed(step.tag, exc)
            return

        if not inspect.isawaitable(pending):
            logger.debug(
                "Transaction %s: step %r returned %s instead of an awaitable",
                self.transaction_id,
                step.tag,
                type(pending).__name__,
            )
            self._mark_failed(step.tag, CONTRACT_VIOLATION_MESSAGE)
            return

        try:
            result = await pending
        except asyncio.CancelledError as exc:
            self._mark_failed(step.tag, exc)
            if _drain_cancelling():
                raise
            return
        except Exception as exc:  # noqa: BLE001
            self._mark_failed(step.tag, exc)
            return

        self._mark_succeeded(step, result)

    async def _rollback(self) -> None:
        """Run compensations of succeeded steps in reverse completion order."""
        self._state = TransactionState.rolling_back
        logger.info(
            "Transaction %s rolling back %d step(s) after %s",
            self.transaction_id,
            len(self._compensations),
            "failure" if self._failure_log else "abort",
        )
        for compensation in reversed(self._compensations):
            if compensation is None:
                continue
            try:
                outcome = compensation(self._context.data)
                if inspect.isawaitable(outcome):
                    await outcome
            except asyncio.CancelledError:
                if _drain_cancelling():
                    raise
            except Exception:  # noqa: BLE001
                pass  # Best-effort compensation

    def _complete(self, succeeded: bool) -> None:
        self._finished = time.monotonic()
        self._finished_at = datetime.now(tz=timezone.utc)
        self._outcome = succeeded
        self._state = TransactionState.completed
        logger.info(
            "Transaction %s completed: %s in %.3fs",
            self.transaction_id,
            "succeeded" if succeeded else "failed",
            self.running_time() or 0.0,
        )

    def _mark_failed(self, tag: str, error: Any) -> None:
        logger.debug("Transaction %s: step %r failed: %r", self.transaction_id, tag, error)
        self._failure_log.append(StepFailure(tag=tag, error=error))

    def _mark_succeeded(self, step: Step, result: Any) -> None:
        logger.debug("Transaction %s: step %r succeeded", self.transaction_id, step.tag)
        self._success_log.append(step.tag)
        self._context.record(step.tag, result)
        self._previous = result
        self._compensations.append(step.compensation)
