"""Race slow side-effecting work against a response deadline.

The executor bounds how long a *caller* waits, never how long the work runs:
on timeout the task is left running, tracked, and its eventual outcome is
handed to an optional callback instead of the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from productivitywise.core.logging_config import record_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
LateResultHandler = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True)
class Completed(Generic[T]):
    label: str
    value: T
    elapsed_ms: float


@dataclass(frozen=True)
class TimedOut:
    label: str
    budget_ms: int


@dataclass(frozen=True)
class ExecutionError:
    label: str
    error: BaseException
    elapsed_ms: float


Outcome = Union[Completed[T], TimedOut, ExecutionError]


class TimeoutBoundedExecutor:
    """Runs operations under a deadline without cancelling them."""

    def __init__(self, *, default_budget_ms: int = 1000) -> None:
        self._default_budget_ms = default_budget_ms
        self._background: set[asyncio.Task[Any]] = set()
        self._tails: dict[str, asyncio.Task[None]] = {}

    @property
    def default_budget_ms(self) -> int:
        return self._default_budget_ms

    async def run(
        self,
        operation: Operation[T],
        *,
        budget_ms: int | None = None,
        label: str = "operation",
        on_late_result: LateResultHandler | None = None,
    ) -> Outcome[T]:
        """Start ``operation`` and wait at most ``budget_ms`` for it.

        Returns ``Completed`` or ``ExecutionError`` when the operation settles
        within the budget, ``TimedOut`` otherwise. A timed-out operation keeps
        running; if it later succeeds its value goes to ``on_late_result``.
        """
        budget = self._default_budget_ms if budget_ms is None else budget_ms
        started = time.perf_counter()
        task = asyncio.ensure_future(operation())
        outcome = await self._race(task, budget_ms=budget, label=label, started=started)
        if isinstance(outcome, TimedOut):
            logger.info("%s exceeded %sms budget; continuing in background", label, budget)
            self._track(task)
            task.add_done_callback(
                lambda t: self._on_background_done(t, label=label, on_late_result=on_late_result)
            )
        return outcome

    def submit(
        self,
        key: str,
        operation: Operation[Any],
        *,
        label: str = "side_effect",
        budget_ms: int | None = None,
    ) -> asyncio.Task[None]:
        """Queue a fire-and-forget side effect behind earlier ones for ``key``.

        Side effects sharing a key run strictly one after another in
        submission order. Failures are logged and swallowed.
        """
        budget = self._default_budget_ms if budget_ms is None else budget_ms
        previous = self._tails.get(key)

        async def _runner() -> None:
            if previous is not None and not previous.done():
                await asyncio.wait({previous})
            started = time.perf_counter()
            task = asyncio.ensure_future(operation())
            outcome = await self._race(task, budget_ms=budget, label=label, started=started)
            if isinstance(outcome, TimedOut):
                logger.warning("Side effect %s for %s is slow (>%sms)", label, key, budget)
                await asyncio.wait({task})
                if not task.cancelled() and task.exception() is not None:
                    outcome = ExecutionError(
                        label=label,
                        error=task.exception(),
                        elapsed_ms=_elapsed_ms(started),
                    )
            if isinstance(outcome, ExecutionError):
                logger.warning(
                    "Side effect %s for %s failed: %r", label, key, outcome.error
                )
                record_error(component="side_effect", error_type=label)

        runner = asyncio.ensure_future(_runner())
        self._tails[key] = runner
        self._track(runner)

        def _release(done: asyncio.Task[None]) -> None:
            if self._tails.get(key) is done:
                del self._tails[key]

        runner.add_done_callback(_release)
        return runner

    def spawn(self, operation: Operation[Any], *, label: str = "background") -> asyncio.Task[Any]:
        """Run ``operation`` detached; failures are logged and swallowed."""

        async def _guarded() -> Any:
            try:
                return await operation()
            except Exception:
                logger.exception("Background task %s failed", label)
                record_error(component="background", error_type=label)
                return None

        task = asyncio.ensure_future(_guarded())
        self._track(task)
        return task

    @property
    def pending(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """Wait until every background task (including late callbacks) settles."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _race(
        self, task: asyncio.Future[T], *, budget_ms: int, label: str, started: float
    ) -> Outcome[T]:
        done, _ = await asyncio.wait({task}, timeout=budget_ms / 1000.0)
        if task not in done:
            return TimedOut(label=label, budget_ms=budget_ms)
        if task.cancelled():
            return ExecutionError(
                label=label,
                error=asyncio.CancelledError(),
                elapsed_ms=_elapsed_ms(started),
            )
        error = task.exception()
        if error is not None:
            return ExecutionError(label=label, error=error, elapsed_ms=_elapsed_ms(started))
        return Completed(label=label, value=task.result(), elapsed_ms=_elapsed_ms(started))

    def _track(self, task: asyncio.Future[Any]) -> None:
        self._background.add(task)  # type: ignore[arg-type]
        task.add_done_callback(self._background.discard)

    def _on_background_done(
        self,
        task: asyncio.Future[Any],
        *,
        label: str,
        on_late_result: LateResultHandler | None,
    ) -> None:
        if task.cancelled():
            logger.warning("Background %s was cancelled", label)
            return
        error = task.exception()
        if error is not None:
            logger.error("Background %s failed after timeout", label, exc_info=error)
            record_error(component="executor", error_type=f"{label}_late_failure")
            return
        logger.info("Background %s completed after timeout", label)
        if on_late_result is not None:
            result = task.result()
            self.spawn(lambda: on_late_result(result), label=f"{label}_late_result")


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


__all__ = [
    "Completed",
    "ExecutionError",
    "Outcome",
    "TimedOut",
    "TimeoutBoundedExecutor",
]
