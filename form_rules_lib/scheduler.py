"""
Debounced scheduler for evaluation passes.

Each scheduler instance represents one logical input stream (a field, a
form). A call to schedule() cancels the pending timer, if any, and starts a
new one; when the timer fires the evaluation runs once with the latest
value. Callers whose calls were coalesced all receive that result, so every
returned future resolves exactly once.

Timers run on the asyncio event loop: schedule() must be called while a loop
is running. The evaluation itself is synchronous and is never interrupted.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class DebouncedScheduler:
    """Coalesces rapid calls into a single deferred evaluation."""

    def __init__(
        self,
        evaluate_fn: Callable[..., Any],
        debounce_ms: int = 500,
        on_complete: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        name: str = "scheduler",
    ):
        """
        Initialize scheduler.

        Args:
            evaluate_fn: Synchronous pass called as evaluate_fn(value, *args)
            debounce_ms: Delay before the pass runs; a newer call restarts it
            on_complete: Called with each result that is stored
            on_error: Called with the exception if the pass raises
            name: Label used in log records
        """
        self._evaluate_fn = evaluate_fn
        self.debounce_ms = debounce_ms
        self._on_complete = on_complete
        self._on_error = on_error
        self.name = name

        self._timer: Optional[asyncio.TimerHandle] = None
        self._generation = 0
        self._waiters: List[Tuple[Any, asyncio.Future]] = []
        self.last_result: Any = None

    @property
    def queue(self) -> List[Any]:
        """Values whose futures have not resolved yet, oldest first."""
        return [value for value, _ in self._waiters]

    @property
    def is_pending(self) -> bool:
        return self._timer is not None

    def schedule(self, value: Any, *args: Any) -> "asyncio.Future[Any]":
        """
        Schedule an evaluation of value after the debounce delay.

        Args:
            value: Value to evaluate
            *args: Extra positional arguments for evaluate_fn

        Returns:
            Future resolved with the result of the surviving call

        Raises:
            RuntimeError: If no event loop is running
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        if self._timer is not None:
            self._timer.cancel()
            logger.debug(
                f"Superseded pending evaluation on {self.name}",
                extra={"scheduler": self.name, "queued": len(self._waiters)},
            )

        self._generation += 1
        self._waiters.append((value, future))
        self._timer = loop.call_later(
            self.debounce_ms / 1000.0, self._fire, self._generation, value, args
        )
        return future

    def cancel(self) -> None:
        """
        Drop the pending evaluation and cancel every waiting future.

        Used when the consumer goes away (field removed, form closed); no
        result produced after this call is stored.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1

        waiters, self._waiters = self._waiters, []
        for _, future in waiters:
            if not future.done():
                future.cancel()
        if waiters:
            logger.debug(
                f"Cancelled {len(waiters)} pending evaluation(s) on {self.name}",
                extra={"scheduler": self.name},
            )

    def _fire(self, generation: int, value: Any, args: Tuple[Any, ...]) -> None:
        # A timer that was superseded or cancelled must not store a result
        if generation != self._generation:
            return
        self._timer = None
        waiters, self._waiters = self._waiters, []

        try:
            result = self._evaluate_fn(value, *args)
        except Exception as e:
            logger.error(
                f"Evaluation on {self.name} raised {type(e).__name__}: {e}",
                extra={"scheduler": self.name},
                exc_info=True,
            )
            for _, future in waiters:
                if not future.done():
                    future.set_exception(e)
            if self._on_error is not None:
                self._on_error(e)
            return

        self.last_result = result
        for _, future in waiters:
            if not future.done():
                future.set_result(result)
        if self._on_complete is not None:
            self._on_complete(result)
