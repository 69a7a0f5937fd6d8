"""Live change feed for the current day's tally.

Each subscription runs its own asyncio task that polls the store and is woken
early by ``notify`` after a local write. Background reads run in a worker
thread and deliveries happen on the event loop. Snapshots are delivered whole
and only when their version moves forward, so deliveries follow write order.
The first good read after a failure is always delivered.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date

from ref_tally.domain.errors import SubscriptionError
from ref_tally.domain.tallies import DailyTally
from ref_tally.services.tallies import TallyRepository

_logger = logging.getLogger(__name__)

TallyCallback = Callable[[DailyTally], None]
ErrorCallback = Callable[[SubscriptionError], None]


@dataclass(eq=False)
class Subscription:
    """Cancellation handle for a live subscription."""

    feed: "LiveTallyFeed"
    day: date
    client_id: str
    on_change: TallyCallback
    on_error: ErrorCallback | None = None
    active: bool = True
    last_version: int | None = None
    failing: bool = False
    _wake: asyncio.Event = field(default_factory=asyncio.Event)
    _task: asyncio.Task | None = None

    def unsubscribe(self) -> None:
        """Stop delivery. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        if self._task is not None:
            self._task.cancel()
        self.feed._discard(self)

    def wake(self) -> None:
        """Ask the polling task to re-read now."""
        self._wake.set()

    async def _run(self, interval: float) -> None:
        while self.active:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=interval)
            self._wake.clear()
            try:
                tally = await asyncio.to_thread(self._read)
            except Exception as exc:
                self._fail(exc)
                continue
            self._deliver(tally)

    def _poll_once(self) -> None:
        try:
            tally = self._read()
        except Exception as exc:
            self._fail(exc)
            return
        self._deliver(tally)

    def _read(self) -> DailyTally:
        return self.feed.repository.get_tally(self.day) or DailyTally.empty(self.day)

    def _fail(self, exc: Exception) -> None:
        if not self.active:
            return
        self.failing = True
        error = SubscriptionError(f"Live read failed for {self.day}: {exc}")
        if self.on_error is None:
            _logger.warning("Live subscription error: %s", error)
            return
        try:
            self.on_error(error)
        except Exception:
            _logger.exception("Live error callback failed for %s", self.day)

    def _deliver(self, tally: DailyTally) -> None:
        if not self.active:
            return
        # A read after a failure is delivered even when unchanged.
        recovered = self.failing
        self.failing = False
        if (
            not recovered
            and self.last_version is not None
            and tally.version <= self.last_version
        ):
            return
        self.last_version = tally.version
        try:
            self.on_change(tally)
        except Exception:
            _logger.exception("Live change callback failed for %s", self.day)


@dataclass
class LiveTallyFeed:
    """Registry of live subscriptions, at most one per client and day."""

    repository: TallyRepository
    poll_interval_seconds: float = 2.0
    _subscriptions: dict[tuple[str, date], Subscription] = field(
        default_factory=dict
    )

    def subscribe(
        self,
        day: date,
        on_change: TallyCallback,
        *,
        client_id: str = "default",
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Deliver the current tally now and on every later change.

        Must be called from a running event loop. A second subscription for
        the same client and day replaces the first.
        """
        key = (client_id, day)
        previous = self._subscriptions.get(key)
        if previous is not None:
            previous.unsubscribe()
        subscription = Subscription(
            feed=self,
            day=day,
            client_id=client_id,
            on_change=on_change,
            on_error=on_error,
        )
        self._subscriptions[key] = subscription
        subscription._poll_once()
        if subscription.active:
            subscription._task = asyncio.get_running_loop().create_task(
                subscription._run(self.poll_interval_seconds)
            )
        return subscription

    def notify(self, day: date) -> None:
        """Wake every subscription watching a day."""
        for subscription in list(self._subscriptions.values()):
            if subscription.day == day:
                subscription.wake()

    def active_count(self) -> int:
        """Return the number of live subscriptions."""
        return len(self._subscriptions)

    async def close(self) -> None:
        """Cancel every subscription and wait for their tasks to finish."""
        tasks = []
        for subscription in list(self._subscriptions.values()):
            if subscription._task is not None:
                tasks.append(subscription._task)
            subscription.unsubscribe()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _discard(self, subscription: Subscription) -> None:
        key = (subscription.client_id, subscription.day)
        if self._subscriptions.get(key) is subscription:
            del self._subscriptions[key]
