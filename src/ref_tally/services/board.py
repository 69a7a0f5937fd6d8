"""Per-session tally board state."""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import TypeVar

from ref_tally.domain.categories import zero_counts
from ref_tally.domain.errors import (
    FetchFailed,
    StoreUnavailable,
    SubscriptionError,
    WriteFailure,
)
from ref_tally.domain.tallies import DailyTally, WeeklySummary
from ref_tally.services.csv_export import to_csv
from ref_tally.services.live import LiveTallyFeed, Subscription
from ref_tally.services.reports import (
    ReportTable,
    WeeklyReportService,
    build_export_records,
    build_report_table,
    export_filename,
)
from ref_tally.services.tallies import TallyService

_logger = logging.getLogger(__name__)

T = TypeVar("T")
BoardListener = Callable[["BoardView"], None]


@dataclass(frozen=True)
class BoardView:
    """Snapshot of a board for rendering."""

    day: date
    actor_id: str
    daily_counts: dict[str, int]
    daily_total: int
    table: ReportTable | None
    period: tuple[date, date] | None
    grand_total: int
    error: str | None
    printing: bool

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation."""
        return {
            "day": self.day.isoformat(),
            "actor_id": self.actor_id,
            "daily_counts": self.daily_counts,
            "daily_total": self.daily_total,
            "weekly": (
                {
                    "headers": self.table.headers,
                    "rows": [
                        {"date": row.label, "counts": row.counts, "total": row.total}
                        for row in self.table.rows
                    ],
                    "totals": {
                        "counts": self.table.totals.counts,
                        "total": self.table.totals.total,
                    },
                }
                if self.table
                else None
            ),
            "period": (
                [self.period[0].isoformat(), self.period[1].isoformat()]
                if self.period
                else None
            ),
            "grand_total": self.grand_total,
            "error": self.error,
            "printing": self.printing,
        }


@dataclass
class TallyBoard:
    """Live daily counts and weekly report for one client session."""

    actor_id: str
    tally_service: TallyService
    report_service: WeeklyReportService
    feed: LiveTallyFeed
    day: date | None = None
    daily: DailyTally | None = None
    weekly: WeeklySummary | None = None
    error: str | None = None
    printing: bool = False
    _subscription: Subscription | None = None
    _listeners: list[BoardListener] = field(default_factory=list)
    _refresh_task: asyncio.Task | None = None
    _weekly_stale: bool = False

    def load(self, day: date | None = None) -> "BoardView":
        """Read the day's tally and weekly summary without subscribing."""
        if day is None:
            self.ensure_current_day()
        else:
            self._switch_day(day)
        if not self._is_live():
            self.refresh_weekly()
            try:
                self.daily = self.tally_service.get_tally(self.day)
            except StoreUnavailable as exc:
                _logger.warning("Daily read failed: %s", exc)
                self.error = SubscriptionError.banner
        return self.view()

    def start(self, day: date | None = None) -> None:
        """Subscribe to live changes for a day; re-subscribes on day change."""
        self._switch_day(day or self.tally_service.today())
        if self._is_live():
            return
        self._subscription = self.feed.subscribe(
            self.day,
            self.apply_live_snapshot,
            client_id=self.actor_id,
            on_error=self.report_failure,
        )

    def stop(self) -> None:
        """Stop the live subscription, if any."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None

    def ensure_current_day(self) -> None:
        """Follow the calendar to today, staying live if the board was live."""
        today = self.tally_service.today()
        if today == self.day:
            return
        was_live = self._is_live()
        self._switch_day(today)
        if was_live:
            self.start(today)

    def attach(self, listener: BoardListener) -> Callable[[], None]:
        """Register a view listener and go live; return a detach function."""
        self._listeners.append(listener)
        if self._is_live():
            listener(self.view())
        else:
            self.start()

        def detach() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
            if not self._listeners:
                self.stop()

        return detach

    def apply_snapshot(self, tally: DailyTally) -> None:
        """Mirror a delivered tally and refresh the weekly summary."""
        if self.day is not None and tally.day != self.day:
            return
        self.daily = tally
        self.refresh_weekly()

    def apply_live_snapshot(self, tally: DailyTally) -> None:
        """Mirror a tally from the live feed.

        The counts are published at once and the weekly summary is refreshed
        in a worker thread. A delivery means the live read succeeded, so a
        live-read banner is cleared.
        """
        if self.day is not None and tally.day != self.day:
            return
        self.daily = tally
        if self.error == SubscriptionError.banner:
            self.error = None
        self._publish()
        self._schedule_weekly_refresh()

    def refresh_weekly(self) -> None:
        """Re-fetch the weekly summary, keeping the previous one on failure."""
        try:
            self.weekly = self.report_service.weekly_summary()
        except FetchFailed as exc:
            _logger.warning("Weekly fetch failed: %s", exc)
            self.error = exc.banner
        else:
            self.error = None
        self._publish()

    def report_failure(self, error: SubscriptionError) -> None:
        """Show a live-listener failure; the last counts stay visible."""
        _logger.warning("Live subscription failed: %s", error)
        self.error = error.banner
        self._publish()

    def record(self, category_id: str) -> DailyTally:
        """Increment a category for the board's day.

        WriteFailure is shown on the board and re-raised; counts are left
        as they were.
        """
        self.ensure_current_day()
        try:
            written = self.tally_service.increment(
                self.day, category_id, self.actor_id
            )
        except WriteFailure as exc:
            _logger.warning("Increment failed: %s", exc)
            self.error = exc.banner
            self._publish()
            raise
        self.error = None
        self.apply_snapshot(written)
        return written

    def export_csv(self) -> tuple[str, str]:
        """Return the export filename and CSV text for the weekly summary."""
        summary = self.weekly
        if summary is None:
            summary = self.report_service.weekly_summary()
            self.weekly = summary
        records = build_export_records(summary)
        return export_filename(self.tally_service.today()), to_csv(records)

    def print_report(self, render: Callable[["BoardView"], T]) -> T:
        """Render the report with interactive controls suppressed."""
        self.printing = True
        try:
            return render(self.view())
        finally:
            self.printing = False

    def view(self) -> BoardView:
        """Return the current board snapshot."""
        day = self.day or self.tally_service.today()
        daily = self.daily or DailyTally.empty(day)
        counts = zero_counts()
        for category_id in counts:
            counts[category_id] = daily.count(category_id)
        return BoardView(
            day=day,
            actor_id=self.actor_id,
            daily_counts=counts,
            daily_total=daily.total,
            table=build_report_table(self.weekly) if self.weekly else None,
            period=self.weekly.period if self.weekly else None,
            grand_total=self.weekly.grand_total if self.weekly else 0,
            error=self.error,
            printing=self.printing,
        )

    def in_use(self) -> bool:
        """Return True while the board is live or has listeners."""
        return self._is_live() or bool(self._listeners)

    def _schedule_weekly_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._weekly_stale = True
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.refresh_weekly()
            return
        self._refresh_task = loop.create_task(self._refresh_weekly_in_thread())

    async def _refresh_weekly_in_thread(self) -> None:
        while True:
            self._weekly_stale = False
            try:
                summary = await asyncio.to_thread(self.report_service.weekly_summary)
            except FetchFailed as exc:
                _logger.warning("Weekly fetch failed: %s", exc)
                self.error = exc.banner
            else:
                self.weekly = summary
                self.error = None
            self._publish()
            if not self._weekly_stale:
                return

    def _switch_day(self, day: date) -> None:
        if self.day == day:
            return
        self.stop()
        self.day = day
        self.daily = DailyTally.empty(day)

    def _is_live(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def _publish(self) -> None:
        if not self._listeners:
            return
        view = self.view()
        for listener in list(self._listeners):
            listener(view)


@dataclass
class BoardRegistry:
    """Holds one board per actor.

    Boards that are neither live nor listened to are kept in least recently
    used order and evicted beyond ``max_idle_boards``.
    """

    tally_service: TallyService
    report_service: WeeklyReportService
    feed: LiveTallyFeed
    max_idle_boards: int = 500
    _boards: OrderedDict[str, TallyBoard] = field(default_factory=OrderedDict)

    def get(self, actor_id: str) -> TallyBoard:
        """Return the actor's board, creating it on first use."""
        board = self._boards.get(actor_id)
        if board is not None:
            self._boards.move_to_end(actor_id)
            return board
        board = self.transient(actor_id)
        self._boards[actor_id] = board
        self._evict_idle()
        return board

    def transient(self, actor_id: str) -> TallyBoard:
        """Return a board that is not kept after the caller is done with it."""
        return TallyBoard(
            actor_id=actor_id,
            tally_service=self.tally_service,
            report_service=self.report_service,
            feed=self.feed,
        )

    def __len__(self) -> int:
        return len(self._boards)

    def stop_all(self) -> None:
        """Stop every live board."""
        for board in self._boards.values():
            board.stop()

    def _evict_idle(self) -> None:
        idle = [actor for actor, board in self._boards.items() if not board.in_use()]
        for actor_id in idle[: max(len(idle) - self.max_idle_boards, 0)]:
            del self._boards[actor_id]
