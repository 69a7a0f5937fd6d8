"""Daily counter store for reference questions."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Protocol
from zoneinfo import ZoneInfo

from ref_tally.domain.categories import get_category, zero_counts
from ref_tally.domain.errors import TransactionConflict
from ref_tally.domain.tallies import DailyTally

_logger = logging.getLogger(__name__)


class TallyRepository(Protocol):
    """Persistence interface for daily tallies."""

    def get_tally(self, day: date) -> DailyTally | None:
        """Return the stored tally for a day, if present."""

    def create_tally(self, tally: DailyTally) -> bool:
        """Insert a new tally; return False if the day already exists."""

    def compare_and_swap(
        self,
        day: date,
        expected_version: int,
        counts: dict[str, int],
        actor_id: str,
        updated_at: datetime,
    ) -> bool:
        """Write counts if the stored version still matches; bump the version."""

    def list_recent_tallies(self, limit: int) -> list[DailyTally]:
        """Return the most recent tallies ordered by day descending."""


@dataclass
class TallyService:
    """Service for atomic per-day increments."""

    repository: TallyRepository
    timezone_name: str = "UTC"
    max_attempts: int = 5
    on_change: Callable[[date], None] | None = None

    def today(self) -> date:
        """Return today's date in the configured timezone."""
        return datetime.now(tz=ZoneInfo(self.timezone_name)).date()

    def get_tally(self, day: date) -> DailyTally:
        """Return the stored tally or the all-zero default."""
        return self.repository.get_tally(day) or DailyTally.empty(day)

    def increment(self, day: date, category_id: str, actor_id: str) -> DailyTally:
        """Add one to a category for a day without losing concurrent updates."""
        get_category(category_id)
        for attempt in range(1, self.max_attempts + 1):
            written = self._try_increment(day, category_id, actor_id)
            if written is not None:
                if self.on_change is not None:
                    self.on_change(day)
                return written
            _logger.info(
                "Increment conflict: day=%s category=%s attempt=%s",
                day,
                category_id,
                attempt,
            )
        raise TransactionConflict(day, self.max_attempts)

    def _try_increment(
        self, day: date, category_id: str, actor_id: str
    ) -> DailyTally | None:
        now = datetime.now(tz=UTC)
        current = self.repository.get_tally(day)
        if current is None:
            counts = zero_counts()
            counts[category_id] = 1
            created = DailyTally(
                day=day,
                counts=counts,
                created_at=now,
                last_updated_by=actor_id,
                version=1,
            )
            return created if self.repository.create_tally(created) else None

        counts = dict(current.counts)
        counts[category_id] = current.count(category_id) + 1
        swapped = self.repository.compare_and_swap(
            day,
            expected_version=current.version,
            counts=counts,
            actor_id=actor_id,
            updated_at=now,
        )
        if not swapped:
            return None
        return DailyTally(
            day=day,
            counts=counts,
            created_at=current.created_at,
            updated_at=now,
            last_updated_by=actor_id,
            version=current.version + 1,
        )
