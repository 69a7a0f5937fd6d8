"""Domain models for daily tallies and weekly summaries."""

from dataclasses import dataclass, field
from datetime import date, datetime

from ref_tally.domain.categories import category_ids, zero_counts


@dataclass(frozen=True)
class DailyTally:
    """Per-day question counts keyed by category id."""

    day: date
    counts: dict[str, int] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_updated_by: str | None = None
    version: int = 0

    @classmethod
    def empty(cls, day: date) -> "DailyTally":
        """Return the all-zero tally shown before the first click of a day."""
        return cls(day=day, counts=zero_counts())

    def count(self, category_id: str) -> int:
        """Return the count for a category, treating missing fields as 0."""
        return int(self.counts.get(category_id, 0) or 0)

    @property
    def total(self) -> int:
        """Sum of every registered category's count."""
        return sum(self.count(category_id) for category_id in category_ids())


@dataclass(frozen=True)
class WeeklySummary:
    """Recent days in ascending order with per-category and grand totals."""

    days: list[DailyTally]
    category_totals: dict[str, int]
    grand_total: int

    @property
    def period(self) -> tuple[date, date] | None:
        """First and last day covered, if any."""
        if not self.days:
            return None
        return self.days[0].day, self.days[-1].day
