"""Weekly aggregation and report/export shaping."""

import logging
from dataclasses import dataclass
from datetime import date

from ref_tally.domain.categories import question_categories
from ref_tally.domain.errors import FetchFailed, StoreUnavailable
from ref_tally.domain.tallies import DailyTally, WeeklySummary
from ref_tally.services.tallies import TallyRepository

_logger = logging.getLogger(__name__)

DEFAULT_REPORT_DAYS = 7
TOTALS_ROW_LABEL = "WEEKLY TOTAL"
EXPORT_TOTALS_LABEL = "TOTAL WEEKLY COUNT"


@dataclass(frozen=True)
class ReportRow:
    """One display row of the weekly table."""

    label: str
    counts: list[int]
    total: int


@dataclass(frozen=True)
class ReportTable:
    """Display table: one row per day plus a totals row."""

    headers: list[str]
    rows: list[ReportRow]
    totals: ReportRow


@dataclass
class WeeklyReportService:
    """Service for fetching and summarising the most recent days."""

    repository: TallyRepository
    days: int = DEFAULT_REPORT_DAYS

    def fetch_recent_days(self, n: int | None = None) -> list[DailyTally]:
        """Return up to n most recent tallies in ascending date order."""
        limit = self.days if n is None else n
        try:
            recent = self.repository.list_recent_tallies(limit)
        except StoreUnavailable as exc:
            raise FetchFailed(f"Weekly query failed: {exc}") from exc
        _logger.info("Weekly fetch: requested=%s returned=%s", limit, len(recent))
        return sorted(recent, key=lambda tally: tally.day)

    def weekly_summary(self, n: int | None = None) -> WeeklySummary:
        """Fetch the recent days and compute their totals."""
        return summarize(self.fetch_recent_days(n))


def summarize(days: list[DailyTally]) -> WeeklySummary:
    """Compute per-category and grand totals; missing fields count as 0."""
    category_totals = {category.id: 0 for category in question_categories()}
    for day in days:
        for category_id in category_totals:
            category_totals[category_id] += day.count(category_id)
    return WeeklySummary(
        days=list(days),
        category_totals=category_totals,
        grand_total=sum(category_totals.values()),
    )


def build_report_table(summary: WeeklySummary) -> ReportTable:
    """Shape a summary into the day-by-day breakdown table."""
    categories = question_categories()
    rows = [
        ReportRow(
            label=day.day.isoformat(),
            counts=[day.count(category.id) for category in categories],
            total=day.total,
        )
        for day in summary.days
    ]
    totals = ReportRow(
        label=TOTALS_ROW_LABEL,
        counts=[summary.category_totals.get(category.id, 0) for category in categories],
        total=summary.grand_total,
    )
    headers = ["Date", *(category.name for category in categories), "Daily Total"]
    return ReportTable(headers=headers, rows=rows, totals=totals)


def build_export_records(summary: WeeklySummary) -> list[dict[str, object]]:
    """Return one CSV record per day plus a trailing totals record."""
    categories = question_categories()
    records: list[dict[str, object]] = []
    for day in summary.days:
        record: dict[str, object] = {"Date": day.day.isoformat()}
        for category in categories:
            record[category.name] = day.count(category.id)
        records.append(record)
    totals: dict[str, object] = {"Date": EXPORT_TOTALS_LABEL}
    for category in categories:
        totals[category.name] = summary.category_totals.get(category.id, 0)
    records.append(totals)
    return records


def export_filename(today: date) -> str:
    """Return the download name for a CSV export."""
    return f"ref_question_log_{today.isoformat()}.csv"
