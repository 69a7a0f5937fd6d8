"""Supabase-backed daily tally repository."""

from dataclasses import dataclass
from datetime import date, datetime

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from ref_tally.domain.errors import StoreUnavailable
from ref_tally.domain.tallies import DailyTally
from ref_tally.services.tallies import TallyRepository

_COLUMNS = "tally_date, counts, created_at, updated_at, last_updated_by, version"
_UNIQUE_VIOLATION = "23505"


@dataclass
class SupabaseTallyRepository(TallyRepository):
    """Supabase implementation for per-day tally rows."""

    client: Client
    app_id: str
    table_name: str = "daily_ref_counts"

    def get_tally(self, day: date) -> DailyTally | None:
        """Return the tally row for a day, if present."""
        try:
            response = (
                self.client.table(self.table_name)
                .select(_COLUMNS)
                .eq("app_id", self.app_id)
                .eq("tally_date", day.isoformat())
                .limit(1)
                .execute()
            )
        except (httpx.HTTPError, APIError) as exc:
            raise StoreUnavailable(f"Failed to read tally for {day}: {exc}") from exc
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def create_tally(self, tally: DailyTally) -> bool:
        """Insert the first row for a day; False when another writer won."""
        try:
            self.client.table(self.table_name).insert(
                {
                    "app_id": self.app_id,
                    "tally_date": tally.day.isoformat(),
                    "counts": tally.counts,
                    "created_at": _format_timestamp(tally.created_at),
                    "last_updated_by": tally.last_updated_by,
                    "version": tally.version,
                }
            ).execute()
        except APIError as exc:
            if exc.code == _UNIQUE_VIOLATION:
                return False
            raise StoreUnavailable(f"Failed to create tally: {exc.message}") from exc
        except httpx.HTTPError as exc:
            raise StoreUnavailable(f"Failed to create tally: {exc}") from exc
        return True

    def compare_and_swap(
        self,
        day: date,
        expected_version: int,
        counts: dict[str, int],
        actor_id: str,
        updated_at: datetime,
    ) -> bool:
        """Update the row only if its version is unchanged."""
        try:
            response = (
                self.client.table(self.table_name)
                .update(
                    {
                        "counts": counts,
                        "last_updated_by": actor_id,
                        "updated_at": updated_at.isoformat(),
                        "version": expected_version + 1,
                    }
                )
                .eq("app_id", self.app_id)
                .eq("tally_date", day.isoformat())
                .eq("version", expected_version)
                .execute()
            )
        except (httpx.HTTPError, APIError) as exc:
            raise StoreUnavailable(f"Failed to update tally for {day}: {exc}") from exc
        return bool(response.data)

    def list_recent_tallies(self, limit: int) -> list[DailyTally]:
        """Return the most recent rows, newest first."""
        try:
            response = (
                self.client.table(self.table_name)
                .select(_COLUMNS)
                .eq("app_id", self.app_id)
                .order("tally_date", desc=True)
                .limit(limit)
                .execute()
            )
        except (httpx.HTTPError, APIError) as exc:
            raise StoreUnavailable(f"Failed to list recent tallies: {exc}") from exc
        return [_parse_row(row) for row in response.data or []]


def _parse_row(row: dict[str, object]) -> DailyTally:
    counts_raw = row.get("counts")
    counts = (
        {str(key): int(value or 0) for key, value in counts_raw.items()}
        if isinstance(counts_raw, dict)
        else {}
    )
    return DailyTally(
        day=date.fromisoformat(str(row["tally_date"])[:10]),
        counts=counts,
        created_at=_parse_timestamp(row.get("created_at")),
        updated_at=_parse_timestamp(row.get("updated_at")),
        last_updated_by=row.get("last_updated_by"),
        version=int(row.get("version") or 0),
    )


def _parse_timestamp(raw: object) -> datetime | None:
    if isinstance(raw, str) and raw:
        return datetime.fromisoformat(raw)
    return None


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
