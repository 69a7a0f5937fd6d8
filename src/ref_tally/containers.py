"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from ref_tally.adapters.supabase_tally_repository import SupabaseTallyRepository
from ref_tally.config import Settings
from ref_tally.domain.errors import InitializationFailure
from ref_tally.services.board import BoardRegistry
from ref_tally.services.live import LiveTallyFeed
from ref_tally.services.reports import WeeklyReportService
from ref_tally.services.tallies import TallyRepository, TallyService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    tally_service: TallyService
    report_service: WeeklyReportService
    live_feed: LiveTallyFeed
    boards: BoardRegistry
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container.

    Raises InitializationFailure when settings or the Supabase client
    cannot be set up.
    """
    try:
        resolved_settings = settings or Settings()
        supabase_client = create_client(
            resolved_settings.supabase_url, resolved_settings.supabase_service_key
        )
    except Exception as exc:
        raise InitializationFailure(f"Backing store setup failed: {exc}") from exc
    repository = SupabaseTallyRepository(
        client=supabase_client,
        app_id=resolved_settings.app_id,
        table_name=resolved_settings.tally_table,
    )
    return wire_container(resolved_settings, repository)


def wire_container(settings: Settings, repository: TallyRepository) -> AppContainer:
    """Build services around an already constructed repository."""
    live_feed = LiveTallyFeed(
        repository=repository,
        poll_interval_seconds=settings.live_poll_interval_seconds,
    )
    tally_service = TallyService(
        repository=repository,
        timezone_name=settings.timezone,
        max_attempts=settings.max_increment_attempts,
        on_change=live_feed.notify,
    )
    report_service = WeeklyReportService(repository, days=settings.report_days)
    boards = BoardRegistry(
        tally_service=tally_service,
        report_service=report_service,
        feed=live_feed,
        max_idle_boards=settings.max_idle_boards,
    )

    async def close_resources() -> None:
        boards.stop_all()
        await live_feed.close()

    return AppContainer(
        settings=settings,
        tally_service=tally_service,
        report_service=report_service,
        live_feed=live_feed,
        boards=boards,
        close_resources=close_resources,
    )
