"""Tests for the per-session tally board."""

import asyncio
from datetime import timedelta

import pytest

from ref_tally.containers import AppContainer
from ref_tally.domain.errors import StoreUnavailable, UnknownCategory
from ref_tally.services.board import BoardRegistry, BoardView, TallyBoard
from tests.conftest import InMemoryTallyRepository


def _board(container: AppContainer, actor_id: str = "desk-1") -> TallyBoard:
    return container.boards.get(actor_id)


def test_registry_returns_same_board_per_actor(container: AppContainer) -> None:
    assert container.boards.get("desk-1") is container.boards.get("desk-1")
    assert container.boards.get("desk-1") is not container.boards.get("desk-2")


def test_record_updates_counts_and_weekly(
    container: AppContainer, repository: InMemoryTallyRepository
) -> None:
    board = _board(container)

    board.record("directional")
    board.record("directional")
    view = board.view()

    assert view.daily_counts["directional"] == 2
    assert view.daily_total == 2
    assert view.grand_total == 2
    assert view.error is None
    assert repository.rows[view.day].last_updated_by == "desk-1"


def test_write_failure_sets_banner_and_keeps_counts(
    container: AppContainer, repository: InMemoryTallyRepository
) -> None:
    board = _board(container)
    board.record("research")
    repository.fail_writes = True

    with pytest.raises(StoreUnavailable):
        board.record("research")

    view = board.view()
    assert view.daily_counts["research"] == 1
    assert view.error == "Failed to record count. Please check connection."

    repository.fail_writes = False
    board.record("research")
    assert board.view().error is None


def test_unknown_category_propagates(container: AppContainer) -> None:
    with pytest.raises(UnknownCategory):
        _board(container).record("nope")


def test_fetch_failure_keeps_previous_summary(
    container: AppContainer, repository: InMemoryTallyRepository
) -> None:
    board = _board(container)
    board.record("technology")
    previous = board.weekly
    repository.fail_queries = True

    board.refresh_weekly()

    assert board.weekly is previous
    assert board.view().grand_total == 1
    assert board.error == "Failed to load weekly report data."


def test_load_reads_existing_tally(
    container: AppContainer, repository: InMemoryTallyRepository
) -> None:
    today = container.tally_service.today()
    repository.seed(today, {"procedural": 4})
    repository.seed(today - timedelta(days=1), {"procedural": 1})

    view = _board(container).load()

    assert view.daily_counts["procedural"] == 4
    assert view.grand_total == 5
    assert view.period == (today - timedelta(days=1), today)


def test_print_report_toggles_flag(container: AppContainer) -> None:
    board = _board(container)
    seen: list[bool] = []

    def render(view: BoardView) -> str:
        seen.append(view.printing)
        return "report"

    assert board.print_report(render) == "report"
    assert seen == [True]
    assert board.printing is False


def test_print_report_restores_flag_on_error(container: AppContainer) -> None:
    board = _board(container)

    def render(view: BoardView) -> str:
        raise RuntimeError("printer jammed")

    with pytest.raises(RuntimeError):
        board.print_report(render)
    assert board.printing is False


def test_export_csv_includes_totals(container: AppContainer) -> None:
    board = _board(container)
    board.record("quick_fact")

    filename, text = board.export_csv()

    today = container.tally_service.today().isoformat()
    assert filename == f"ref_question_log_{today}.csv"
    lines = text.split("\n")
    assert lines[0].startswith('"Date","Directional"')
    assert lines[1].startswith(f'"{today}","0","1"')
    assert lines[-1].startswith('"TOTAL WEEKLY COUNT","0","1"')


def test_attach_goes_live_and_detach_stops(container: AppContainer) -> None:
    async def scenario() -> tuple[list[BoardView], int, int]:
        board = _board(container)
        views: list[BoardView] = []
        detach = board.attach(views.append)
        live = container.live_feed.active_count()
        board.record("directional")
        await asyncio.sleep(0.1)
        detach()
        after = container.live_feed.active_count()
        await container.close_resources()
        return views, live, after

    views, live, after = asyncio.run(scenario())

    assert live == 1
    assert after == 0
    assert views[0].daily_counts["directional"] == 0
    assert views[-1].daily_counts["directional"] == 1


def test_subscription_error_shows_banner(
    container: AppContainer, repository: InMemoryTallyRepository
) -> None:
    async def scenario() -> list[BoardView]:
        board = _board(container)
        views: list[BoardView] = []
        repository.fail_reads = True
        board.attach(views.append)
        await container.close_resources()
        return views

    views = asyncio.run(scenario())

    assert views[-1].error == "Could not load real-time data."


def _registry(container: AppContainer, max_idle_boards: int) -> BoardRegistry:
    return BoardRegistry(
        tally_service=container.tally_service,
        report_service=container.report_service,
        feed=container.live_feed,
        max_idle_boards=max_idle_boards,
    )


def test_registry_evicts_least_recent_idle_boards(container: AppContainer) -> None:
    registry = _registry(container, max_idle_boards=2)
    first = registry.get("desk-1")
    second = registry.get("desk-2")
    registry.get("desk-1")
    registry.get("desk-3")

    assert len(registry) == 2
    assert registry.get("desk-1") is first
    assert registry.get("desk-2") is not second


def test_registry_keeps_boards_in_use(container: AppContainer) -> None:
    async def scenario() -> tuple[bool, int]:
        registry = _registry(container, max_idle_boards=1)
        live = registry.get("desk-1")
        live.attach(lambda _: None)
        registry.get("desk-2")
        registry.get("desk-3")
        size = len(registry)
        kept = registry.get("desk-1") is live
        registry.stop_all()
        await container.live_feed.close()
        return kept, size

    kept, size = asyncio.run(scenario())

    assert kept is True
    assert size == 2


def test_transient_board_is_not_registered(container: AppContainer) -> None:
    board = container.boards.transient("desk-9")

    board.record("research")

    assert len(container.boards) == 0
    assert board.view().daily_counts["research"] == 1


def test_live_read_recovery_clears_banner(
    container: AppContainer, repository: InMemoryTallyRepository
) -> None:
    async def scenario() -> tuple[str | None, str | None]:
        board = _board(container)
        board.start()
        repository.fail_reads = True
        await asyncio.sleep(0.15)
        failed = board.error
        repository.fail_reads = False
        await asyncio.sleep(0.3)
        recovered = board.error
        await container.close_resources()
        return failed, recovered

    failed, recovered = asyncio.run(scenario())

    assert failed == "Could not load real-time data."
    assert recovered is None


def test_day_rollover_resubscribes_live_board(
    container: AppContainer,
    repository: InMemoryTallyRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    tomorrow = container.tally_service.today() + timedelta(days=1)

    async def scenario() -> tuple[TallyBoard, int, BoardView]:
        board = _board(container)
        views: list[BoardView] = []
        board.attach(views.append)
        monkeypatch.setattr(container.tally_service, "today", lambda: tomorrow)
        board.ensure_current_day()
        repository.seed(tomorrow, {"research": 2})
        container.live_feed.notify(tomorrow)
        await asyncio.sleep(0.1)
        active = container.live_feed.active_count()
        last = views[-1]
        await container.close_resources()
        return board, active, last

    board, active, last = asyncio.run(scenario())

    assert board.day == tomorrow
    assert active == 1
    assert last.day == tomorrow
    assert last.daily_counts["research"] == 2


def test_rollover_without_listeners_stays_idle(
    container: AppContainer, monkeypatch: pytest.MonkeyPatch
) -> None:
    board = _board(container)
    board.load()
    tomorrow = container.tally_service.today() + timedelta(days=1)
    monkeypatch.setattr(container.tally_service, "today", lambda: tomorrow)

    view = board.load()

    assert view.day == tomorrow
    assert container.live_feed.active_count() == 0
