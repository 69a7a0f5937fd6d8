"""FastAPI application factory."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, Response, StreamingResponse

from ref_tally.api.pages import (
    render_blocking_page,
    render_print_page,
    render_report_block,
    render_tally_page,
)
from ref_tally.app_logging import configure_logging
from ref_tally.containers import AppContainer
from ref_tally.domain.categories import question_categories
from ref_tally.domain.errors import (
    FetchFailed,
    InitializationFailure,
    TransactionConflict,
    UnknownCategory,
    WriteFailure,
)
from ref_tally.services.board import BoardView, TallyBoard
from ref_tally.services.csv_export import CSV_MEDIA_TYPE

ACTOR_COOKIE = "ref_tally_actor"
ACTOR_HEADER = "X-Actor-Id"
STREAM_KEEPALIVE_SECONDS = 15.0


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(UnknownCategory)
    async def unknown_category(_: Request, exc: UnknownCategory) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND, content={"error": str(exc)}
        )

    @app.exception_handler(WriteFailure)
    async def write_failure(_: Request, exc: WriteFailure) -> JSONResponse:
        code = (
            status.HTTP_409_CONFLICT
            if isinstance(exc, TransactionConflict)
            else status.HTTP_503_SERVICE_UNAVAILABLE
        )
        return JSONResponse(status_code=code, content={"error": exc.banner})

    @app.exception_handler(FetchFailed)
    async def fetch_failed(_: Request, exc: FetchFailed) -> JSONResponse:
        logger.warning("Report fetch failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": exc.banner},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/", response_class=HTMLResponse)
    async def tally_page(request: Request) -> HTMLResponse:
        """Serve the tally board page."""
        board, actor_id = _board_for(request)
        response = HTMLResponse(render_tally_page(board.load()))
        _remember_actor(response, actor_id)
        return response

    @app.get("/api/categories")
    async def categories() -> dict[str, object]:
        """Return the question categories in display order."""
        return {
            "categories": [
                {
                    "id": category.id,
                    "name": category.name,
                    "description": category.description,
                    "example": category.example,
                }
                for category in question_categories()
            ]
        }

    @app.get("/api/board")
    async def board_state(request: Request) -> JSONResponse:
        """Return today's counts and the weekly report for this session."""
        board, actor_id = _board_for(request)
        response = JSONResponse(board.load().to_dict())
        _remember_actor(response, actor_id)
        return response

    @app.post("/api/tally/{category_id}")
    async def record_tally(category_id: str, request: Request) -> JSONResponse:
        """Add one question of a category to today's tally."""
        board, actor_id = _board_for(request)
        written = board.record(category_id)
        logger.info(
            "Tally recorded: day=%s category=%s actor=%s",
            written.day,
            category_id,
            actor_id,
        )
        response = JSONResponse(board.view().to_dict())
        _remember_actor(response, actor_id)
        return response

    @app.get("/api/report/weekly")
    async def weekly_report(request: Request) -> dict[str, object]:
        """Return the rolling weekly summary."""
        board, _ = _board_for(request)
        view = board.load()
        if board.weekly is None:
            raise FetchFailed("No weekly summary available")
        return {"weekly": view.to_dict()["weekly"], "grand_total": view.grand_total}

    @app.get("/api/report/export.csv")
    async def export_csv(request: Request) -> Response:
        """Download the weekly report as CSV."""
        board, actor_id = _board_for(request)
        board.load()
        filename, text = board.export_csv()
        response = Response(
            content=text.encode("utf-8"),
            media_type=CSV_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
        _remember_actor(response, actor_id)
        return response

    @app.get("/report/print", response_class=HTMLResponse)
    async def print_report(request: Request) -> HTMLResponse:
        """Serve the print-only report page."""
        board, actor_id = _board_for(request)
        board.load()
        response = HTMLResponse(board.print_report(render_print_page))
        _remember_actor(response, actor_id)
        return response

    @app.get("/api/board/stream")
    async def board_stream(request: Request) -> StreamingResponse:
        """Stream rendered board updates as Server-Sent Events."""
        board, actor_id = _board_for(request, keep_new=True)
        updates: asyncio.Queue[BoardView] = asyncio.Queue()
        detach = board.attach(updates.put_nowait)

        async def events() -> AsyncIterator[str]:
            try:
                while not await request.is_disconnected():
                    try:
                        view = await asyncio.wait_for(
                            updates.get(), timeout=STREAM_KEEPALIVE_SECONDS
                        )
                    except TimeoutError:
                        board.ensure_current_day()
                        yield ": keepalive\n\n"
                        continue
                    yield f"data: {json.dumps(_stream_payload(view))}\n\n"
            finally:
                detach()

        response = StreamingResponse(events(), media_type="text/event-stream")
        _remember_actor(response, actor_id)
        return response

    return app


def create_unavailable_app(error: InitializationFailure) -> FastAPI:
    """Create an app that answers every request with the start-up failure."""
    configure_logging()
    logging.getLogger(__name__).error("Initialization failed: %s", error)
    app = FastAPI()

    @app.get("/health")
    async def health() -> JSONResponse:
        """Report the failed start-up."""
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable", "error": error.banner},
        )

    @app.api_route("/{path:path}", methods=["GET", "POST"])
    async def blocked(path: str) -> HTMLResponse:
        """Show the blocking start-up message."""
        return HTMLResponse(
            render_blocking_page(error.banner),
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return app


def _board_for(request: Request, *, keep_new: bool = False) -> tuple[TallyBoard, str]:
    """Return the caller's board and actor id.

    A caller without a header or cookie gets a transient board unless
    ``keep_new`` is set.
    """
    container: AppContainer = request.app.state.container
    actor_id, known = _resolve_actor_id(request)
    if known or keep_new:
        return container.boards.get(actor_id), actor_id
    return container.boards.transient(actor_id), actor_id


def _resolve_actor_id(request: Request) -> tuple[str, bool]:
    """Use the header, then the cookie, else start an anonymous session."""
    header = request.headers.get(ACTOR_HEADER, "").strip()
    if header:
        return header, True
    cookie = request.cookies.get(ACTOR_COOKIE, "").strip()
    if cookie:
        return cookie, True
    return str(uuid4()), False


def _remember_actor(response: Response, actor_id: str) -> None:
    response.set_cookie(ACTOR_COOKIE, actor_id, httponly=True, samesite="lax")


def _stream_payload(view: BoardView) -> dict[str, object]:
    return {
        "counts": view.daily_counts,
        "error": view.error,
        "report_html": render_report_block(view),
    }
