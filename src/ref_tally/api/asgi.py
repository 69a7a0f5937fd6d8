"""ASGI entrypoint for the reference tally board."""

from ref_tally.api.app import create_app, create_unavailable_app
from ref_tally.containers import build_container
from ref_tally.domain.errors import InitializationFailure

try:
    app = create_app(build_container())
except InitializationFailure as exc:
    app = create_unavailable_app(exc)
