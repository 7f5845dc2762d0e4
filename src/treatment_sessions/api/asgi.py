"""ASGI entrypoint for the treatment sessions API."""

from treatment_sessions.api.app import create_app
from treatment_sessions.containers import build_container

app = create_app(build_container())
