"""ASGI entrypoint for the inspection journey API."""

from inspection_journey.api.app import create_app
from inspection_journey.containers import build_container

app = create_app(build_container())
