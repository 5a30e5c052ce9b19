"""ASGI entrypoint for the pantry scanner API."""

from pantry_scanner.api.app import create_app
from pantry_scanner.containers import build_container

app = create_app(build_container())
