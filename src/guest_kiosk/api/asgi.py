"""ASGI entrypoint for the guest kiosk API."""

from guest_kiosk.api.app import create_app
from guest_kiosk.containers import build_container

app = create_app(build_container())
