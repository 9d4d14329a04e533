"""ASGI entrypoint for the punch kiosk API."""

from biometric_punch.api.app import create_app
from biometric_punch.containers import build_container

app = create_app(build_container())
