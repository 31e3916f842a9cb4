"""ASGI entrypoint, served with ``uvicorn pixel_paywall.api.asgi:app``."""

from pixel_paywall.api.app import create_app
from pixel_paywall.config import Settings
from pixel_paywall.containers import build_container

settings = Settings()
app = create_app(build_container(settings))
