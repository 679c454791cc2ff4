"""ASGI entrypoint for the Pixel Forge API."""

from pixel_forge.api.app import create_app
from pixel_forge.containers import build_container

app = create_app(build_container())
