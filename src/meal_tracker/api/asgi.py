"""ASGI entrypoint for the meal tracker API."""

from meal_tracker.api.app import create_app
from meal_tracker.containers import build_container

app = create_app(build_container())
