"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status

from meal_tracker.api.history import router as history_router
from meal_tracker.api.models import (
    AcceptedMealView,
    ComponentView,
    DetectionStateView,
    FollowUpRequest,
    StartDetectionRequest,
)
from meal_tracker.app_logging import configure_logging
from meal_tracker.containers import AppContainer
from meal_tracker.services.detection import MealDetectionEngine

# Starlette renamed the 422 constant; the literal works across versions.
_UNPROCESSABLE = 422


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

    app.include_router(history_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/detections")
    async def start_detection(
        body: StartDetectionRequest, request: Request
    ) -> DetectionStateView:
        """Open a detection session for a photo and run the first turn."""
        state_container: AppContainer = request.app.state.container
        photo_path = _resolve_photo(state_container.settings.photo_dir, body.photo_uri)
        session_id, engine = state_container.detection_sessions.create()
        state = await engine.start(photo_path)
        logger.info("Detection session %s started: %s", session_id, state.phase)
        return DetectionStateView.from_state(session_id, state)

    @app.get("/detections/{session_id}")
    async def get_detection(session_id: UUID, request: Request) -> DetectionStateView:
        """Return the current snapshot of a detection session."""
        engine = _get_engine(request, session_id)
        return DetectionStateView.from_state(session_id, engine.state)

    @app.post("/detections/{session_id}/messages")
    async def send_follow_up(
        session_id: UUID, body: FollowUpRequest, request: Request
    ) -> DetectionStateView:
        """Send the user's reply to the detection conversation."""
        engine = _get_engine(request, session_id)
        if not body.text.strip():
            raise HTTPException(
                status_code=_UNPROCESSABLE,
                detail="Message text must not be blank.",
            )
        if engine.state.is_loading:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A detection request is already in progress.",
            )
        state = await engine.send_follow_up(body.text)
        return DetectionStateView.from_state(session_id, state)

    @app.post("/detections/{session_id}/accept")
    async def accept_detection(session_id: UUID, request: Request) -> AcceptedMealView:
        """Confirm the detected components and close the session."""
        engine = _get_engine(request, session_id)
        meal_name = engine.state.meal_name
        components = engine.accept()
        if components is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="No detected components to accept.",
            )
        request.app.state.container.detection_sessions.discard(session_id)
        return AcceptedMealView(
            session_id=session_id,
            meal_name=meal_name,
            components=[ComponentView.from_component(item) for item in components],
        )

    @app.delete("/detections/{session_id}")
    async def retake_detection(session_id: UUID, request: Request) -> dict[str, str]:
        """Discard a detection session and its conversation."""
        engine = _get_engine(request, session_id)
        engine.retake()
        request.app.state.container.detection_sessions.discard(session_id)
        return {"status": "ok"}

    return app


def _get_engine(request: Request, session_id: UUID) -> MealDetectionEngine:
    container: AppContainer = request.app.state.container
    engine = container.detection_sessions.get(session_id)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return engine


def _resolve_photo(photo_dir: Path, photo_uri: str) -> str:
    """Resolve a client-supplied photo path, keeping it inside ``photo_dir``."""
    root = photo_dir.resolve()
    try:
        resolved = (root / photo_uri).resolve()
    except (OSError, ValueError):
        resolved = None
    if resolved is None or not resolved.is_relative_to(root):
        raise HTTPException(
            status_code=_UNPROCESSABLE,
            detail="photo_uri must point to a file in the photo directory.",
        )
    return str(resolved)
