"""Tests for container wiring."""

import asyncio

from meal_tracker.containers import build_container


def test_build_container_creates_engines(settings) -> None:
    container = build_container(settings)

    session_id, engine = container.detection_sessions.create()

    assert container.detection_sessions.get(session_id) is engine
    assert engine.prompt_id == settings.detection_prompt_id
    assert engine.state.phase == "idle"
    asyncio.run(container.close_resources())


def test_sessions_are_isolated(settings) -> None:
    container = build_container(settings)

    first_id, first = container.detection_sessions.create()
    second_id, second = container.detection_sessions.create()
    container.detection_sessions.discard(first_id)

    assert first is not second
    assert container.detection_sessions.get(first_id) is None
    assert container.detection_sessions.get(second_id) is second
    assert len(container.detection_sessions) == 1
    asyncio.run(container.close_resources())


def test_session_limits_come_from_settings(settings) -> None:
    settings = settings.model_copy(
        update={"detection_session_idle_seconds": 90.0, "max_detection_sessions": 5}
    )
    container = build_container(settings)

    assert container.detection_sessions.idle_seconds == 90.0
    assert container.detection_sessions.max_sessions == 5
    asyncio.run(container.close_resources())
