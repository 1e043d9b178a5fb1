"""Tests for the detection session registry."""

from dataclasses import replace

from meal_tracker.services.detection import MealDetectionEngine
from meal_tracker.services.sessions import DetectionSessionRegistry
from tests.conftest import (
    FakeCredentialProvider,
    FakeInferenceClient,
    InMemoryConversationStore,
)


class ManualClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _build_engine() -> MealDetectionEngine:
    return MealDetectionEngine(
        inference_client=FakeInferenceClient(),
        conversation_store=InMemoryConversationStore(),
        credential_provider=FakeCredentialProvider(),
        prompt_id="pmpt_test",
    )


def test_idle_sessions_are_evicted_on_create() -> None:
    clock = ManualClock()
    registry = DetectionSessionRegistry(_build_engine, idle_seconds=60, clock=clock)
    stale_id, _ = registry.create()
    clock.now = 30
    active_id, _ = registry.create()
    clock.now = 80
    registry.get(active_id)

    clock.now = 100
    fresh_id, _ = registry.create()

    assert registry.get(stale_id) is None
    assert registry.get(active_id) is not None
    assert registry.get(fresh_id) is not None
    assert len(registry) == 2


def test_loading_sessions_survive_idle_eviction() -> None:
    clock = ManualClock()
    registry = DetectionSessionRegistry(_build_engine, idle_seconds=60, clock=clock)
    busy_id, busy = registry.create()
    busy._state = replace(busy.state, is_loading=True)

    clock.now = 500
    registry.create()

    assert registry.get(busy_id) is busy


def test_oldest_session_is_evicted_over_capacity() -> None:
    registry = DetectionSessionRegistry(_build_engine, max_sessions=2)
    first_id, _ = registry.create()
    second_id, _ = registry.create()

    third_id, _ = registry.create()

    assert registry.get(first_id) is None
    assert registry.get(second_id) is not None
    assert registry.get(third_id) is not None
    assert len(registry) == 2
