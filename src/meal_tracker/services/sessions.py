"""Registry of independent detection sessions."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import UUID, uuid4

from meal_tracker.services.detection import MealDetectionEngine

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    engine: MealDetectionEngine
    touched_at: float


@dataclass
class DetectionSessionRegistry:
    """Hands out one isolated engine per detection session.

    Sessions idle for longer than ``idle_seconds`` are evicted when a new one
    is created, and the registry never holds more than ``max_sessions``.
    Evicted conversations stay in the store as history.
    """

    engine_factory: Callable[[], MealDetectionEngine]
    idle_seconds: float = 3600.0
    max_sessions: int = 1000
    clock: Callable[[], float] = time.monotonic
    _sessions: dict[UUID, _Entry] = field(default_factory=dict, init=False)

    def create(self) -> tuple[UUID, MealDetectionEngine]:
        """Create a new session and return its id and engine."""
        self._evict()
        session_id = uuid4()
        engine = self.engine_factory()
        self._sessions[session_id] = _Entry(engine=engine, touched_at=self.clock())
        return session_id, engine

    def get(self, session_id: UUID) -> MealDetectionEngine | None:
        """Return the engine for a session, if present."""
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        entry.touched_at = self.clock()
        return entry.engine

    def discard(self, session_id: UUID) -> None:
        """Forget a session."""
        self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def _evict(self) -> None:
        cutoff = self.clock() - self.idle_seconds
        for session_id, entry in list(self._sessions.items()):
            if entry.touched_at < cutoff and not entry.engine.state.is_loading:
                logger.info("Evicting idle detection session %s", session_id)
                del self._sessions[session_id]
        # Insertion order is creation order, so the oldest go first.
        while self._sessions and len(self._sessions) >= self.max_sessions:
            session_id = next(iter(self._sessions))
            logger.info("Evicting detection session %s over capacity", session_id)
            del self._sessions[session_id]
