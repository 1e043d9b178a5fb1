"""Conversation engine that turns a meal photo into confirmed components."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

from meal_tracker.domain.conversations import ConversationRecord, MessageRecord
from meal_tracker.domain.detection import (
    ClarificationResult,
    ComponentsResult,
    DetectionState,
    DetectionTurn,
    FreeTextResult,
    MealComponent,
    NormalizedResponse,
    ParseFailure,
)
from meal_tracker.domain.errors import (
    CredentialMissingError,
    DetectionValidationError,
    InferenceTransportError,
)
from meal_tracker.services.normalizer import normalize_response, response_reference

logger = logging.getLogger(__name__)

DETECTION_TITLE = "Meal Detection"
ANALYZE_PROMPT = (
    "Please analyze this meal image and identify all food components "
    "with their nutritional information."
)
NO_COMPONENTS_MESSAGE = (
    "Could not detect meal components. Please try again or provide more details."
)


class InferenceClient(Protocol):
    """Interface for the multimodal inference service."""

    async def send_initial(
        self, *, api_key: str, prompt_id: str, image_bytes: bytes, text: str
    ) -> object:
        """Send a request that includes the photo and return the raw JSON."""

    async def send_follow_up(
        self,
        *,
        api_key: str,
        prompt_id: str,
        previous_response_id: str,
        text: str,
    ) -> object:
        """Send a text-only request chained to a prior response."""


class ConversationStore(Protocol):
    """Persistence interface for conversations and their messages."""

    def create_conversation(
        self, title: str, created_at: int, is_meal_detection: bool
    ) -> int:
        """Create a conversation and return its id."""

    def delete_conversation(self, conversation_id: int) -> None:
        """Delete a conversation together with its messages."""

    def append_message(
        self, conversation_id: int, content: str, from_user: bool, timestamp: int
    ) -> None:
        """Append a message to a conversation."""

    def list_conversations(
        self, is_meal_detection: bool | None = None
    ) -> list[ConversationRecord]:
        """Return conversations, newest first."""

    def list_messages(self, conversation_id: int) -> list[MessageRecord]:
        """Return a conversation's messages in timestamp order."""


class CredentialProvider(Protocol):
    """Source of the inference API key."""

    def get_api_key(self) -> str:
        """Return the configured API key, or an empty string."""


StateListener = Callable[[DetectionState], None]


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


async def _read_photo(photo_uri: str) -> bytes:
    return await asyncio.to_thread(Path(photo_uri).read_bytes)


@dataclass
class MealDetectionEngine:
    """State machine for one photo detection session.

    Callers drive it with ``start``, ``send_follow_up``, ``retake`` and
    ``accept`` and observe ``state``. Failures never propagate: they land in
    ``DetectionState.error`` and the conversation stays usable.
    """

    inference_client: InferenceClient
    conversation_store: ConversationStore
    credential_provider: CredentialProvider
    prompt_id: str
    clock: Callable[[], int] = _now_millis
    photo_loader: Callable[[str], Awaitable[bytes]] = _read_photo
    _state: DetectionState = field(default_factory=DetectionState, init=False)
    _listeners: list[StateListener] = field(default_factory=list, init=False)

    @property
    def state(self) -> DetectionState:
        """Return the current snapshot."""
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener for new snapshots and return an unsubscribe hook."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start(self, photo_uri: str) -> DetectionState:
        """Open a detection conversation for a photo and run the first turn."""
        try:
            _require_text(photo_uri, "photo_uri")
        except DetectionValidationError as exc:
            logger.info("Rejected start: %s", exc)
            return self._state
        if self._state.is_loading:
            logger.warning("Rejected start while a request is in flight")
            return self._state
        if self._state.has_session:
            # The open conversation must be retaken or accepted first.
            logger.warning(
                "Rejected start while conversation %s is open",
                self._state.conversation_id,
            )
            return self._state

        try:
            api_key = self._api_key()
        except CredentialMissingError as exc:
            logger.error("Inference API key is not configured")
            self._publish(DetectionState(photo_uri=photo_uri, error=str(exc)))
            return self._state

        try:
            conversation_id = self.conversation_store.create_conversation(
                title=DETECTION_TITLE,
                created_at=self.clock(),
                is_meal_detection=True,
            )
        except Exception as exc:
            logger.exception("Failed to create detection conversation")
            self._publish(
                DetectionState(photo_uri=photo_uri, error=f"Storage error: {exc}")
            )
            return self._state

        self._publish(
            DetectionState(
                photo_uri=photo_uri,
                conversation_id=conversation_id,
                is_loading=True,
            )
        )
        await self._run_turn(conversation_id, api_key, ANALYZE_PROMPT, with_photo=True)
        return self._state

    async def send_follow_up(self, text: str) -> DetectionState:
        """Send the user's reply and run the next turn."""
        try:
            _require_text(text, "text")
        except DetectionValidationError as exc:
            logger.info("Rejected follow-up: %s", exc)
            return self._state
        current = self._state
        if current.is_loading:
            logger.warning("Rejected follow-up while a request is in flight")
            return current
        if not current.has_session:
            logger.warning("Rejected follow-up without an active detection session")
            return current

        try:
            api_key = self._api_key()
        except CredentialMissingError as exc:
            logger.error("Inference API key is not configured")
            self._publish(replace(current, error=str(exc)))
            return self._state

        conversation_id = current.conversation_id
        content = text.strip()
        turn = DetectionTurn(
            content=content, from_user=True, timestamp_millis=self._timestamp()
        )
        try:
            self.conversation_store.append_message(
                conversation_id=conversation_id,
                content=turn.content,
                from_user=True,
                timestamp=turn.timestamp_millis,
            )
        except Exception as exc:
            logger.exception("Failed to store follow-up message")
            self._publish(replace(current, error=f"Storage error: {exc}"))
            return self._state

        self._publish(
            replace(
                current,
                turns=(*current.turns, turn),
                current_components=None,
                current_question=None,
                is_loading=True,
                error=None,
            )
        )
        if current.last_response_ref:
            await self._run_turn(conversation_id, api_key, content, with_photo=False)
        else:
            # Without a response id the service has no context; replay everything.
            await self._run_turn(
                conversation_id,
                api_key,
                _transcript(self._state.turns),
                with_photo=True,
            )
        return self._state

    def retake(self) -> DetectionState:
        """Discard the session and its conversation record."""
        conversation_id = self._state.conversation_id
        self._publish(DetectionState())
        if conversation_id >= 0:
            try:
                self.conversation_store.delete_conversation(conversation_id)
            except Exception:
                logger.exception(
                    "Failed to delete detection conversation %s", conversation_id
                )
        return self._state

    def accept(self) -> tuple[MealComponent, ...] | None:
        """Return the confirmed components and close the session.

        The conversation is kept as history; persisting the meal is up to the
        caller.
        """
        current = self._state
        if current.is_loading or current.current_components is None:
            return None
        self._publish(DetectionState())
        return current.current_components

    async def _run_turn(
        self, conversation_id: int, api_key: str, text: str, *, with_photo: bool
    ) -> None:
        photo_uri = self._state.photo_uri
        try:
            if with_photo:
                image_bytes = await self.photo_loader(photo_uri)
                raw = await self.inference_client.send_initial(
                    api_key=api_key,
                    prompt_id=self.prompt_id,
                    image_bytes=image_bytes,
                    text=text,
                )
            else:
                raw = await self.inference_client.send_follow_up(
                    api_key=api_key,
                    prompt_id=self.prompt_id,
                    previous_response_id=self._state.last_response_ref or "",
                    text=text,
                )
        except InferenceTransportError as exc:
            logger.warning("Inference request failed: %s", exc)
            self._fail(conversation_id, f"API Error: {exc}")
            return
        except OSError as exc:
            logger.warning("Could not read photo %s: %s", photo_uri, exc)
            self._fail(conversation_id, f"Could not read photo: {exc}")
            return
        except Exception as exc:
            logger.exception("Detection turn failed unexpectedly")
            self._fail(conversation_id, f"Unexpected error: {exc}")
            return

        if not self._is_current(conversation_id):
            logger.info("Discarding response for retired conversation %s", conversation_id)
            return
        self._apply(conversation_id, normalize_response(raw), response_reference(raw))

    def _apply(
        self,
        conversation_id: int,
        result: NormalizedResponse,
        response_ref: str | None,
    ) -> None:
        current = self._state
        components: tuple[MealComponent, ...] | None = None
        question: str | None = None
        meal_name: str | None = None
        error: str | None = None
        if isinstance(result, ComponentsResult):
            components = result.components
            meal_name = result.meal_name
            content = _components_message(result)
        elif isinstance(result, ClarificationResult):
            question = result.question
            content = result.question
        elif isinstance(result, FreeTextResult):
            content = result.text
        elif isinstance(result, ParseFailure):
            content = NO_COMPONENTS_MESSAGE
            error = f"Could not detect meal: {result.diagnostic}"
        else:
            raise TypeError(f"Unhandled detection result: {result!r}")

        turn = DetectionTurn(
            content=content, from_user=False, timestamp_millis=self._timestamp()
        )
        try:
            self.conversation_store.append_message(
                conversation_id=conversation_id,
                content=turn.content,
                from_user=False,
                timestamp=turn.timestamp_millis,
            )
        except Exception as exc:
            logger.exception("Failed to store detection reply")
            self._publish(
                replace(
                    current,
                    last_response_ref=response_ref or current.last_response_ref,
                    is_loading=False,
                    error=f"Storage error: {exc}",
                )
            )
            return

        self._publish(
            replace(
                current,
                turns=(*current.turns, turn),
                current_components=components,
                current_question=question,
                meal_name=meal_name,
                last_response_ref=response_ref or current.last_response_ref,
                is_loading=False,
                error=error,
            )
        )

    def _fail(self, conversation_id: int, message: str) -> None:
        if not self._is_current(conversation_id):
            return
        self._publish(replace(self._state, is_loading=False, error=message))

    def _is_current(self, conversation_id: int) -> bool:
        return self._state.conversation_id == conversation_id

    def _api_key(self) -> str:
        try:
            api_key = self.credential_provider.get_api_key()
        except Exception:
            logger.exception("Failed to load inference API key")
            api_key = ""
        if not api_key or not api_key.strip():
            raise CredentialMissingError()
        return api_key.strip()

    def _timestamp(self) -> int:
        now = self.clock()
        if self._state.turns:
            return max(now, self._state.turns[-1].timestamp_millis)
        return now

    def _publish(self, state: DetectionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Detection state listener failed")


def _require_text(value: str, label: str) -> None:
    if not value or not value.strip():
        raise DetectionValidationError(f"{label} must not be blank")


def _transcript(turns: tuple[DetectionTurn, ...]) -> str:
    lines = [f"{'User' if turn.from_user else 'AI'}: {turn.content}" for turn in turns]
    return "\n".join(lines)


def _components_message(result: ComponentsResult) -> str:
    lines = [
        f"Detected: {result.meal_name or 'Meal'}",
        "",
        f"Components ({len(result.components)}):",
    ]
    for index, component in enumerate(result.components, start=1):
        lines.append(
            f"{index}. {component.name} - {component.weight_grams:g}g "
            f"({component.energy_kcal:g} kcal)"
        )
    if result.comment:
        lines.extend(["", result.comment])
    return "\n".join(lines)
