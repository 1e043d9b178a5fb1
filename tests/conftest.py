"""Shared test fixtures."""

import json
from dataclasses import dataclass, field

import pytest

from meal_tracker.config import Settings
from meal_tracker.containers import AppContainer
from meal_tracker.domain.conversations import ConversationRecord, MessageRecord
from meal_tracker.domain.errors import InferenceTransportError
from meal_tracker.services.detection import (
    ConversationStore,
    CredentialProvider,
    InferenceClient,
    MealDetectionEngine,
)
from meal_tracker.services.sessions import DetectionSessionRegistry

RICE_RESPONSE: dict[str, object] = {
    "id": "resp_rice",
    "meal_components": [
        {
            "name": "Rice",
            "weight_g": 150,
            "energy_kcal": 195,
            "protein_g": 4,
            "fat_g": 1,
            "carbs_g": 42,
        }
    ],
}

CLARIFICATION_RESPONSE: dict[str, object] = {
    "id": "resp_question",
    "output": [
        {
            "type": "message",
            "content": [
                {
                    "type": "output_text",
                    "text": json.dumps(
                        [{"name": "Rice", "question": "White or brown rice?"}]
                    ),
                }
            ],
        }
    ],
}


@dataclass
class InMemoryConversationStore(ConversationStore):
    """In-memory conversation store for tests."""

    conversations: dict[int, ConversationRecord] = field(default_factory=dict)
    messages: list[MessageRecord] = field(default_factory=list)
    deleted: list[int] = field(default_factory=list)
    fail_deletes: bool = False
    _next_id: int = 1

    def create_conversation(
        self, title: str, created_at: int, is_meal_detection: bool
    ) -> int:
        conversation_id = self._next_id
        self._next_id += 1
        self.conversations[conversation_id] = ConversationRecord(
            id=conversation_id,
            title=title,
            created_at_millis=created_at,
            is_meal_detection=is_meal_detection,
        )
        return conversation_id

    def delete_conversation(self, conversation_id: int) -> None:
        if self.fail_deletes:
            raise RuntimeError("database is locked")
        self.deleted.append(conversation_id)
        self.conversations.pop(conversation_id, None)
        self.messages = [
            message
            for message in self.messages
            if message.conversation_id != conversation_id
        ]

    def append_message(
        self, conversation_id: int, content: str, from_user: bool, timestamp: int
    ) -> None:
        self.messages.append(
            MessageRecord(
                id=len(self.messages) + 1,
                conversation_id=conversation_id,
                content=content,
                from_user=from_user,
                timestamp_millis=timestamp,
            )
        )

    def list_conversations(
        self, is_meal_detection: bool | None = None
    ) -> list[ConversationRecord]:
        records = [
            record
            for record in self.conversations.values()
            if is_meal_detection is None
            or record.is_meal_detection == is_meal_detection
        ]
        return sorted(records, key=lambda record: record.created_at_millis, reverse=True)

    def list_messages(self, conversation_id: int) -> list[MessageRecord]:
        return sorted(
            (m for m in self.messages if m.conversation_id == conversation_id),
            key=lambda message: message.timestamp_millis,
        )


@dataclass
class FakeCredentialProvider(CredentialProvider):
    """Credential provider returning a fixed key."""

    api_key: str = "sk-test"

    def get_api_key(self) -> str:
        return self.api_key


@dataclass
class FakeInferenceClient(InferenceClient):
    """Inference client replaying queued responses and recording calls."""

    responses: list[object] = field(default_factory=list)
    calls: list[dict[str, object]] = field(default_factory=list)

    def queue(self, *responses: object) -> None:
        self.responses.extend(responses)

    async def send_initial(
        self, *, api_key: str, prompt_id: str, image_bytes: bytes, text: str
    ) -> object:
        self.calls.append(
            {
                "kind": "initial",
                "api_key": api_key,
                "prompt_id": prompt_id,
                "image_bytes": image_bytes,
                "text": text,
            }
        )
        return self._next()

    async def send_follow_up(
        self,
        *,
        api_key: str,
        prompt_id: str,
        previous_response_id: str,
        text: str,
    ) -> object:
        self.calls.append(
            {
                "kind": "follow_up",
                "api_key": api_key,
                "prompt_id": prompt_id,
                "previous_response_id": previous_response_id,
                "text": text,
            }
        )
        return self._next()

    def _next(self) -> object:
        if not self.responses:
            raise AssertionError("No queued inference response")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def transport_error(status_code: int = 500, body: str = "upstream failed") -> Exception:
    return InferenceTransportError(f"HTTP {status_code}: {body}", status_code=status_code)


@dataclass
class TickingClock:
    """Deterministic millisecond clock."""

    now: int = 1_700_000_000_000
    step: int = 10

    def __call__(self) -> int:
        self.now += self.step
        return self.now


async def fake_photo_loader(photo_uri: str) -> bytes:
    return b"\xff\xd8\xff" + photo_uri.encode()


@pytest.fixture
def conversation_store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def inference_client() -> FakeInferenceClient:
    return FakeInferenceClient()


@pytest.fixture
def credential_provider() -> FakeCredentialProvider:
    return FakeCredentialProvider()


@pytest.fixture
def engine(
    inference_client: FakeInferenceClient,
    conversation_store: InMemoryConversationStore,
    credential_provider: FakeCredentialProvider,
) -> MealDetectionEngine:
    return MealDetectionEngine(
        inference_client=inference_client,
        conversation_store=conversation_store,
        credential_provider=credential_provider,
        prompt_id="pmpt_test",
        clock=TickingClock(),
        photo_loader=fake_photo_loader,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
        admin_token="admin-token",
        openai_api_key="sk-test",
        photo_dir="/tmp",
    )


@pytest.fixture
def container(
    settings: Settings,
    inference_client: FakeInferenceClient,
    conversation_store: InMemoryConversationStore,
    credential_provider: FakeCredentialProvider,
) -> AppContainer:
    def build_engine() -> MealDetectionEngine:
        return MealDetectionEngine(
            inference_client=inference_client,
            conversation_store=conversation_store,
            credential_provider=credential_provider,
            prompt_id=settings.detection_prompt_id,
            clock=TickingClock(),
            photo_loader=fake_photo_loader,
        )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        conversation_store=conversation_store,
        credential_provider=credential_provider,
        inference_client=inference_client,
        detection_sessions=DetectionSessionRegistry(build_engine),
        close_resources=close_resources,
    )
