"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from meal_tracker.adapters.openai_inference_client import OpenAIInferenceClient
from meal_tracker.adapters.supabase_conversation_store import (
    SupabaseConversationStore,
)
from meal_tracker.adapters.supabase_credential_provider import (
    SupabaseCredentialProvider,
)
from meal_tracker.config import Settings
from meal_tracker.services.detection import (
    ConversationStore,
    CredentialProvider,
    InferenceClient,
    MealDetectionEngine,
)
from meal_tracker.services.sessions import DetectionSessionRegistry


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    conversation_store: ConversationStore
    credential_provider: CredentialProvider
    inference_client: InferenceClient
    detection_sessions: DetectionSessionRegistry
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    conversation_store = SupabaseConversationStore(supabase_client)
    credential_provider = SupabaseCredentialProvider(
        supabase_client, fallback_api_key=resolved_settings.openai_api_key
    )
    inference_client = OpenAIInferenceClient.create(
        model=resolved_settings.openai_model,
        prompt_version=resolved_settings.detection_prompt_version,
        base_url=resolved_settings.openai_base_url,
        timeout_seconds=resolved_settings.inference_timeout_seconds,
        connect_timeout_seconds=resolved_settings.inference_connect_timeout_seconds,
    )

    def build_engine() -> MealDetectionEngine:
        return MealDetectionEngine(
            inference_client=inference_client,
            conversation_store=conversation_store,
            credential_provider=credential_provider,
            prompt_id=resolved_settings.detection_prompt_id,
        )

    async def close_resources() -> None:
        await inference_client.close()

    return AppContainer(
        settings=resolved_settings,
        conversation_store=conversation_store,
        credential_provider=credential_provider,
        inference_client=inference_client,
        detection_sessions=DetectionSessionRegistry(
            build_engine,
            idle_seconds=resolved_settings.detection_session_idle_seconds,
            max_sessions=resolved_settings.max_detection_sessions,
        ),
        close_resources=close_resources,
    )
