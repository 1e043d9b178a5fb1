"""Supabase repository for the stored inference API key."""

from dataclasses import dataclass

from supabase import Client

from meal_tracker.services.detection import CredentialProvider

_SETTINGS_ROW_ID = 1


@dataclass
class SupabaseCredentialProvider(CredentialProvider):
    """Reads the API key from user settings, falling back to the environment."""

    client: Client
    fallback_api_key: str | None = None

    def get_api_key(self) -> str:
        """Return the stored API key, the fallback key, or an empty string."""
        response = (
            self.client.table("user_settings")
            .select("openai_api_key")
            .eq("id", _SETTINGS_ROW_ID)
            .limit(1)
            .execute()
        )
        if response.data:
            stored = response.data[0].get("openai_api_key")
            if isinstance(stored, str) and stored.strip():
                return stored.strip()
        return (self.fallback_api_key or "").strip()
