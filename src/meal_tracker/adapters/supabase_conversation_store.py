"""Supabase-backed conversation store."""

from dataclasses import dataclass

from supabase import Client

from meal_tracker.domain.conversations import ConversationRecord, MessageRecord
from meal_tracker.services.detection import ConversationStore


@dataclass
class SupabaseConversationStore(ConversationStore):
    """Supabase implementation for conversations and messages."""

    client: Client

    def create_conversation(
        self, title: str, created_at: int, is_meal_detection: bool
    ) -> int:
        """Create a conversation row and return its id."""
        response = (
            self.client.table("conversations")
            .insert(
                {
                    "title": title,
                    "created_at": created_at,
                    "is_meal_detection": is_meal_detection,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create conversation")
        return int(response.data[0]["id"])

    def delete_conversation(self, conversation_id: int) -> None:
        """Delete a conversation and every message that references it."""
        self.client.table("messages").delete().eq(
            "conversation_id", conversation_id
        ).execute()
        self.client.table("conversations").delete().eq("id", conversation_id).execute()

    def append_message(
        self, conversation_id: int, content: str, from_user: bool, timestamp: int
    ) -> None:
        """Insert a message row."""
        response = (
            self.client.table("messages")
            .insert(
                {
                    "conversation_id": conversation_id,
                    "content": content,
                    "is_from_user": from_user,
                    "timestamp": timestamp,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to store message")

    def list_conversations(
        self, is_meal_detection: bool | None = None
    ) -> list[ConversationRecord]:
        """Return conversations ordered by creation time, newest first."""
        query = self.client.table("conversations").select(
            "id, title, created_at, is_meal_detection"
        )
        if is_meal_detection is not None:
            query = query.eq("is_meal_detection", is_meal_detection)
        response = query.order("created_at", desc=True).execute()
        return [
            ConversationRecord(
                id=int(row["id"]),
                title=row["title"],
                created_at_millis=int(row["created_at"]),
                is_meal_detection=bool(row.get("is_meal_detection", False)),
            )
            for row in response.data or []
        ]

    def list_messages(self, conversation_id: int) -> list[MessageRecord]:
        """Return messages for a conversation in timestamp order."""
        response = (
            self.client.table("messages")
            .select("id, conversation_id, content, is_from_user, timestamp")
            .eq("conversation_id", conversation_id)
            .order("timestamp")
            .execute()
        )
        return [
            MessageRecord(
                id=int(row["id"]),
                conversation_id=int(row["conversation_id"]),
                content=row["content"],
                from_user=bool(row["is_from_user"]),
                timestamp_millis=int(row["timestamp"]),
            )
            for row in response.data or []
        ]
