"""Conversation history endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from meal_tracker.containers import AppContainer

router = APIRouter(prefix="/history", tags=["history"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/conversations", dependencies=[Depends(require_admin)])
async def list_conversations(
    request: Request, meal_detection: bool | None = None
) -> dict[str, object]:
    """Return stored conversations, newest first."""
    container: AppContainer = request.app.state.container
    conversations = container.conversation_store.list_conversations(meal_detection)
    return {
        "conversations": [
            {
                "id": record.id,
                "title": record.title,
                "created_at": record.created_at_millis,
                "is_meal_detection": record.is_meal_detection,
            }
            for record in conversations
        ]
    }


@router.get(
    "/conversations/{conversation_id}/messages",
    dependencies=[Depends(require_admin)],
)
async def list_messages(conversation_id: int, request: Request) -> dict[str, object]:
    """Return a conversation's messages in timestamp order."""
    container: AppContainer = request.app.state.container
    messages = container.conversation_store.list_messages(conversation_id)
    return {
        "messages": [
            {
                "id": message.id,
                "content": message.content,
                "from_user": message.from_user,
                "timestamp": message.timestamp_millis,
            }
            for message in messages
        ]
    }
