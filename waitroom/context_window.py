from datetime import datetime, timedelta
from typing import Optional

from waitroom.config import CONTEXT_WINDOW_DAYS
from waitroom.models import MessageRole
from waitroom.schemas import ChatMessage
from waitroom.store import ConversationStore

ROLE_MAP = {
    MessageRole.PATIENT: "user",
    MessageRole.ASSISTANT: "assistant",
}


class ContextWindowBuilder:
    """Renders the trailing slice of a transcript as chat-completion turns.

    Only messages newer than ``now - window`` are included. This bounds prompt
    size and cost; anything older reaches the model only through the summary.
    """

    def __init__(
        self,
        store: ConversationStore,
        window: timedelta = timedelta(days=CONTEXT_WINDOW_DAYS),
    ) -> None:
        self._store = store
        self.window = window

    async def build(
        self, identity: str, now: datetime, *, exclude_id: Optional[int] = None
    ) -> list[ChatMessage]:
        messages = await self._store.messages_since(identity, now - self.window)
        if exclude_id is not None:
            messages = [m for m in messages if m.id != exclude_id]
        return [ChatMessage(role=ROLE_MAP[m.role], content=m.content) for m in messages]


__all__ = ["ContextWindowBuilder", "ROLE_MAP"]
