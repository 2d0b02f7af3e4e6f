"""Bounded conversation context with best-effort persistence."""

import json
import logging
from typing import Any

from .config import (
    CONTEXT_STORAGE_KEY,
    CONVERSATION_HISTORY_MESSAGES,
    MAX_CONTEXT_MESSAGES,
    WELCOME_MESSAGE,
)
from .interfaces import KeyValueStore
from .models import ConversationContext, Message, MessageStatus, PendingTask

logger = logging.getLogger(__name__)


class ContextManager:
    """
    Owns the recent message window of one session.

    Every mutation is saved to the key-value store. Load and save
    failures are logged and never propagate.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_messages: int = MAX_CONTEXT_MESSAGES,
        storage_key: str = CONTEXT_STORAGE_KEY,
    ) -> None:
        self._store = store
        self._max_messages = max_messages
        self._storage_key = storage_key
        self._context = self._fresh_context()

    def _fresh_context(self) -> ConversationContext:
        welcome = Message.assistant(WELCOME_MESSAGE, status=MessageStatus.SENT)
        return ConversationContext(recent_messages=[welcome])

    def get_context(self) -> ConversationContext:
        return self._context

    @property
    def messages(self) -> list[Message]:
        return list(self._context.recent_messages)

    async def load(self) -> ConversationContext:
        """Load persisted context; start fresh when absent or unreadable."""
        try:
            raw = await self._store.load(self._storage_key)
            if raw is None:
                logger.debug("No stored context, starting fresh")
                self._context = self._fresh_context()
            else:
                self._context = self._deserialize(json.loads(raw))
                logger.debug(
                    f"Context loaded with {len(self._context.recent_messages)} messages"
                )
        except Exception as e:
            logger.error(f"Error loading context, starting fresh: {e}")
            self._context = self._fresh_context()
        return self._context

    async def save(self) -> None:
        try:
            await self._store.save(
                self._storage_key, json.dumps(self._serialize(self._context))
            )
        except Exception as e:
            logger.error(f"Error saving context: {e}")

    async def add_message(self, message: Message) -> None:
        self._context.recent_messages.append(message)
        overflow = len(self._context.recent_messages) - self._max_messages
        if overflow > 0:
            del self._context.recent_messages[:overflow]
        await self.save()

    async def replace_message(self, message: Message) -> None:
        """Swap in a new version of a message (same id), e.g. after a status change."""
        for index, existing in enumerate(self._context.recent_messages):
            if existing.id == message.id:
                self._context.recent_messages[index] = message
                await self.save()
                return
        await self.add_message(message)

    async def update_query(self, query: str) -> None:
        self._context.last_query = query
        await self.save()

    async def set_pending_tasks(self, pending: list[PendingTask]) -> None:
        self._context.pending_tasks = list(pending)
        await self.save()

    async def reset(self) -> None:
        self._context = self._fresh_context()
        await self.save()

    def build_conversation_history(
        self, limit: int = CONVERSATION_HISTORY_MESSAGES
    ) -> list[dict[str, str]]:
        return [
            {"role": message.role.value, "content": message.content}
            for message in self._context.recent_messages[-limit:]
        ]

    @staticmethod
    def _serialize(context: ConversationContext) -> dict[str, Any]:
        return {
            "recent_messages": [m.to_dict() for m in context.recent_messages],
            "last_query": context.last_query,
            "pending_tasks": [p.to_dict() for p in context.pending_tasks],
        }

    def _deserialize(self, data: dict[str, Any]) -> ConversationContext:
        messages = [Message.from_dict(m) for m in data.get("recent_messages") or []]
        return ConversationContext(
            recent_messages=messages[-self._max_messages :],
            last_query=data.get("last_query"),
            pending_tasks=[
                PendingTask.from_dict(p) for p in data.get("pending_tasks") or []
            ],
        )
