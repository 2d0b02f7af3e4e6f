"""Chat assistant that manages Todoist tasks through natural language."""

from .content_sanitizer import ContentSanitizer
from .intent_service import IntentService
from .models import (
    ConversationState,
    IntentAction,
    IntentResult,
    Message,
    TodoistTask,
    TurnOutcome,
    TurnResult,
)
from .orchestrator import TaskOrchestrator
from .session import ChatSession, create_chat_session
from .todoist_client import TodoistClient

__all__ = [
    "ChatSession",
    "create_chat_session",
    "ContentSanitizer",
    "ConversationState",
    "IntentAction",
    "IntentResult",
    "IntentService",
    "Message",
    "TaskOrchestrator",
    "TodoistClient",
    "TodoistTask",
    "TurnOutcome",
    "TurnResult",
]
