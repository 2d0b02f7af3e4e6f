"""Data models for the chat assistant pipeline."""

import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class MessageRole(str, Enum):
    """Chat message author."""

    USER = "user"
    ASSISTANT = "assistant"


class MessageStatus(str, Enum):
    """Delivery status of a chat message."""

    SENDING = "sending"
    SENT = "sent"
    ERROR = "error"


class ConversationState(str, Enum):
    """Dialogue states of a chat session."""

    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_CLARIFICATION = "awaiting_clarification"
    PROCESSING_TASK = "processing_task"
    PROCESSING_MULTIPLE_TASKS = "processing_multiple_tasks"


class IntentAction(str, Enum):
    """Actions the intent recognizer can classify input into."""

    CREATE = "create"
    CREATE_MULTIPLE = "create_multiple"
    UPDATE = "update"
    COMPLETE = "complete"
    LIST = "list"
    NONE = "none"


class PendingKind(str, Enum):
    """Why a task is held back from creation."""

    DUPLICATE = "duplicate"
    PRIORITY = "priority"


class TurnOutcome(str, Enum):
    """Result tag of one orchestrated user turn."""

    CREATED = "created"
    CREATED_MULTIPLE = "created_multiple"
    UPDATED = "updated"
    COMPLETED = "completed"
    LISTED = "listed"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_CLARIFICATION = "awaiting_clarification"
    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    NOT_ACTIONABLE = "not_actionable"
    IGNORED = "ignored"


def generate_id() -> str:
    """Short random identifier for messages."""
    return uuid.uuid4().hex[:9]


@dataclass
class TaskDue:
    """Due specification of a Todoist task."""

    date: str
    string: str | None = None
    datetime: str | None = None

    def display(self) -> str:
        return self.string or self.date


@dataclass
class TodoistTask:
    """A task owned by the remote task store."""

    id: str
    content: str
    priority: int = 1
    due: TaskDue | None = None
    labels: list[str] = field(default_factory=list)
    completed: bool = False
    project_id: str | None = None

    @property
    def priority_label(self) -> str:
        """Todoist UI label: API priority 4 is shown as P1."""
        return f"P{5 - self.priority}"


@dataclass(frozen=True)
class Message:
    """A chat message. Frozen: status changes produce a new instance."""

    role: MessageRole
    content: str
    id: str = field(default_factory=generate_id)
    timestamp: datetime = field(default_factory=datetime.now)
    status: MessageStatus | None = None

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str, status: MessageStatus | None = None
    ) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content, status=status)

    def with_status(self, status: MessageStatus) -> "Message":
        if self.status not in (None, MessageStatus.SENDING):
            raise ValueError(f"Message {self.id} is no longer mutable")
        return replace(self, status=status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value if self.status else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            id=data["id"],
            role=MessageRole(data["role"]),
            content=data["content"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            status=MessageStatus(data["status"]) if data.get("status") else None,
        )


@dataclass
class PendingTask:
    """A task description awaiting user disambiguation."""

    content: str
    kind: PendingKind
    due_string: str | None = None
    priority: int | None = None
    labels: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "kind": self.kind.value,
            "due_string": self.due_string,
            "priority": self.priority,
            "labels": list(self.labels),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingTask":
        return cls(
            content=data["content"],
            kind=PendingKind(data["kind"]),
            due_string=data.get("due_string"),
            priority=data.get("priority"),
            labels=list(data.get("labels") or []),
        )


@dataclass
class ConversationContext:
    """Bounded conversation window owned by one session."""

    recent_messages: list[Message] = field(default_factory=list)
    last_query: str | None = None
    pending_tasks: list[PendingTask] = field(default_factory=list)


@dataclass
class StateContext:
    """Context blob carried by the conversation state machine."""

    previous_state: ConversationState | None = None
    pending_action: str | None = None
    metadata: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class StateTransition:
    """One entry of the state machine's diagnostic history."""

    state: ConversationState
    timestamp: datetime


@dataclass
class InputAnalysis:
    """How the state machine reads an incoming message."""

    is_confirmation: bool
    is_cancel: bool
    filtered_input: str


@dataclass
class TaskSpec:
    """One task as described by a create_multiple intent."""

    content: str
    due_date: str | None = None
    priority: str | None = None
    labels: list[str] | None = None


@dataclass
class IntentEntities:
    """Entities extracted from user text."""

    task_content: str | None = None
    due_date: str | None = None
    priority: str | None = None
    labels: list[str] | None = None
    task_id: str | None = None
    update_field: str | None = None
    update_value: str | None = None


@dataclass
class IntentResult:
    """Structured classification of a user message."""

    action: IntentAction
    confidence: float
    entities: IntentEntities = field(default_factory=IntentEntities)
    tasks: list[TaskSpec] = field(default_factory=list)
    task_count: int | None = None
    reasoning: str = ""

    def is_actionable(self, threshold: float) -> bool:
        return self.action != IntentAction.NONE and self.confidence > threshold


@dataclass
class ParsedTaskDetails:
    """Task operation extracted by either intent front-end."""

    content: str = ""
    due_date: str | None = None
    priority: int | None = None
    labels: list[str] = field(default_factory=list)
    is_task_creation: bool = False
    is_task_update: bool = False
    is_task_completion: bool = False
    is_task_listing: bool = False
    update_task_name: str | None = None
    update_field: str = "due_date"
    update_value: str | None = None
    batch: list[TaskSpec] = field(default_factory=list)
    declared_count: int | None = None


@dataclass
class SanitizationRule:
    """A named pattern/replacement pair."""

    name: str
    pattern: re.Pattern[str]
    replacement: str | Callable[[re.Match[str]], str]
    description: str
    enabled: bool = True
    count: int = 1  # 0 replaces every match


@dataclass
class SanitizationResult:
    """Outcome of sanitizing one string."""

    original: Any
    sanitized: Any
    rules_applied: list[str] = field(default_factory=list)
    has_changes: bool = False


@dataclass
class FieldError:
    """One violated validation rule."""

    field: str
    message: str
    code: str


@dataclass
class ValidationResult:
    """Outcome of validating one input shape."""

    success: bool
    data: Any = None
    errors: list[FieldError] = field(default_factory=list)

    @classmethod
    def ok(cls, data: Any) -> "ValidationResult":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, errors: list[FieldError]) -> "ValidationResult":
        return cls(success=False, errors=errors)

    def error_message(self) -> str:
        return ", ".join(error.message for error in self.errors)


@dataclass
class TaskStoreResponse:
    """Envelope returned by every task-store client call."""

    success: bool
    data: Any = None
    error: str | None = None


@dataclass
class LLMRequest:
    """Request sent to the LLM proxy."""

    message: str
    system_prompt: str
    conversation_history: list[dict[str, str]] = field(default_factory=list)
    tasks: list[TodoistTask] = field(default_factory=list)


@dataclass
class LLMResponse:
    """Envelope returned by the LLM proxy."""

    success: bool
    response: str = ""
    error: str | None = None


@dataclass
class TurnResult:
    """What the orchestrator did with one user turn."""

    accepted: bool
    outcome: TurnOutcome
    messages: list[Message] = field(default_factory=list)
    pending_kind: PendingKind | None = None
    resolved_pending: bool = False
    created_tasks: list[TodoistTask] = field(default_factory=list)
    intent: IntentResult | None = None
