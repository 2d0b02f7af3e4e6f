"""Pydantic schemas for task payloads, user input and proxy envelopes."""

import re
from typing import Annotated, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    field_validator,
)
from pydantic_core import PydanticCustomError

from .config import (
    LABEL_PATTERN,
    MAX_CONTENT_LENGTH,
    MAX_LABEL_LENGTH,
    MAX_LABELS,
    MAX_USER_INPUT_LENGTH,
)
from .models import IntentAction, TaskDue, TodoistTask

_LABEL_RE = re.compile(LABEL_PATTERN)


def check_content(value: Any) -> str:
    """Content rules shared by creation and update payloads."""
    if not isinstance(value, str):
        raise PydanticCustomError("invalid_type", "Task content must be a string")
    if len(value) < 1:
        raise PydanticCustomError("too_small", "Task content cannot be empty")
    if len(value) > MAX_CONTENT_LENGTH:
        raise PydanticCustomError(
            "too_big",
            "Task content must be less than {max_length} characters",
            {"max_length": MAX_CONTENT_LENGTH},
        )
    if value.lower().startswith("task:"):
        raise PydanticCustomError(
            "custom", 'Task content should not start with "task:" prefix'
        )
    if not value.strip():
        raise PydanticCustomError("custom", "Task content cannot be only whitespace")
    return value


def check_optional_content(value: Any) -> str | None:
    return None if value is None else check_content(value)


def check_due_string(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise PydanticCustomError("invalid_type", "Due date must be a string")
    if not value.strip():
        raise PydanticCustomError("custom", "Due date cannot be empty string")
    return value


def check_priority(value: Any) -> int | None:
    if value is None:
        return None
    # bool is an int subclass; reject it along with floats and strings
    if isinstance(value, bool) or not isinstance(value, int):
        raise PydanticCustomError("invalid_type", "Priority must be an integer")
    if value < 1 or value > 4:
        raise PydanticCustomError("out_of_range", "Priority must be between 1 and 4")
    return value


def check_labels(value: Any) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise PydanticCustomError("invalid_type", "Labels must be a list")
    if len(value) > MAX_LABELS:
        raise PydanticCustomError(
            "too_big",
            "Cannot have more than {max_labels} labels",
            {"max_labels": MAX_LABELS},
        )
    for label in value:
        if not isinstance(label, str):
            raise PydanticCustomError("invalid_type", "Label must be a string")
        if len(label) < 1:
            raise PydanticCustomError("too_small", "Label cannot be empty")
        if len(label) > MAX_LABEL_LENGTH:
            raise PydanticCustomError(
                "too_big",
                "Label must be less than {max_length} characters",
                {"max_length": MAX_LABEL_LENGTH},
            )
        if not _LABEL_RE.match(label):
            raise PydanticCustomError(
                "invalid_string",
                "Label can only contain letters, numbers, underscores, and hyphens",
            )
    return list(value)


Content = Annotated[str, BeforeValidator(check_content)]
OptionalContent = Annotated[str | None, BeforeValidator(check_optional_content)]
DueString = Annotated[str | None, BeforeValidator(check_due_string)]
Priority = Annotated[int | None, BeforeValidator(check_priority)]
Labels = Annotated[list[str] | None, BeforeValidator(check_labels)]


class SingleTaskCreationSchema(BaseModel):
    """Payload for creating one task."""

    model_config = ConfigDict(extra="ignore")

    content: Content
    due_string: DueString = None
    priority: Priority = None
    labels: Labels = None


class MultipleTaskCreationSchema(BaseModel):
    """Payload for creating several tasks in one turn."""

    tasks: list[SingleTaskCreationSchema]

    @field_validator("tasks", mode="before")
    @classmethod
    def _at_least_one(cls, value: Any) -> Any:
        if isinstance(value, list) and not value:
            raise PydanticCustomError("too_small", "At least one task is required")
        return value


class TaskUpdateFieldsSchema(BaseModel):
    """Fields an update may change. Absent fields are left untouched."""

    model_config = ConfigDict(extra="forbid")

    content: OptionalContent = None
    due_string: DueString = None
    priority: Priority = None
    labels: Labels = None


class TaskUpdateSchema(BaseModel):
    """Payload for updating an existing task."""

    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(validation_alias=AliasChoices("task_id", "taskId"))
    updates: TaskUpdateFieldsSchema

    @field_validator("task_id", mode="before")
    @classmethod
    def _task_id(cls, value: Any) -> str:
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str) or not value:
            raise PydanticCustomError("too_small", "Task ID is required")
        return value


class UserInputSchema(BaseModel):
    """Raw chat input; a leading "task:" is stripped after validation."""

    input: str

    @field_validator("input", mode="before")
    @classmethod
    def _length(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise PydanticCustomError("invalid_type", "Input must be a string")
        if len(value) < 1:
            raise PydanticCustomError("too_small", "Input cannot be empty")
        if len(value) > MAX_USER_INPUT_LENGTH:
            raise PydanticCustomError("too_big", "Input is too long")
        return value

    @field_validator("input", mode="after")
    @classmethod
    def _strip_task_prefix(cls, value: str) -> str:
        cleaned = value.strip()
        if cleaned.lower().startswith("task:"):
            cleaned = cleaned[5:].strip()
        return cleaned


class TaskStoreEnvelopeSchema(BaseModel):
    """Response envelope produced by a task-store proxy."""

    success: StrictBool
    data: Any = None
    error: str | None = None


class TaskDueSchema(BaseModel):
    date: str
    string: str | None = None
    datetime: str | None = None


class TodoistTaskSchema(BaseModel):
    """A task record as returned by the Todoist API."""

    model_config = ConfigDict(extra="ignore")

    id: str
    content: str
    priority: int = Field(default=1, ge=1, le=4)
    due: TaskDueSchema | None = None
    labels: list[str] = Field(default_factory=list)
    completed: bool = Field(
        default=False, validation_alias=AliasChoices("completed", "is_completed")
    )
    project_id: str | None = None

    @field_validator("id", "project_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def to_task(self) -> TodoistTask:
        due = None
        if self.due is not None:
            due = TaskDue(
                date=self.due.date, string=self.due.string, datetime=self.due.datetime
            )
        return TodoistTask(
            id=self.id,
            content=self.content,
            priority=self.priority,
            due=due,
            labels=list(self.labels),
            completed=self.completed,
            project_id=self.project_id,
        )


class IntentEntitiesSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task_content: str | None = Field(
        default=None, validation_alias=AliasChoices("task_content", "taskContent")
    )
    due_date: str | None = Field(
        default=None, validation_alias=AliasChoices("due_date", "dueDate")
    )
    priority: str | None = None
    labels: list[str] | None = None
    task_id: str | None = Field(
        default=None, validation_alias=AliasChoices("task_id", "taskId")
    )
    update_field: str | None = Field(
        default=None, validation_alias=AliasChoices("update_field", "updateField")
    )
    update_value: str | None = Field(
        default=None, validation_alias=AliasChoices("update_value", "updateValue")
    )

    @field_validator("task_id", "update_value", mode="before")
    @classmethod
    def _coerce_scalar(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class TaskSpecSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str
    due_date: str | None = Field(
        default=None, validation_alias=AliasChoices("due_date", "dueDate")
    )
    priority: str | None = None
    labels: list[str] | None = None


class IntentPayloadSchema(BaseModel):
    """JSON object the LLM is instructed to answer with."""

    model_config = ConfigDict(extra="ignore")

    action: IntentAction
    confidence: float
    entities: IntentEntitiesSchema = Field(default_factory=IntentEntitiesSchema)
    tasks: list[TaskSpecSchema] = Field(default_factory=list)
    count: int | None = None
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PydanticCustomError("invalid_type", "Confidence must be a number")
        if value < 0 or value > 1:
            raise PydanticCustomError(
                "out_of_range", "Confidence must be between 0 and 1"
            )
        return float(value)

    @field_validator("entities", mode="before")
    @classmethod
    def _null_entities(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("tasks", mode="before")
    @classmethod
    def _null_tasks(cls, value: Any) -> Any:
        return [] if value is None else value
