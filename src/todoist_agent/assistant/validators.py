"""Validation entry points that turn pydantic errors into field error lists."""

import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from .models import FieldError, ValidationResult
from .schemas import (
    MultipleTaskCreationSchema,
    SingleTaskCreationSchema,
    TaskStoreEnvelopeSchema,
    TaskUpdateSchema,
    TodoistTaskSchema,
    UserInputSchema,
)

logger = logging.getLogger(__name__)


def format_validation_errors(error: ValidationError) -> list[FieldError]:
    """Flatten a pydantic ValidationError into FieldError records."""
    return [
        FieldError(
            field=".".join(str(part) for part in item["loc"]),
            message=item["msg"],
            code=item["type"],
        )
        for item in error.errors()
    ]


class TaskValidator:
    """Validates task payloads, raw input and proxy envelopes. Never raises."""

    @staticmethod
    def _validate(
        schema: type[BaseModel], payload: Any, label: str
    ) -> ValidationResult:
        try:
            model = schema.model_validate(payload)
        except ValidationError as e:
            errors = format_validation_errors(e)
            logger.warning(f"{label} validation failed: {[err.message for err in errors]}")
            return ValidationResult.failure(errors)
        logger.debug(f"{label} validation successful")
        return ValidationResult.ok(model)

    @classmethod
    def validate_single_task_creation(cls, payload: Any) -> ValidationResult:
        """
        Validate a task creation payload.

        Returns:
            ValidationResult whose data is a dict with unset fields omitted
        """
        result = cls._validate(SingleTaskCreationSchema, payload, "Task creation")
        if result.success:
            result.data = result.data.model_dump(exclude_none=True)
        return result

    @classmethod
    def validate_multiple_task_creation(cls, payload: Any) -> ValidationResult:
        result = cls._validate(
            MultipleTaskCreationSchema, payload, "Multiple task creation"
        )
        if result.success:
            result.data = [
                task.model_dump(exclude_none=True) for task in result.data.tasks
            ]
        return result

    @classmethod
    def validate_task_update(cls, payload: Any) -> ValidationResult:
        """Validate `{task_id, updates}`; data is `(task_id, updates_dict)`."""
        result = cls._validate(TaskUpdateSchema, payload, "Task update")
        if result.success:
            model = result.data
            result.data = (model.task_id, model.updates.model_dump(exclude_none=True))
        return result

    @classmethod
    def validate_user_input(cls, text: Any) -> ValidationResult:
        """Validate raw chat input; data is the trimmed, prefix-stripped text."""
        result = cls._validate(UserInputSchema, {"input": text}, "User input")
        if result.success:
            result.data = result.data.input
        return result

    @classmethod
    def validate_task_store_response(cls, response: Any) -> ValidationResult:
        return cls._validate(TaskStoreEnvelopeSchema, response, "Task store response")

    @classmethod
    def validate_todoist_task(cls, payload: Any) -> ValidationResult:
        result = cls._validate(TodoistTaskSchema, payload, "Todoist task")
        if result.success:
            result.data = result.data.to_task()
        return result
