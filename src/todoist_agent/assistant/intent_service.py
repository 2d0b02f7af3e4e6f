"""Intent recognition for chat input using an LLM proxy."""

import json
import re
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from todoist_agent.logging_utils import get_logger

from .config import (
    FALLBACK_CONFIDENCE,
    FALLBACK_REASONING,
    INTENT_CONTEXT_MESSAGES,
    PRIORITY_TIERS,
)
from .exceptions import IntentAnalysisError
from .interfaces import LLMProxy
from .models import (
    IntentAction,
    IntentEntities,
    IntentResult,
    LLMRequest,
    Message,
    TaskSpec,
)
from .schemas import IntentPayloadSchema

logger = get_logger(__name__)

_CODE_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CODE_FENCE_CLOSE = re.compile(r"\s*```$")

INTENT_PROMPT = """You are an intent recognition system for a Todoist task management application.
Analyze user input and return ONLY a valid JSON object with the user's intent.

IMPORTANT: Your response must be ONLY valid JSON - no explanations, no markdown, no additional text.

PRIORITY MAPPING RULES:
- urgent/critical/asap/emergency/p1 -> "urgent"
- high/important/p2 -> "high"
- medium/normal/p3 -> "medium"
- low/p4 -> "low"
- If no priority is specified, use null

For single task creation, return:
{"action": "create", "confidence": 0.0-1.0,
 "entities": {"task_content": "cleaned task description", "due_date": "due date string or null",
              "priority": "low|medium|high|urgent or null", "labels": ["label1"] or null},
 "reasoning": "brief explanation"}

For multiple task creation, return:
{"action": "create_multiple", "confidence": 0.0-1.0, "count": number of tasks requested,
 "tasks": [{"content": "task 1", "due_date": "date or null", "priority": "priority or null",
            "labels": ["labels"] or null}],
 "reasoning": "brief explanation"}

For task updates, return:
{"action": "update", "confidence": 0.0-1.0,
 "entities": {"task_content": "task to update", "task_id": "task identifier or null",
              "update_field": "due_date|content|priority|labels", "update_value": "new value"},
 "reasoning": "brief explanation"}

For task completion, return:
{"action": "complete", "confidence": 0.0-1.0, "entities": {"task_content": "task to complete"},
 "reasoning": "brief explanation"}

For listing or querying tasks, return:
{"action": "list", "confidence": 0.0-1.0, "entities": {}, "reasoning": "brief explanation"}

For non-task input (general questions, confirmations, etc.), return:
{"action": "none", "confidence": 0.0-1.0, "entities": {}, "reasoning": "brief explanation"}

EXTRACTION RULES:
- Remove any prefixes like "task:", "create:", "Title:", etc.
- Extract clean task content without formatting artifacts
- Keep natural language dates as written (tomorrow, next friday, etc.)
- Extract labels from @label format or "with labels X, Y" patterns
- Set confidence based on clarity of intent (clear commands = 0.9+, ambiguous = 0.5-0.7)
- ALWAYS extract priority if any priority keywords are present in the input"""


def map_priority(tier: str | None) -> int | None:
    """Map a priority tier word to the Todoist API scale (4 = most urgent)."""
    if not tier:
        return None
    return PRIORITY_TIERS.get(tier.strip().lower())


def fallback_intent() -> IntentResult:
    return IntentResult(
        action=IntentAction.NONE,
        confidence=FALLBACK_CONFIDENCE,
        entities=IntentEntities(),
        reasoning=FALLBACK_REASONING,
    )


class IntentService:
    """Classifies chat input into a task-management action."""

    def __init__(
        self, llm_proxy: LLMProxy, context_size: int = INTENT_CONTEXT_MESSAGES
    ) -> None:
        self._llm_proxy = llm_proxy
        self._context_size = context_size

    def build_prompt(self) -> str:
        return INTENT_PROMPT

    def build_context_history(
        self, recent_context: Sequence[Message]
    ) -> list[dict[str, str]]:
        if self._context_size <= 0:
            return []
        return [
            {"role": message.role.value, "content": message.content}
            for message in list(recent_context)[-self._context_size :]
        ]

    def parse_response(self, response_text: str) -> IntentResult:
        """
        Parse the model's reply into an IntentResult.

        Args:
            response_text: Raw text, optionally wrapped in a markdown code fence

        Returns:
            IntentResult

        Raises:
            IntentAnalysisError: If the text is not a valid intent object
        """
        cleaned = response_text.strip()
        if cleaned.startswith("```"):
            cleaned = _CODE_FENCE_CLOSE.sub("", _CODE_FENCE_OPEN.sub("", cleaned))

        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise IntentAnalysisError(f"Invalid JSON response: {e}") from e

        if not isinstance(data, dict):
            raise IntentAnalysisError("Intent response is not a JSON object")

        try:
            payload = IntentPayloadSchema.model_validate(data)
        except ValidationError as e:
            raise IntentAnalysisError(f"Invalid intent structure: {e}") from e

        entities = IntentEntities(**payload.entities.model_dump())
        tasks = [TaskSpec(**task.model_dump()) for task in payload.tasks]

        return IntentResult(
            action=payload.action,
            confidence=payload.confidence,
            entities=entities,
            tasks=tasks,
            task_count=payload.count,
            reasoning=payload.reasoning,
        )

    async def analyze_intent(
        self, user_input: str, recent_context: Sequence[Message] = ()
    ) -> IntentResult:
        """
        Classify user input. Never raises.

        Args:
            user_input: Text to classify
            recent_context: Prior chat messages; the last few are sent along

        Returns:
            The parsed IntentResult, or the fallback intent on any failure
        """
        request = LLMRequest(
            message=user_input,
            system_prompt=self.build_prompt(),
            conversation_history=self.build_context_history(recent_context),
            tasks=[],
        )

        try:
            response = await self._llm_proxy.complete(request)
        except Exception as e:
            logger.error(f"LLM proxy error during intent analysis: {e}")
            return self._fallback(user_input)

        if not response.success:
            logger.error(f"LLM proxy returned an error: {response.error}")
            return self._fallback(user_input)

        logger.trace(f"Raw intent response: {response.response!r}")  # type: ignore[attr-defined]
        try:
            intent = self.parse_response(response.response)
        except IntentAnalysisError as e:
            logger.error(f"Failed to parse intent response: {e}")
            return self._fallback(user_input)

        logger.info(
            f"Intent analyzed: action={intent.action.value}, "
            f"confidence={intent.confidence:.2f}"
        )
        return intent

    def _fallback(self, user_input: str) -> IntentResult:
        logger.warning(f"Using fallback intent for input: {user_input!r}")
        return fallback_intent()

    def map_to_todoist_format(self, intent: IntentResult) -> dict[str, Any]:
        """Translate an intent into task-store field names."""
        if intent.action == IntentAction.CREATE_MULTIPLE:
            return {
                "action": intent.action.value,
                "tasks": [
                    _drop_none(
                        {
                            "content": task.content,
                            "due_string": task.due_date or None,
                            "priority": map_priority(task.priority),
                            "labels": task.labels or None,
                        }
                    )
                    for task in intent.tasks
                ],
            }

        entities = intent.entities
        if intent.action == IntentAction.CREATE:
            return _drop_none(
                {
                    "action": intent.action.value,
                    "content": entities.task_content,
                    "due_string": entities.due_date or None,
                    "priority": map_priority(entities.priority),
                    "labels": entities.labels or None,
                }
            )

        if intent.action == IntentAction.UPDATE:
            return {
                "action": intent.action.value,
                "task_id": entities.task_id,
                "field": entities.update_field,
                "value": entities.update_value,
            }

        mapped = {"action": intent.action.value}
        mapped.update(
            {key: value for key, value in vars(entities).items() if value is not None}
        )
        return mapped


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}
