"""Heuristic task parsing and task-matching helpers.

`parse_user_input` is the offline intent front-end used when no LLM is
configured. The matching helpers are shared by both front-ends.
"""

import logging
import re
from collections.abc import Iterable

from .config import AMBIGUOUS_PRIORITY_TERMS, HEURISTIC_CONFIDENCE, PRIORITY_TIERS
from .models import (
    IntentAction,
    IntentEntities,
    IntentResult,
    ParsedTaskDetails,
    TaskSpec,
    TodoistTask,
)

logger = logging.getLogger(__name__)

_UPDATE_PATTERNS = (
    re.compile(
        r"^(?:change|update|modify|set)\s+(?:task\s+)?\"([^\"]+)\"\s+"
        r"(?:to be\s+)?(?:due\s+)?(?:to\s+)?(.+)$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(?:change|update|modify|set)\s+(?:task\s+)?(.+?)\s+"
        r"(?:to be due|to be|due|to)\s+(.+)$",
        re.IGNORECASE,
    ),
)
_COMPLETE_PATTERNS = (
    re.compile(
        r"^(?:mark|check off)\s+(?:task\s+)?[\"']?(.+?)[\"']?\s+as\s+"
        r"(?:done|complete|completed|finished)$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(?:complete|finish|close|check off)\s+(?:the\s+)?(?:task\s+)?[\"']?(.+?)[\"']?$",
        re.IGNORECASE,
    ),
    re.compile(r"^i(?:'ve| have)?\s+(?:finished|completed|done)\s+(.+)$", re.IGNORECASE),
)
_LIST_PATTERN = re.compile(
    r"^(?:list|show|display|what are|what's on|what is on)\b.*\b(?:tasks?|todos?|list)\b",
    re.IGNORECASE,
)
_BATCH_PATTERN = re.compile(
    r"^(?:create|add|make)\s+(\d+)\s+tasks?\s*:?\s*(.+)$", re.IGNORECASE | re.DOTALL
)
_BATCH_SPLIT = re.compile(r"\s*(?:,\s*(?:and\s+)?|\s+and\s+|\n+)\s*", re.IGNORECASE)
_CREATION_KEYWORDS = re.compile(
    r"\b(?:create|add|new|make|task|due|priority|labels?)\b", re.IGNORECASE
)
_CREATION_PREFIX = re.compile(
    r"^(?:create|add|new|make)\s+(?:a\s+)?(?:new\s+)?(?:task\b:?\s*)?", re.IGNORECASE
)
_TASK_PREFIX = re.compile(r"^task\b:?\s*", re.IGNORECASE)
_QUOTED = re.compile(r"^[\"'](.+)[\"']$")
_DUE_PATTERN = re.compile(
    r"\s+due\s+(.+?)(?=\s+with\b|\s+priority\b|\s+labels?\b|\s+p[1-4]\b|$)",
    re.IGNORECASE,
)
_PRIORITY_PATTERNS = (
    re.compile(r"\s*\b(?:with\s+)?(?:priority\s+)?p([1-4])\b", re.IGNORECASE),
    re.compile(
        r"\s*\b(?:with\s+)?(critical|emergency|high|medium|normal|low)\s+priority\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\s*\b(?:with\s+)?priority\s+(critical|emergency|high|medium|normal|low)\b",
        re.IGNORECASE,
    ),
)
_PRIORITY_WORDS = {
    "critical": 4,
    "emergency": 4,
    "high": 3,
    "medium": 2,
    "normal": 2,
    "low": 1,
}
_LABEL_PATTERN = re.compile(
    r"\s+(?:with\s+)?labels?\s+([\w\s,\-&]+?)(?=\s+due\b|\s*$)", re.IGNORECASE
)
_LABEL_TAG = re.compile(r"\s*@([\w-]+)")
_LABEL_STOPWORDS = {"and", "with", "labels", "label", "&"}
_P_LABEL = re.compile(
    r"^(?:make it|set it to|set to|use|priority)?\s*p([1-4])[.!]?$", re.IGNORECASE
)
_AMBIGUOUS_PRIORITY = re.compile(
    r"\b(?:" + "|".join(AMBIGUOUS_PRIORITY_TERMS) + r")\b", re.IGNORECASE
)
_TIER_BY_PRIORITY = {value: tier for tier, value in PRIORITY_TIERS.items()}


def check_for_duplicates(
    content: str, existing_tasks: Iterable[TodoistTask]
) -> list[TodoistTask]:
    """Tasks where either content is a case-insensitive substring of the other."""
    needle = content.strip().lower()
    if not needle:
        return []
    return [
        task
        for task in existing_tasks
        if needle in task.content.lower() or task.content.lower() in needle
    ]


def find_matching_tasks(
    query: str, existing_tasks: Iterable[TodoistTask]
) -> list[TodoistTask]:
    """Tasks whose content contains the query, case-insensitively."""
    needle = query.strip().lower()
    if not needle:
        return []
    return [task for task in existing_tasks if needle in task.content.lower()]


def has_ambiguous_priority(content: str) -> bool:
    return bool(_AMBIGUOUS_PRIORITY.search(content))


def parse_priority_label(text: str) -> int | None:
    """
    Read a Todoist UI priority label ("P1".."P4", "make it p2").

    Returns:
        API priority (P1 -> 4, P4 -> 1), or None if the text is not a label
    """
    match = _P_LABEL.match(text.strip())
    if not match:
        return None
    return 5 - int(match.group(1))


def _extract_labels(content: str) -> tuple[str, list[str]]:
    labels: list[str] = []
    match = _LABEL_PATTERN.search(content)
    if match:
        labels.extend(
            label.lower()
            for label in re.split(r"[,\s]+", match.group(1))
            if label and label.lower() not in _LABEL_STOPWORDS
        )
        content = content.replace(match.group(0), "", 1)

    for tag in _LABEL_TAG.findall(content):
        if tag.lower() not in labels:
            labels.append(tag.lower())
    content = _LABEL_TAG.sub("", content)
    return content, labels


def _extract_priority(content: str) -> tuple[str, int | None]:
    for pattern in _PRIORITY_PATTERNS:
        match = pattern.search(content)
        if match:
            value = match.group(1).lower()
            priority = 5 - int(value) if value.isdigit() else _PRIORITY_WORDS[value]
            return content.replace(match.group(0), "", 1), priority
    return content, None


def _parse_creation(text: str) -> ParsedTaskDetails:
    content = _CREATION_PREFIX.sub("", text, count=1).strip()
    content = _TASK_PREFIX.sub("", content, count=1).strip()
    content = _QUOTED.sub(r"\1", content)

    due_date = None
    match = _DUE_PATTERN.search(content)
    if match:
        due_date = match.group(1).strip()
        content = content.replace(match.group(0), "", 1)

    content, priority = _extract_priority(content)
    content, labels = _extract_labels(content)
    content = re.sub(r"\s+", " ", content).strip()

    return ParsedTaskDetails(
        content=content,
        due_date=due_date,
        priority=priority,
        labels=labels,
        is_task_creation=True,
    )


def parse_user_input(text: str) -> ParsedTaskDetails:
    """
    Extract a task operation from free text without an LLM.

    Args:
        text: User message, already validated and artifact-filtered

    Returns:
        ParsedTaskDetails; all operation flags are False when nothing matched
    """
    stripped = text.strip()

    for pattern in _UPDATE_PATTERNS:
        match = pattern.match(stripped)
        if match:
            value = match.group(2).strip()
            field = "priority" if parse_priority_label(value) else "due_date"
            return ParsedTaskDetails(
                is_task_update=True,
                update_task_name=match.group(1).strip(),
                update_field=field,
                update_value=value,
            )

    for pattern in _COMPLETE_PATTERNS:
        match = pattern.match(stripped)
        if match:
            return ParsedTaskDetails(
                content=match.group(1).strip(), is_task_completion=True
            )

    if _LIST_PATTERN.match(stripped):
        return ParsedTaskDetails(is_task_listing=True)

    batch = _BATCH_PATTERN.match(stripped)
    if batch:
        items = [item.strip(" .\"'") for item in _BATCH_SPLIT.split(batch.group(2))]
        specs = []
        for item in items:
            if not item:
                continue
            parsed = _parse_creation(item)
            specs.append(
                TaskSpec(
                    content=parsed.content,
                    due_date=parsed.due_date,
                    priority=_TIER_BY_PRIORITY.get(parsed.priority)
                    if parsed.priority
                    else None,
                    labels=parsed.labels or None,
                )
            )
        return ParsedTaskDetails(
            is_task_creation=True, batch=specs, declared_count=int(batch.group(1))
        )

    if not _CREATION_KEYWORDS.search(stripped):
        logger.debug(f"No task operation detected in: {stripped!r}")
        return ParsedTaskDetails()

    details = _parse_creation(stripped)
    logger.debug(f"Parsed task details: {details}")
    return details


def details_to_intent(details: ParsedTaskDetails) -> IntentResult:
    """Express heuristic parser output as an IntentResult."""
    if details.is_task_update:
        return IntentResult(
            action=IntentAction.UPDATE,
            confidence=HEURISTIC_CONFIDENCE,
            entities=IntentEntities(
                task_content=details.update_task_name,
                update_field=details.update_field,
                update_value=details.update_value,
            ),
            reasoning="heuristic update pattern",
        )

    if details.is_task_completion:
        return IntentResult(
            action=IntentAction.COMPLETE,
            confidence=HEURISTIC_CONFIDENCE,
            entities=IntentEntities(task_content=details.content),
            reasoning="heuristic completion pattern",
        )

    if details.is_task_listing:
        return IntentResult(
            action=IntentAction.LIST,
            confidence=HEURISTIC_CONFIDENCE,
            reasoning="heuristic listing pattern",
        )

    if details.batch:
        return IntentResult(
            action=IntentAction.CREATE_MULTIPLE,
            confidence=HEURISTIC_CONFIDENCE,
            tasks=list(details.batch),
            task_count=details.declared_count,
            reasoning="heuristic batch pattern",
        )

    if details.is_task_creation and details.content:
        return IntentResult(
            action=IntentAction.CREATE,
            confidence=HEURISTIC_CONFIDENCE,
            entities=IntentEntities(
                task_content=details.content,
                due_date=details.due_date,
                priority=_TIER_BY_PRIORITY.get(details.priority)
                if details.priority
                else None,
                labels=details.labels or None,
            ),
            reasoning="heuristic creation keywords",
        )

    return IntentResult(
        action=IntentAction.NONE, confidence=0.0, reasoning="no task keywords"
    )
