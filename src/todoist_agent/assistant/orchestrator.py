"""Turns one user message into task-store operations."""

import logging
import re
from collections.abc import Sequence
from typing import Any

from .config import DEFAULT_CONFIDENCE_THRESHOLD, DEFAULT_TASK_PRIORITY
from .content_sanitizer import ContentSanitizer
from .intent_service import IntentService, map_priority
from .models import (
    IntentAction,
    IntentResult,
    Message,
    PendingKind,
    PendingTask,
    TodoistTask,
    TurnOutcome,
    TurnResult,
)
from .state_machine import is_cancellation, is_confirmation
from .task_parser import (
    check_for_duplicates,
    details_to_intent,
    find_matching_tasks,
    has_ambiguous_priority,
    parse_priority_label,
    parse_user_input,
)
from .todoist_client import TodoistClient

logger = logging.getLogger(__name__)

_EXPLICIT_P_LABEL = re.compile(r"\bp[1-4]\b", re.IGNORECASE)

PRIORITY_GUIDE = (
    "📊 Todoist Priority Guide:\n"
    "• P1 (Urgent & Important): Critical deadlines, emergencies\n"
    "• P2 (Important, Not Urgent): Strategic work, planning\n"
    "• P3 (Urgent, Not Important): Interruptions, some emails\n"
    "• P4 (Neither): Everything else, routine tasks\n"
)


def _reply(text: str) -> Message:
    return Message.assistant(text)


def _format_task_line(index: int, task: TodoistTask) -> str:
    line = f'{index}. "{task.content}"'
    if task.due:
        line += f" (Due: {task.due.display()})"
    return line


class TaskOrchestrator:
    """
    Resolves pending disambiguation slots and executes task operations.

    Holds at most one pending task per kind. A turn that arrives while
    another is still running is dropped without side effects.
    """

    def __init__(
        self,
        client: TodoistClient,
        intent_service: IntentService | None = None,
        sanitizer: ContentSanitizer | None = None,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            client: Task-store client
            intent_service: LLM intent recognizer; the heuristic parser is
                used when omitted
            sanitizer: Content sanitizer applied before every create
            confidence_threshold: Intents at or below this are not acted on
        """
        self._client = client
        self._intent_service = intent_service
        self._sanitizer = sanitizer or ContentSanitizer()
        self._threshold = confidence_threshold
        self._pending: dict[PendingKind, PendingTask] = {}
        self.is_processing = False

    @property
    def pending_tasks(self) -> list[PendingTask]:
        return list(self._pending.values())

    def get_pending(self, kind: PendingKind) -> PendingTask | None:
        return self._pending.get(kind)

    def restore_pending(self, pending: Sequence[PendingTask]) -> None:
        self._pending = {task.kind: task for task in pending}

    def clear_pending(self) -> None:
        self._pending.clear()

    async def process_user_input(
        self,
        text: str,
        existing_tasks: Sequence[TodoistTask],
        recent_context: Sequence[Message] = (),
        confirmed: bool = False,
        cancelled: bool = False,
    ) -> TurnResult:
        """
        Process one user turn.

        Args:
            text: Validated, artifact-filtered user text
            existing_tasks: Current open tasks, used for matching and duplicates
            recent_context: Prior chat messages for intent analysis
            confirmed: The state machine read the text as a confirmation
            cancelled: The state machine read the text as a cancellation

        Returns:
            TurnResult; `accepted` is False when another turn was in flight
        """
        if self.is_processing:
            logger.info("Already processing, ignoring new input")
            return TurnResult(accepted=False, outcome=TurnOutcome.IGNORED)

        self.is_processing = True
        try:
            logger.info(f"🚀 Processing user input: {text!r}")
            return await self._process(
                text, list(existing_tasks), recent_context, confirmed, cancelled
            )
        except Exception as e:
            logger.error(f"❌ Error processing user input: {e}")
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.FAILED,
                messages=[_reply(f"❌ Error processing your request: {e}")],
            )
        finally:
            self.is_processing = False

    async def _process(
        self,
        text: str,
        existing_tasks: list[TodoistTask],
        recent_context: Sequence[Message],
        confirmed: bool,
        cancelled: bool,
    ) -> TurnResult:
        says_yes = confirmed or is_confirmation(text)
        says_no = cancelled or is_cancellation(text)

        pending = self._pending.get(PendingKind.PRIORITY)
        if pending is not None:
            priority = parse_priority_label(text)
            if priority is None and says_yes:
                priority = 1  # "proceed" means P4
            if priority is not None:
                del self._pending[PendingKind.PRIORITY]
                pending.priority = priority
                result = await self._execute_creation(pending)
                result.resolved_pending = True
                return result
            if says_no:
                del self._pending[PendingKind.PRIORITY]
                return self._cancelled()

        pending = self._pending.get(PendingKind.DUPLICATE)
        if pending is not None:
            if says_yes:
                del self._pending[PendingKind.DUPLICATE]
                result = await self._execute_creation(pending)
                result.resolved_pending = True
                return result
            if says_no:
                del self._pending[PendingKind.DUPLICATE]
                return self._cancelled()

        intent = await self._analyze(text, recent_context)
        if not intent.is_actionable(self._threshold):
            logger.info(
                f"❌ No task operation detected (action={intent.action.value}, "
                f"confidence={intent.confidence:.2f})"
            )
            return TurnResult(
                accepted=True, outcome=TurnOutcome.NOT_ACTIONABLE, intent=intent
            )

        # A fresh actionable request supersedes any unanswered question
        self._pending.clear()

        if intent.action == IntentAction.CREATE:
            result = await self._handle_create(text, intent, existing_tasks)
        elif intent.action == IntentAction.CREATE_MULTIPLE:
            result = await self._handle_create_multiple(intent)
        elif intent.action == IntentAction.UPDATE:
            result = await self._handle_update(intent, existing_tasks)
        elif intent.action == IntentAction.COMPLETE:
            result = await self._handle_complete(intent, existing_tasks)
        else:
            result = self._handle_list(existing_tasks)
        result.intent = intent
        return result

    async def _analyze(
        self, text: str, recent_context: Sequence[Message]
    ) -> IntentResult:
        if self._intent_service is not None:
            return await self._intent_service.analyze_intent(text, recent_context)
        return details_to_intent(parse_user_input(text))

    def _cancelled(self) -> TurnResult:
        logger.info("Pending task cancelled by user")
        return TurnResult(
            accepted=True,
            outcome=TurnOutcome.CANCELLED,
            messages=[_reply("❌ Task creation cancelled.")],
            resolved_pending=True,
        )

    def _is_ambiguous(self, text: str, content: str) -> bool:
        if has_ambiguous_priority(content):
            return True
        return has_ambiguous_priority(text) and not _EXPLICIT_P_LABEL.search(text)

    async def _handle_create(
        self, text: str, intent: IntentResult, existing_tasks: list[TodoistTask]
    ) -> TurnResult:
        entities = intent.entities
        content = self._sanitizer.sanitize(entities.task_content or "").sanitized
        if not content:
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.FAILED,
                messages=[_reply("❌ Cannot create task: No task content provided")],
            )

        candidate = PendingTask(
            content=content,
            kind=PendingKind.DUPLICATE,
            due_string=entities.due_date or None,
            priority=map_priority(entities.priority),
            labels=list(entities.labels or []),
        )

        duplicates = check_for_duplicates(content, existing_tasks)
        if duplicates:
            self._pending[PendingKind.DUPLICATE] = candidate
            plural = "s" if len(duplicates) > 1 else ""
            lines = [
                "🔍 DUPLICATE TASK DETECTED:",
                "",
                f'You want to create: "{content}"',
                "",
                f"But I found {len(duplicates)} similar task{plural}:",
            ]
            lines.extend(_format_task_line(i, t) for i, t in enumerate(duplicates, 1))
            lines.extend(["", '❓ Say "create anyway" to proceed or "cancel" to stop.'])
            logger.info(f"🔍 Duplicate detected for {content!r}: {len(duplicates)} matches")
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.AWAITING_CONFIRMATION,
                messages=[_reply("\n".join(lines))],
                pending_kind=PendingKind.DUPLICATE,
            )

        if self._is_ambiguous(text, content):
            candidate.kind = PendingKind.PRIORITY
            self._pending[PendingKind.PRIORITY] = candidate
            message = (
                "⚡ PRIORITY CLARIFICATION NEEDED:\n\n"
                f'You used an ambiguous priority term for: "{content}"\n\n'
                f"{PRIORITY_GUIDE}\n"
                '❓ Please specify: "make it P1", "make it P2", "make it P3", '
                'or "proceed" for P4'
            )
            logger.info(f"⚡ Ambiguous priority for {content!r}")
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.AWAITING_CONFIRMATION,
                messages=[_reply(message)],
                pending_kind=PendingKind.PRIORITY,
            )

        return await self._execute_creation(candidate)

    async def _execute_creation(self, task: PendingTask) -> TurnResult:
        # Content was sanitized when the candidate was built
        data = self._sanitizer.sanitize_for_todoist(
            {"due_string": task.due_string, "labels": list(task.labels)}
        )
        data["content"] = task.content
        priority = task.priority if task.priority is not None else DEFAULT_TASK_PRIORITY
        labels = data.get("labels") or []
        status = (
            "🎯 CREATING TASK:\n\n"
            f'📋 Task: "{data["content"]}"\n'
            f"📅 Due: {data.get('due_string') or 'None'}\n"
            f"⚡ Priority: P{5 - priority}\n"
            f"🏷️ Labels: {', '.join(labels) if labels else 'None'}"
        )

        response = await self._client.create_task(
            data["content"], data.get("due_string"), priority, labels or None
        )
        if response.success:
            logger.info(f"✅ Task created: {data['content']!r}")
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.CREATED,
                messages=[
                    _reply(status),
                    _reply(f'✅ SUCCESS: Task "{data["content"]}" created successfully!'),
                ],
                created_tasks=[response.data] if response.data else [],
            )

        logger.error(f"Task creation failed: {response.error}")
        return TurnResult(
            accepted=True,
            outcome=TurnOutcome.FAILED,
            messages=[
                _reply(status),
                _reply(f'❌ FAILED: Could not create task "{data["content"]}": {response.error}'),
            ],
        )

    async def _handle_create_multiple(self, intent: IntentResult) -> TurnResult:
        unique: list[tuple[str, Any]] = []
        seen: set[str] = set()
        for spec in intent.tasks:
            content = self._sanitizer.sanitize(spec.content or "").sanitized
            if content and content not in seen:
                seen.add(content)
                unique.append((content, spec))

        declared = intent.task_count
        if declared is not None and len(unique) > declared:
            logger.warning(
                f"⚠️ {len(unique)} tasks extracted but {declared} declared; truncating"
            )
            unique = unique[:declared]

        if not unique:
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.FAILED,
                messages=[_reply("❌ Cannot create tasks: No task content provided")],
            )

        created: list[TodoistTask] = []
        created_contents: list[str] = []
        details: list[str] = []
        failures = 0
        for content, spec in unique:
            data = self._sanitizer.sanitize_for_todoist(
                {"due_string": spec.due_date or None, "labels": list(spec.labels or [])}
            )
            data["content"] = content
            priority = map_priority(spec.priority) or DEFAULT_TASK_PRIORITY
            response = await self._client.create_task(
                data["content"], data.get("due_string"), priority, data.get("labels") or None
            )
            details.append(f'📋 Task: "{data["content"]}"')
            if response.success:
                created_contents.append(data["content"])
                if response.data:
                    created.append(response.data)
                details.append("   ✅ Result: SUCCESS")
            else:
                failures += 1
                details.append(f"   ❌ Result: FAILED - {response.error}")

        successes = len(created_contents)
        summary = ["🎯 BATCH TASK CREATION SUMMARY:", "", *details, "", "📊 FINAL RESULTS:"]
        summary.append(
            f"✅ Successfully created: {successes} task{'s' if successes != 1 else ''}"
        )
        if failures:
            summary.append(
                f"❌ Failed to create: {failures} task{'s' if failures != 1 else ''}"
            )
        if created_contents:
            summary.append("Created: " + ", ".join(f'"{c}"' for c in created_contents))

        logger.info(f"Batch creation finished: {successes} created, {failures} failed")
        return TurnResult(
            accepted=True,
            outcome=TurnOutcome.CREATED_MULTIPLE if successes else TurnOutcome.FAILED,
            messages=[_reply("\n".join(summary))],
            created_tasks=created,
        )

    def _match(
        self, intent: IntentResult, existing_tasks: list[TodoistTask]
    ) -> tuple[str, list[TodoistTask]]:
        entities = intent.entities
        if entities.task_id:
            for task in existing_tasks:
                if task.id == entities.task_id:
                    return task.content, [task]
        query = entities.task_content or entities.task_id or ""
        return query, find_matching_tasks(query, existing_tasks)

    def _unmatched(
        self, query: str, matches: list[TodoistTask], verb: str
    ) -> TurnResult | None:
        if not matches:
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.NOT_FOUND,
                messages=[_reply(f'❌ No task found containing "{query}"')],
            )
        if len(matches) > 1:
            lines = [f"⚠️ Found {len(matches)} matching tasks:"]
            lines.extend(_format_task_line(i, t) for i, t in enumerate(matches, 1))
            lines.extend(["", f"Please specify which task to {verb}."])
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.AWAITING_CLARIFICATION,
                messages=[_reply("\n".join(lines))],
            )
        return None

    def build_updates(self, field: str | None, value: str | None) -> dict[str, Any] | None:
        """Translate an update field/value pair into task-store update fields."""
        if value is None or not str(value).strip():
            return None
        value = str(value).strip()
        field = (field or "due_date").strip().lower()

        if field in ("due_date", "due", "due_string", "date"):
            return {"due_string": value}
        if field == "content":
            content = self._sanitizer.sanitize(value).sanitized
            return {"content": content} if content else None
        if field == "priority":
            priority = parse_priority_label(value) or map_priority(value)
            if priority is None and value.isdigit() and 1 <= int(value) <= 4:
                priority = int(value)
            return {"priority": priority} if priority else None
        if field == "labels":
            labels = [label for label in re.split(r"[,\s]+", value) if label]
            return {"labels": labels} if labels else None
        return None

    async def _handle_update(
        self, intent: IntentResult, existing_tasks: list[TodoistTask]
    ) -> TurnResult:
        query, matches = self._match(intent, existing_tasks)
        logger.info(f"🔄 Handling task update for {query!r}")
        unmatched = self._unmatched(query, matches, "update")
        if unmatched is not None:
            return unmatched

        task = matches[0]
        field = intent.entities.update_field or "due_date"
        updates = self.build_updates(field, intent.entities.update_value)
        if updates is None:
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.FAILED,
                messages=[
                    _reply(f'❌ Could not understand the new {field} for "{task.content}"')
                ],
            )

        response = await self._client.update_task(task.id, updates)
        if not response.success:
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.FAILED,
                messages=[_reply(f"❌ FAILED: {response.error or 'Could not update task'}")],
            )

        if "due_string" in updates:
            text = f'✅ SUCCESS: Task due date updated to "{updates["due_string"]}"'
        else:
            text = f'✅ SUCCESS: Task "{task.content}" updated ({", ".join(updates)})'
        return TurnResult(
            accepted=True, outcome=TurnOutcome.UPDATED, messages=[_reply(text)]
        )

    async def _handle_complete(
        self, intent: IntentResult, existing_tasks: list[TodoistTask]
    ) -> TurnResult:
        query, matches = self._match(intent, existing_tasks)
        logger.info(f"✔️ Handling task completion for {query!r}")
        unmatched = self._unmatched(query, matches, "complete")
        if unmatched is not None:
            return unmatched

        task = matches[0]
        response = await self._client.complete_task(task.id)
        if not response.success:
            return TurnResult(
                accepted=True,
                outcome=TurnOutcome.FAILED,
                messages=[_reply(f"❌ FAILED: {response.error or 'Could not complete task'}")],
            )
        return TurnResult(
            accepted=True,
            outcome=TurnOutcome.COMPLETED,
            messages=[_reply(f'✅ SUCCESS: Task "{task.content}" completed!')],
        )

    def _handle_list(self, existing_tasks: list[TodoistTask]) -> TurnResult:
        if not existing_tasks:
            text = "📋 You don't have any open tasks."
        else:
            lines = [f"📋 You have {len(existing_tasks)} open tasks:"]
            for index, task in enumerate(existing_tasks, 1):
                lines.append(f"{_format_task_line(index, task)} [{task.priority_label}]")
            text = "\n".join(lines)
        return TurnResult(
            accepted=True, outcome=TurnOutcome.LISTED, messages=[_reply(text)]
        )
