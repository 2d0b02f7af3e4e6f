"""Chat session: the root object that wires the assistant pipeline together."""

import logging
from datetime import date

from .config import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_DATABASE_PATH,
    DEFAULT_MIN_REQUEST_INTERVAL,
    DEFAULT_OLLAMA_MODEL,
)
from .content_sanitizer import ContentSanitizer
from .context_manager import ContextManager
from .intent_service import IntentService
from .interfaces import KeyValueStore, LLMProxy
from .llm_proxy import OllamaProxy, format_task_list
from .models import (
    ConversationState,
    IntentAction,
    LLMRequest,
    Message,
    MessageStatus,
    TaskStoreResponse,
    TodoistTask,
    TurnOutcome,
    TurnResult,
)
from .orchestrator import TaskOrchestrator
from .state_machine import ConversationStateMachine
from .storage import InMemoryKeyValueStore, SQLiteKeyValueStore
from .todoist_client import TodoistClient
from .todoist_proxy import TodoistRestProxy
from .validators import TaskValidator

logger = logging.getLogger(__name__)

CONNECTION_TROUBLE_MESSAGE = (
    "I'm having trouble connecting to the AI service right now. Please try again."
)
OFFLINE_REPLY = (
    "I can create, update, complete and list your Todoist tasks. "
    'Try "Create a task: Buy groceries due tomorrow".'
)
CONVERSATIONAL_PROMPT = """You are a helpful Todoist task management assistant. You can help users manage their tasks using natural language.

Current open tasks:
{task_list}

You should be conversational and helpful. Answer questions about tasks, provide productivity advice, and help users understand their workload.

DO NOT provide task creation instructions in your responses - the system handles task operations separately.

Keep responses concise but friendly."""

_TASK_OUTCOMES = (
    TurnOutcome.CREATED,
    TurnOutcome.CREATED_MULTIPLE,
    TurnOutcome.UPDATED,
    TurnOutcome.COMPLETED,
)


def analyze_tasks(tasks: list[TodoistTask], today: date | None = None) -> list[str]:
    """Short workload suggestions for the current task list."""
    if not tasks:
        return ["You don't have any open tasks. Would you like to create one?"]

    today = today or date.today()
    suggestions = []
    urgent = [task for task in tasks if task.priority == 4]
    due_today = []
    for task in tasks:
        if task.due is None:
            continue
        try:
            if date.fromisoformat(task.due.date[:10]) == today:
                due_today.append(task)
        except ValueError:
            logger.debug(f"Unparseable due date on task {task.id}: {task.due.date!r}")

    if urgent:
        suggestions.append(f"You have {len(urgent)} high-priority tasks to focus on.")
    if due_today:
        suggestions.append(f"You have {len(due_today)} tasks due today.")
    if len(tasks) > 10:
        suggestions.append(
            "You have quite a few open tasks. Would you like help prioritizing them?"
        )
    if not suggestions:
        suggestions.append("What would you like to do with your tasks today?")
    return suggestions


class ChatSession:
    """
    One user's conversation with the assistant.

    Builds and owns the state machine, orchestrator and context manager.
    The task-store client, LLM proxy and key-value store are injected.
    """

    def __init__(
        self,
        client: TodoistClient,
        llm_proxy: LLMProxy | None = None,
        store: KeyValueStore | None = None,
        use_llm_intent: bool = True,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> None:
        """
        Initialize the session.

        Args:
            client: Task-store client
            llm_proxy: LLM proxy for intent analysis and conversational
                replies; without one the session runs offline
            store: Key-value store for the conversation context
            use_llm_intent: Use the LLM for intent analysis when available
            confidence_threshold: Minimum confidence (exclusive) to act on
        """
        self._client = client
        self._llm_proxy = llm_proxy
        self._store = store or InMemoryKeyValueStore()
        intent_service = (
            IntentService(llm_proxy) if llm_proxy is not None and use_llm_intent else None
        )
        self.state_machine = ConversationStateMachine()
        self.context = ContextManager(self._store)
        self.orchestrator = TaskOrchestrator(
            client,
            intent_service=intent_service,
            sanitizer=ContentSanitizer(),
            confidence_threshold=confidence_threshold,
        )
        self._tasks: list[TodoistTask] = []
        self._turn_in_progress = False

    @property
    def tasks(self) -> list[TodoistTask]:
        return list(self._tasks)

    @property
    def messages(self) -> list[Message]:
        return self.context.messages

    async def initialize(self, load_tasks: bool = True) -> None:
        """Restore persisted context and fetch the current task list."""
        context = await self.context.load()
        if context.pending_tasks:
            self.orchestrator.restore_pending(context.pending_tasks)
            self.state_machine.transition(
                ConversationState.AWAITING_CONFIRMATION,
                pending_action=context.pending_tasks[0].kind.value,
            )
        if load_tasks:
            await self.refresh_tasks()
        logger.info(f"💬 Chat session ready ({len(self._tasks)} open tasks)")

    async def refresh_tasks(self) -> TaskStoreResponse:
        response = await self._client.get_tasks()
        if response.success:
            self._tasks = list(response.data)
        else:
            logger.warning(f"Could not refresh tasks: {response.error}")
        return response

    def get_suggestions(self) -> list[str]:
        return analyze_tasks(self._tasks)

    async def reset(self) -> None:
        self.state_machine.reset()
        self.orchestrator.clear_pending()
        await self.context.reset()

    async def close(self) -> None:
        await self._client.close()
        if self._llm_proxy is not None:
            await self._llm_proxy.close()
        await self._store.close()

    async def send_message(self, text: str) -> TurnResult:
        """
        Run one user turn end to end.

        Args:
            text: Raw user input

        Returns:
            TurnResult whose messages are the assistant replies for this turn
        """
        if self._turn_in_progress or self.orchestrator.is_processing:
            logger.info("Turn already in progress, ignoring new input")
            return TurnResult(accepted=False, outcome=TurnOutcome.IGNORED)

        self._turn_in_progress = True
        try:
            return await self._run_turn(text)
        finally:
            self._turn_in_progress = False

    async def _run_turn(self, text: str) -> TurnResult:
        validation = TaskValidator.validate_user_input(text)
        if not validation.success or not validation.data:
            detail = validation.error_message() if not validation.success else "Input cannot be empty"
            logger.error(f"Invalid user input: {detail}")
            reply = Message.assistant(
                f"I'm sorry, but your message couldn't be processed: {detail}",
                status=MessageStatus.ERROR,
            )
            await self.context.add_message(reply)
            return TurnResult(accepted=True, outcome=TurnOutcome.FAILED, messages=[reply])

        cleaned = validation.data
        analysis = self.state_machine.handle_user_input(cleaned)
        history = self.context.messages
        conversation_history = self.context.build_conversation_history()

        user_message = Message.user(cleaned).with_status(MessageStatus.SENDING)
        await self.context.add_message(user_message)
        await self.context.update_query(cleaned)

        result = await self.orchestrator.process_user_input(
            analysis.filtered_input,
            self._tasks,
            recent_context=history,
            confirmed=analysis.is_confirmation,
            cancelled=analysis.is_cancel,
        )
        if not result.accepted:
            return result

        self._apply_transitions(result)

        if result.outcome == TurnOutcome.NOT_ACTIONABLE:
            result.messages = [
                await self._generate_reply(analysis.filtered_input, conversation_history)
            ]

        final_status = (
            MessageStatus.ERROR if result.outcome == TurnOutcome.FAILED else MessageStatus.SENT
        )
        await self.context.replace_message(user_message.with_status(final_status))
        for message in result.messages:
            await self.context.add_message(message)
        await self.context.set_pending_tasks(self.orchestrator.pending_tasks)

        if result.outcome in _TASK_OUTCOMES:
            await self.refresh_tasks()
        return result

    def _apply_transitions(self, result: TurnResult) -> None:
        machine = self.state_machine
        outcome = result.outcome

        if outcome == TurnOutcome.AWAITING_CONFIRMATION:
            machine.transition(
                ConversationState.AWAITING_CONFIRMATION,
                pending_action=result.pending_kind.value if result.pending_kind else None,
            )
        elif outcome == TurnOutcome.AWAITING_CLARIFICATION:
            machine.transition(
                ConversationState.AWAITING_CLARIFICATION,
                pending_action=result.intent.action.value if result.intent else None,
            )
        elif outcome == TurnOutcome.CANCELLED:
            machine.reset()
        elif outcome == TurnOutcome.NOT_ACTIONABLE:
            if not self.orchestrator.pending_tasks and machine.state != ConversationState.IDLE:
                machine.reset()
        else:
            working = ConversationState.PROCESSING_TASK
            if result.intent and result.intent.action == IntentAction.CREATE_MULTIPLE:
                working = ConversationState.PROCESSING_MULTIPLE_TASKS
            machine.transition(working)
            machine.transition(ConversationState.IDLE, pending_action=None, metadata=None)

    async def _generate_reply(
        self, text: str, conversation_history: list[dict[str, str]]
    ) -> Message:
        if self._llm_proxy is None:
            return Message.assistant(OFFLINE_REPLY, status=MessageStatus.SENT)

        request = LLMRequest(
            message=text,
            system_prompt=CONVERSATIONAL_PROMPT.format(
                task_list=format_task_list(self._tasks)
            ),
            conversation_history=conversation_history,
            tasks=[],
        )
        try:
            response = await self._llm_proxy.complete(request)
        except Exception as e:
            logger.error(f"Conversational reply failed: {e}")
            response = None

        if response is None or not response.success or not response.response.strip():
            if response is not None and not response.success:
                logger.error(f"LLM proxy error: {response.error}")
            return Message.assistant(CONNECTION_TROUBLE_MESSAGE, status=MessageStatus.ERROR)
        return Message.assistant(response.response.strip(), status=MessageStatus.SENT)


async def create_chat_session(
    db_path: str = DEFAULT_DATABASE_PATH,
    offline: bool = False,
    model: str = DEFAULT_OLLAMA_MODEL,
    use_llm_intent: bool = True,
    api_token: str | None = None,
    min_request_interval: float = DEFAULT_MIN_REQUEST_INTERVAL,
    load_tasks: bool = True,
) -> ChatSession:
    """
    Build a ChatSession backed by Todoist, Ollama and SQLite.

    Args:
        db_path: SQLite file for the conversation context
        offline: Skip the LLM and use the heuristic parser only
        model: Ollama model name
        use_llm_intent: Use the LLM for intent analysis when online
        api_token: Todoist API token; read from the environment when omitted
        min_request_interval: Minimum seconds between Todoist requests
        load_tasks: Fetch the open task list during initialization

    Returns:
        An initialized ChatSession

    Raises:
        TaskStoreError: If no Todoist API token is available
        PersistenceError: If the database cannot be opened
    """
    store = SQLiteKeyValueStore(db_path)
    await store.initialize()

    try:
        proxy = TodoistRestProxy(api_token=api_token)
    except Exception:
        await store.close()
        raise

    client = TodoistClient(proxy, min_request_interval=min_request_interval)
    llm_proxy = None if offline else OllamaProxy(model=model)
    session = ChatSession(
        client, llm_proxy=llm_proxy, store=store, use_llm_intent=use_llm_intent
    )
    await session.initialize(load_tasks=load_tasks)
    return session
