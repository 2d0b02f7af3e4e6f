"""Tests for the chat session."""

import asyncio
import json
from datetime import date
from unittest.mock import AsyncMock

import pytest

from todoist_agent.assistant.models import (
    ConversationState,
    LLMResponse,
    MessageRole,
    MessageStatus,
    PendingKind,
    TaskDue,
    TaskStoreResponse,
    TodoistTask,
    TurnOutcome,
)
from todoist_agent.assistant.session import (
    CONNECTION_TROUBLE_MESSAGE,
    OFFLINE_REPLY,
    ChatSession,
    analyze_tasks,
)
from todoist_agent.assistant.storage import InMemoryKeyValueStore


@pytest.fixture
def open_tasks() -> list[TodoistTask]:
    return [
        TodoistTask(id="1", content="Buy groceries"),
        TodoistTask(id="2", content="Call mom", priority=4),
    ]


@pytest.fixture
def mock_client(open_tasks: list[TodoistTask]) -> AsyncMock:
    """Create a mock Todoist client backed by a fixed task list."""
    client = AsyncMock()
    client.get_tasks = AsyncMock(
        return_value=TaskStoreResponse(success=True, data=list(open_tasks))
    )
    client.create_task = AsyncMock(
        return_value=TaskStoreResponse(
            success=True, data=TodoistTask(id="100", content="created")
        )
    )
    client.update_task = AsyncMock(return_value=TaskStoreResponse(success=True))
    client.complete_task = AsyncMock(return_value=TaskStoreResponse(success=True))
    client.close = AsyncMock()
    return client


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
async def session(mock_client: AsyncMock, store: InMemoryKeyValueStore) -> ChatSession:
    """Create an offline session that has loaded its tasks."""
    chat = ChatSession(mock_client, store=store)
    await chat.initialize()
    return chat


@pytest.mark.unit
class TestSessionLifecycle:
    """Test initialization, reset and close."""

    @pytest.mark.asyncio
    async def test_initialize_loads_tasks(
        self, session: ChatSession, mock_client: AsyncMock
    ) -> None:
        """Test that the task list is fetched on startup."""
        assert [task.id for task in session.tasks] == ["1", "2"]
        assert len(session.messages) == 1
        assert session.state_machine.state == ConversationState.IDLE
        mock_client.get_tasks.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_without_tasks(
        self, mock_client: AsyncMock, store: InMemoryKeyValueStore
    ) -> None:
        chat = ChatSession(mock_client, store=store)

        await chat.initialize(load_tasks=False)

        assert chat.tasks == []
        mock_client.get_tasks.assert_not_called()

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_tasks(
        self, session: ChatSession, mock_client: AsyncMock
    ) -> None:
        """Test that a failed refresh leaves the cached list alone."""
        mock_client.get_tasks.return_value = TaskStoreResponse(success=False, error="boom")

        response = await session.refresh_tasks()

        assert response.success is False
        assert len(session.tasks) == 2

    @pytest.mark.asyncio
    async def test_reset(self, session: ChatSession) -> None:
        """Test that reset clears messages, pending tasks and state."""
        await session.send_message("Add task Buy groceries")

        await session.reset()

        assert len(session.messages) == 1
        assert session.orchestrator.pending_tasks == []
        assert session.state_machine.state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_close(self, mock_client: AsyncMock) -> None:
        """Test that close releases every owned resource."""
        llm_proxy = AsyncMock()
        store = AsyncMock()
        chat = ChatSession(mock_client, llm_proxy=llm_proxy, store=store)

        await chat.close()

        mock_client.close.assert_awaited_once()
        llm_proxy.close.assert_awaited_once()
        store.close.assert_awaited_once()


@pytest.mark.unit
class TestSendMessage:
    """Test one user turn end to end."""

    @pytest.mark.asyncio
    async def test_task_creation_turn(
        self, session: ChatSession, mock_client: AsyncMock
    ) -> None:
        """Test that a creation request records messages and refreshes tasks."""
        result = await session.send_message("Create a task: Buy milk due tomorrow")

        assert result.outcome == TurnOutcome.CREATED
        messages = session.messages
        assert messages[1].role == MessageRole.USER
        assert messages[1].content == "Create a task: Buy milk due tomorrow"
        assert messages[1].status == MessageStatus.SENT
        assert messages[-1].content == '✅ SUCCESS: Task "Buy milk" created successfully!'
        assert mock_client.get_tasks.await_count == 2
        assert session.state_machine.state == ConversationState.IDLE
        assert (
            session.state_machine.get_history()[-1].state
            == ConversationState.PROCESSING_TASK
        )

    @pytest.mark.asyncio
    async def test_batch_turn_state(self, session: ChatSession) -> None:
        """Test that batch creation passes through the multi-task state."""
        await session.send_message("Create 2 tasks: water plants, pay rent")

        assert session.state_machine.state == ConversationState.IDLE
        assert (
            session.state_machine.get_history()[-1].state
            == ConversationState.PROCESSING_MULTIPLE_TASKS
        )

    @pytest.mark.asyncio
    async def test_invalid_input(
        self, session: ChatSession, mock_client: AsyncMock
    ) -> None:
        """Test that over-long input gets an error reply and no task call."""
        result = await session.send_message("x" * 1001)

        assert result.outcome == TurnOutcome.FAILED
        reply = result.messages[0]
        assert reply.status == MessageStatus.ERROR
        assert reply.content == (
            "I'm sorry, but your message couldn't be processed: Input is too long"
        )
        assert session.messages[-1] == reply
        mock_client.create_task.assert_not_called()

    @pytest.mark.asyncio
    async def test_blank_input(self, session: ChatSession) -> None:
        result = await session.send_message("   ")

        assert result.outcome == TurnOutcome.FAILED
        assert result.messages[0].content.endswith("Input cannot be empty")

    @pytest.mark.asyncio
    async def test_failed_turn_marks_user_message(
        self, session: ChatSession, mock_client: AsyncMock
    ) -> None:
        """Test that the user message ends in error when the turn fails."""
        mock_client.create_task.return_value = TaskStoreResponse(
            success=False, error="boom"
        )

        await session.send_message("Add task Water plants")

        user_messages = [m for m in session.messages if m.role == MessageRole.USER]
        assert user_messages[-1].status == MessageStatus.ERROR

    @pytest.mark.asyncio
    async def test_double_submission_dropped(
        self, session: ChatSession, mock_client: AsyncMock
    ) -> None:
        """Test that input sent during a running turn is ignored."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_create(*args, **kwargs) -> TaskStoreResponse:
            started.set()
            await release.wait()
            return TaskStoreResponse(
                success=True, data=TodoistTask(id="100", content="Water plants")
            )

        mock_client.create_task.side_effect = slow_create

        first = asyncio.create_task(session.send_message("Add task Water plants"))
        await started.wait()
        message_count = len(session.messages)

        second = await session.send_message("Add task Pay rent")

        assert second.accepted is False
        assert second.outcome == TurnOutcome.IGNORED
        assert len(session.messages) == message_count

        release.set()
        await first
        assert mock_client.create_task.call_count == 1

    @pytest.mark.asyncio
    async def test_offline_conversation(self, session: ChatSession) -> None:
        """Test that small talk gets the canned reply without an LLM."""
        result = await session.send_message("How are you?")

        assert result.outcome == TurnOutcome.NOT_ACTIONABLE
        assert result.messages[0].content == OFFLINE_REPLY
        assert session.messages[-1].content == OFFLINE_REPLY


@pytest.mark.unit
class TestConversationalReplies:
    """Test LLM replies for non-task messages."""

    @pytest.mark.asyncio
    async def test_llm_reply(self, mock_client: AsyncMock) -> None:
        """Test that the LLM answers with the task list in its prompt."""
        llm_proxy = AsyncMock()
        llm_proxy.complete = AsyncMock(
            return_value=LLMResponse(success=True, response="  Doing great!  ")
        )
        chat = ChatSession(mock_client, llm_proxy=llm_proxy, use_llm_intent=False)
        await chat.initialize()

        result = await chat.send_message("How are you?")

        assert result.messages[0].content == "Doing great!"
        assert result.messages[0].status == MessageStatus.SENT
        request = llm_proxy.complete.call_args.args[0]
        assert request.message == "How are you?"
        assert "Buy groceries" in request.system_prompt

    @pytest.mark.asyncio
    async def test_llm_unreachable(self, mock_client: AsyncMock) -> None:
        """Test that a dead LLM produces the connection trouble message."""
        from todoist_agent.assistant.exceptions import LLMProxyError

        llm_proxy = AsyncMock()
        llm_proxy.complete = AsyncMock(side_effect=LLMProxyError("connection refused"))
        chat = ChatSession(mock_client, llm_proxy=llm_proxy)
        await chat.initialize()

        result = await chat.send_message("Add task Water plants")

        assert result.outcome == TurnOutcome.NOT_ACTIONABLE
        assert result.messages[0].content == CONNECTION_TROUBLE_MESSAGE
        assert result.messages[0].status == MessageStatus.ERROR
        mock_client.create_task.assert_not_called()

    @pytest.mark.asyncio
    async def test_llm_error_response(self, mock_client: AsyncMock) -> None:
        llm_proxy = AsyncMock()
        llm_proxy.complete = AsyncMock(
            return_value=LLMResponse(success=False, error="model not found")
        )
        chat = ChatSession(mock_client, llm_proxy=llm_proxy, use_llm_intent=False)

        result = await chat.send_message("How are you?")

        assert result.messages[0].content == CONNECTION_TROUBLE_MESSAGE


@pytest.mark.unit
class TestPendingConfirmation:
    """Test the confirmation dialogue across turns and restarts."""

    @pytest.mark.asyncio
    async def test_duplicate_then_confirm(
        self, session: ChatSession, mock_client: AsyncMock
    ) -> None:
        """Test that a duplicate waits for "yes" before creating."""
        result = await session.send_message("Add task Buy groceries")

        assert result.outcome == TurnOutcome.AWAITING_CONFIRMATION
        assert session.state_machine.state == ConversationState.AWAITING_CONFIRMATION
        assert session.state_machine.get_context().pending_action == "duplicate"

        result = await session.send_message("yes")

        assert result.outcome == TurnOutcome.CREATED
        assert session.state_machine.state == ConversationState.IDLE
        mock_client.create_task.assert_called_once_with("Buy groceries", None, 1, None)

    @pytest.mark.asyncio
    async def test_duplicate_then_cancel(
        self, session: ChatSession, mock_client: AsyncMock
    ) -> None:
        await session.send_message("Add task Buy groceries")

        result = await session.send_message("cancel")

        assert result.outcome == TurnOutcome.CANCELLED
        assert session.state_machine.state == ConversationState.IDLE
        mock_client.create_task.assert_not_called()

    @pytest.mark.asyncio
    async def test_small_talk_keeps_question_open(self, session: ChatSession) -> None:
        """Test that chatting while a question is pending keeps it pending."""
        await session.send_message("Add task Buy groceries")

        await session.send_message("How are you?")

        assert session.state_machine.state == ConversationState.AWAITING_CONFIRMATION
        assert session.orchestrator.get_pending(PendingKind.DUPLICATE) is not None

    @pytest.mark.asyncio
    async def test_pending_persisted(
        self, session: ChatSession, store: InMemoryKeyValueStore
    ) -> None:
        await session.send_message("Add task Buy groceries")

        saved = json.loads(await store.load("ai_context"))

        assert saved["pending_tasks"][0]["content"] == "Buy groceries"
        assert saved["pending_tasks"][0]["kind"] == "duplicate"
        assert saved["last_query"] == "Add task Buy groceries"

    @pytest.mark.asyncio
    async def test_pending_restored_after_restart(
        self,
        session: ChatSession,
        mock_client: AsyncMock,
        store: InMemoryKeyValueStore,
    ) -> None:
        """Test that a new session on the same store resumes the question."""
        await session.send_message("Add task Buy groceries")

        restarted = ChatSession(mock_client, store=store)
        await restarted.initialize()

        assert restarted.state_machine.state == ConversationState.AWAITING_CONFIRMATION
        assert len(restarted.messages) == len(session.messages)

        result = await restarted.send_message("create anyway")

        assert result.outcome == TurnOutcome.CREATED
        mock_client.create_task.assert_called_once_with("Buy groceries", None, 1, None)

    @pytest.mark.asyncio
    async def test_confirmation_artifact_filtered(
        self, session: ChatSession, mock_client: AsyncMock
    ) -> None:
        """Test that "create anyway X" after a confirmation creates only X."""
        await session.send_message("Add task Buy groceries")
        await session.send_message("cancel")

        await session.send_message("create anyway Add task Water plants")

        mock_client.create_task.assert_called_once_with("Water plants", None, 1, None)


@pytest.mark.unit
class TestAnalyzeTasks:
    """Test workload suggestions."""

    def test_no_tasks(self) -> None:
        assert analyze_tasks([]) == [
            "You don't have any open tasks. Would you like to create one?"
        ]

    def test_urgent_and_due_today(self) -> None:
        today = date(2026, 10, 18)
        tasks = [
            TodoistTask(id="1", content="Pay rent", priority=4),
            TodoistTask(id="2", content="Call mom", due=TaskDue(date="2026-10-18")),
            TodoistTask(id="3", content="Plan trip", due=TaskDue(date="2026-10-20")),
        ]

        suggestions = analyze_tasks(tasks, today=today)

        assert suggestions == [
            "You have 1 high-priority tasks to focus on.",
            "You have 1 tasks due today.",
        ]

    def test_many_tasks(self) -> None:
        tasks = [TodoistTask(id=str(i), content=f"Task {i}") for i in range(11)]

        suggestions = analyze_tasks(tasks)

        assert suggestions == [
            "You have quite a few open tasks. Would you like help prioritizing them?"
        ]

    def test_nothing_notable(self) -> None:
        tasks = [TodoistTask(id="1", content="Read a book", due=TaskDue(date="bad"))]

        assert analyze_tasks(tasks, today=date(2026, 10, 18)) == [
            "What would you like to do with your tasks today?"
        ]


@pytest.mark.unit
class TestCreateChatSession:
    """Test the production session factory."""

    @pytest.mark.asyncio
    async def test_offline_session(self, tmp_path) -> None:
        """Test building an offline session without touching the network."""
        from todoist_agent.assistant.session import create_chat_session

        chat = await create_chat_session(
            db_path=str(tmp_path / "session.db"),
            offline=True,
            api_token="secret",
            load_tasks=False,
        )
        try:
            assert chat.tasks == []
            assert len(chat.messages) == 1
        finally:
            await chat.close()

    @pytest.mark.asyncio
    async def test_missing_token(
        self, tmp_path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from todoist_agent.assistant.exceptions import TaskStoreError
        from todoist_agent.assistant.session import create_chat_session

        monkeypatch.delenv("TODOIST_API_TOKEN", raising=False)

        with pytest.raises(TaskStoreError):
            await create_chat_session(
                db_path=str(tmp_path / "session.db"), offline=True, load_tasks=False
            )
