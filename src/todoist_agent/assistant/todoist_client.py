"""Rate-limited, validating client for the remote task store."""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from todoist_agent.logging_utils import get_logger

from .config import (
    DEFAULT_MIN_REQUEST_INTERVAL,
    DEFAULT_TASK_PRIORITY,
    INVALID_RESPONSE_MESSAGE,
    RATE_LIMIT_MARKER,
    RATE_LIMIT_MESSAGE,
)
from .interfaces import TodoistProxy
from .models import TaskStoreResponse, TodoistTask
from .schemas import TodoistTaskSchema
from .validators import TaskValidator

logger = get_logger(__name__)

RequestFn = Callable[[], Awaitable[TaskStoreResponse]]


def surface_error(error: str | None) -> str:
    """Replace rate-limit errors with a user-facing message."""
    if error and RATE_LIMIT_MARKER in error:
        return RATE_LIMIT_MESSAGE
    return error or "Unknown error"


class TodoistClient:
    """
    Serializes task-store requests through a single FIFO queue.

    Requests are dispatched one at a time, each waiting until at least
    `min_request_interval` seconds have passed since the previous
    dispatch. Every public method returns a TaskStoreResponse and never
    raises.
    """

    def __init__(
        self,
        proxy: TodoistProxy,
        min_request_interval: float = DEFAULT_MIN_REQUEST_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the client.

        Args:
            proxy: Task-store proxy that performs the actual calls
            min_request_interval: Minimum seconds between dispatches
            clock: Monotonic time source
            sleep: Coroutine used to wait between dispatches
        """
        self._proxy = proxy
        self.min_request_interval = min_request_interval
        self._clock = clock
        self._sleep = sleep
        self._queue: deque[tuple[RequestFn, asyncio.Future[TaskStoreResponse]]] = deque()
        self._processing_queue = False
        self._last_request_time: float | None = None
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def pending_requests(self) -> int:
        return len(self._queue)

    async def _enqueue(self, request_fn: RequestFn) -> TaskStoreResponse:
        future: asyncio.Future[TaskStoreResponse] = (
            asyncio.get_running_loop().create_future()
        )
        self._queue.append((request_fn, future))
        if not self._processing_queue:
            self._processing_queue = True
            self._drain_task = asyncio.create_task(self._drain())
        return await future

    async def _drain(self) -> None:
        try:
            while self._queue:
                request_fn, future = self._queue.popleft()

                if self._last_request_time is not None:
                    elapsed = self._clock() - self._last_request_time
                    if elapsed < self.min_request_interval:
                        delay = self.min_request_interval - elapsed
                        logger.debug(f"Rate limiting: waiting {delay:.3f}s before next request")
                        await self._sleep(delay)

                self._last_request_time = self._clock()
                try:
                    result = await request_fn()
                except Exception as e:
                    logger.error(f"Task store request failed: {e}")
                    result = TaskStoreResponse(success=False, error=surface_error(str(e)))

                if not future.done():
                    future.set_result(result)
        finally:
            self._processing_queue = False

    async def _call(self, action: str, data: dict[str, Any]) -> TaskStoreResponse:
        """Invoke the proxy and validate the envelope it returns."""
        try:
            raw = await self._proxy.invoke(action, data)
        except Exception as e:
            logger.error(f"Task store proxy error during {action}: {e}")
            return TaskStoreResponse(success=False, error=surface_error(str(e)))

        logger.trace(f"{action} raw response: {raw!r}")  # type: ignore[attr-defined]

        validation = TaskValidator.validate_task_store_response(raw)
        if not validation.success:
            logger.error(f"Invalid {action} response format: {validation.error_message()}")
            return TaskStoreResponse(success=False, error=INVALID_RESPONSE_MESSAGE)

        envelope = validation.data
        if not envelope.success:
            logger.error(f"Todoist API error in {action}: {envelope.error}")
            return TaskStoreResponse(success=False, error=surface_error(envelope.error))
        return TaskStoreResponse(success=True, data=envelope.data)

    async def get_tasks(self, text_filter: str | None = None) -> TaskStoreResponse:
        """
        Fetch open tasks, optionally filtered by a content substring.

        Returns:
            TaskStoreResponse whose data is a list of TodoistTask
        """

        async def request() -> TaskStoreResponse:
            logger.info(f"📋 Fetching tasks (filter={text_filter!r})")
            response = await self._call(
                "getTasks", {"filter": text_filter} if text_filter else {}
            )
            if not response.success:
                return response
            if not isinstance(response.data, list):
                logger.error("getTasks returned a non-list payload")
                return TaskStoreResponse(success=False, error=INVALID_RESPONSE_MESSAGE)

            tasks: list[TodoistTask] = []
            for item in response.data:
                try:
                    tasks.append(TodoistTaskSchema.model_validate(item).to_task())
                except ValidationError as e:
                    logger.warning(f"Skipping malformed task record: {e}")
            logger.info(f"getTasks returned {len(tasks)} tasks")
            return TaskStoreResponse(success=True, data=tasks)

        return await self._enqueue(request)

    async def create_task(
        self,
        content: str,
        due: str | None = None,
        priority: int | None = None,
        labels: list[str] | None = None,
    ) -> TaskStoreResponse:
        """
        Create a task. Missing priority defaults to 1.

        Returns:
            TaskStoreResponse whose data is the created TodoistTask
        """

        async def request() -> TaskStoreResponse:
            payload: dict[str, Any] = {
                "content": content,
                "priority": DEFAULT_TASK_PRIORITY if priority is None else priority,
            }
            if due and due.strip():
                payload["due_string"] = due
            if labels:
                payload["labels"] = labels

            validation = TaskValidator.validate_single_task_creation(payload)
            if not validation.success:
                return TaskStoreResponse(
                    success=False,
                    error=f"Invalid task data: {validation.error_message()}",
                )

            logger.info(f"✨ Creating task: {validation.data}")
            response = await self._call("createTask", validation.data)
            if not response.success:
                return response

            try:
                task = TodoistTaskSchema.model_validate(response.data).to_task()
            except ValidationError as e:
                logger.error(f"Invalid created task payload: {e}")
                return TaskStoreResponse(success=False, error=INVALID_RESPONSE_MESSAGE)
            logger.info(f"✅ Task created: id={task.id} priority={task.priority}")
            return TaskStoreResponse(success=True, data=task)

        return await self._enqueue(request)

    async def update_task(self, task_id: str, updates: dict[str, Any]) -> TaskStoreResponse:
        async def request() -> TaskStoreResponse:
            validation = TaskValidator.validate_task_update(
                {"task_id": task_id, "updates": updates}
            )
            if not validation.success:
                return TaskStoreResponse(
                    success=False,
                    error=f"Invalid update data: {validation.error_message()}",
                )

            validated_id, validated_updates = validation.data
            logger.info(f"🔄 Updating task {validated_id}: {validated_updates}")
            response = await self._call(
                "updateTask", {"taskId": validated_id, "updates": validated_updates}
            )
            return TaskStoreResponse(success=response.success, error=response.error)

        return await self._enqueue(request)

    async def complete_task(self, task_id: str) -> TaskStoreResponse:
        async def request() -> TaskStoreResponse:
            if not task_id or not task_id.strip():
                logger.error(f"Invalid task ID for completion: {task_id!r}")
                return TaskStoreResponse(
                    success=False, error="Task ID is required for completion"
                )

            logger.info(f"✔️ Completing task {task_id}")
            response = await self._call("completeTask", {"taskId": task_id})
            return TaskStoreResponse(success=response.success, error=response.error)

        return await self._enqueue(request)

    async def search_tasks(self, query: str) -> TaskStoreResponse:
        if not query or not query.strip():
            logger.warning("Empty search query provided")
            return TaskStoreResponse(success=False, error="Search query cannot be empty")
        return await self.get_tasks(query)

    async def close(self) -> None:
        """Wait for queued requests, then close the proxy."""
        if self._drain_task is not None and not self._drain_task.done():
            await self._drain_task
        await self._proxy.close()
