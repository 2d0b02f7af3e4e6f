"""Task-store proxy that talks to the Todoist REST API over httpx."""

import logging
import os
from typing import Any

import httpx

from .config import (
    DEFAULT_TODOIST_API_BASE_URL,
    DEFAULT_TODOIST_TIMEOUT,
    TODOIST_API_TOKEN_ENV,
)
from .exceptions import TaskStoreError
from .interfaces import TodoistProxy

logger = logging.getLogger(__name__)


class TodoistRestProxy(TodoistProxy):
    """
    Maps proxy actions onto Todoist REST endpoints.

    Every call resolves to an envelope `{success, data?, error?}`. HTTP
    failures become `"Todoist API error: <status> - <body>"`; transport
    failures carry the exception text.
    """

    def __init__(
        self,
        api_token: str | None = None,
        base_url: str = DEFAULT_TODOIST_API_BASE_URL,
        timeout: float = DEFAULT_TODOIST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the REST proxy.

        Args:
            api_token: Todoist API token; read from the environment when omitted
            base_url: REST API root
            timeout: Request timeout in seconds
            client: Preconfigured httpx client (tests pass a MockTransport)

        Raises:
            TaskStoreError: If no API token is available and no client is given
        """
        token = api_token or os.getenv(TODOIST_API_TOKEN_ENV)
        if client is None and not token:
            raise TaskStoreError(
                f"Todoist API token missing; set {TODOIST_API_TOKEN_ENV}"
            )
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout
        )
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def invoke(self, action: str, data: dict[str, Any]) -> dict[str, Any]:
        logger.debug(f"Todoist proxy request: action={action}")
        try:
            if action == "getTasks":
                return await self._get_tasks(data.get("filter"))
            if action == "createTask":
                return await self._create_task(data)
            if action == "updateTask":
                return await self._update_task(data["taskId"], data.get("updates") or {})
            if action == "completeTask":
                return await self._complete_task(data["taskId"])
        except httpx.HTTPError as e:
            logger.error(f"Todoist transport error during {action}: {e}")
            return {"success": False, "error": str(e) or type(e).__name__}
        except KeyError as e:
            return {"success": False, "error": f"Missing field: {e.args[0]}"}

        logger.error(f"Unknown Todoist proxy action: {action}")
        return {"success": False, "error": "Unknown action"}

    def _error_envelope(self, response: httpx.Response) -> dict[str, Any]:
        logger.error(
            f"Todoist API error: status={response.status_code} body={response.text!r}"
        )
        return {
            "success": False,
            "error": f"Todoist API error: {response.status_code} - {response.text}",
        }

    async def _get_tasks(self, text_filter: str | None) -> dict[str, Any]:
        response = await self._client.get(self._url("/tasks"))
        if not response.is_success:
            return self._error_envelope(response)

        tasks = response.json()
        # Todoist filter syntax has no plain text search; filter locally
        if text_filter and isinstance(tasks, list):
            needle = text_filter.lower()
            tasks = [
                task
                for task in tasks
                if task.get("content") and needle in task["content"].lower()
            ]
            logger.debug(f"Found {len(tasks)} tasks matching {text_filter!r}")
        return {"success": True, "data": tasks}

    async def _create_task(self, data: dict[str, Any]) -> dict[str, Any]:
        body: dict[str, Any] = {"content": data.get("content")}
        if data.get("due_string"):
            body["due_string"] = data["due_string"]
        priority = data.get("priority")
        if isinstance(priority, int) and not isinstance(priority, bool) and 1 <= priority <= 4:
            body["priority"] = priority
        if isinstance(data.get("labels"), list) and data["labels"]:
            body["labels"] = data["labels"]

        response = await self._client.post(self._url("/tasks"), json=body)
        if not response.is_success:
            return self._error_envelope(response)
        return {"success": True, "data": response.json()}

    async def _update_task(self, task_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(self._url(f"/tasks/{task_id}"), json=updates)
        if not response.is_success:
            return self._error_envelope(response)
        return {"success": True, "data": None}

    async def _complete_task(self, task_id: str) -> dict[str, Any]:
        response = await self._client.post(self._url(f"/tasks/{task_id}/close"))
        if not response.is_success:
            return self._error_envelope(response)
        return {"success": True, "data": None}

    def _url(self, path: str) -> str:
        # Injected clients may not carry a base_url
        return f"{self.base_url}{path}"
