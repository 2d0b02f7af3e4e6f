"""Abstract interfaces for the external collaborators of the assistant."""

from abc import ABC, abstractmethod
from typing import Any

from todoist_agent.assistant.models import LLMRequest, LLMResponse


class LLMProxy(ABC):
    """Abstract interface for the remote language model call."""

    @abstractmethod
    async def complete(self, request: LLMRequest) -> LLMResponse:
        """
        Send one chat completion request.

        Args:
            request: User message, system prompt, prior turns and open tasks

        Returns:
            LLMResponse with the model text on success, or an error string
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the proxy."""
        return None


class TodoistProxy(ABC):
    """Abstract interface for the remote task-store API."""

    @abstractmethod
    async def invoke(self, action: str, data: dict[str, Any]) -> Any:
        """
        Perform one task-store action.

        Supported actions are getTasks, createTask, updateTask and
        completeTask.

        Args:
            action: Action name
            data: Action payload

        Returns:
            An envelope `{success, data?, error?}`. The caller validates its
            shape, so implementations may return anything.

        Raises:
            Exception: Transport failures may propagate; the client turns
                them into error responses.
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the proxy."""
        return None


class KeyValueStore(ABC):
    """Abstract interface for local string persistence."""

    @abstractmethod
    async def load(self, key: str) -> str | None:
        """
        Load a stored value.

        Returns:
            The stored string, or None when the key is absent

        Raises:
            PersistenceError: If the store cannot be read
        """
        pass

    @abstractmethod
    async def save(self, key: str, value: str) -> None:
        """
        Store a value, replacing any previous one.

        Raises:
            PersistenceError: If the store cannot be written
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None
