"""MCP Server exposing the chat assistant using FastMCP."""

import asyncio
import logging
from typing import Any

from fastmcp import FastMCP

from .config import DEFAULT_MCP_HOST, DEFAULT_MCP_PORT, DEFAULT_MCP_SERVER_NAME
from .models import Message, TodoistTask, TurnResult
from .session import ChatSession, create_chat_session

logger = logging.getLogger(__name__)

mcp = FastMCP(DEFAULT_MCP_SERVER_NAME)

# Global chat session (initialized in cli_entry())
_chat_session: ChatSession | None = None


def get_chat_session() -> ChatSession:
    """Get the global chat session instance."""
    if _chat_session is None:
        raise RuntimeError("Chat session not initialized")
    return _chat_session


def set_chat_session(session: ChatSession | None) -> None:
    """Set the global chat session instance (for testing)."""
    global _chat_session
    _chat_session = session


def _format_message(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role.value,
        "content": message.content,
        "status": message.status.value if message.status else None,
    }


def _format_task(task: TodoistTask) -> dict[str, Any]:
    return {
        "id": task.id,
        "content": task.content,
        "priority": task.priority,
        "priority_label": task.priority_label,
        "due": task.due.display() if task.due else None,
        "labels": list(task.labels),
    }


def _format_turn(result: TurnResult) -> dict[str, Any]:
    return {
        "success": True,
        "accepted": result.accepted,
        "outcome": result.outcome.value,
        "pending": result.pending_kind.value if result.pending_kind else None,
        "replies": [_format_message(message) for message in result.messages],
        "created_task_ids": [task.id for task in result.created_tasks],
    }


async def _send_message_impl(message: str) -> dict[str, Any]:
    """Implementation of send_message tool."""
    try:
        session = get_chat_session()
        result = await session.send_message(message)
        return _format_turn(result)
    except Exception as e:
        logger.error(f"Error sending message: {e}")
        return {"success": False, "error": str(e)}


async def _list_tasks_impl(refresh: bool = True) -> dict[str, Any]:
    """Implementation of list_tasks tool."""
    try:
        session = get_chat_session()
        if refresh:
            response = await session.refresh_tasks()
            if not response.success:
                return {"success": False, "error": response.error}
        return {"success": True, "tasks": [_format_task(task) for task in session.tasks]}
    except Exception as e:
        logger.error(f"Error listing tasks: {e}")
        return {"success": False, "error": str(e)}


async def _get_suggestions_impl() -> dict[str, Any]:
    try:
        session = get_chat_session()
        return {"success": True, "suggestions": session.get_suggestions()}
    except Exception as e:
        logger.error(f"Error getting suggestions: {e}")
        return {"success": False, "error": str(e)}


async def _get_conversation_impl() -> dict[str, Any]:
    try:
        session = get_chat_session()
        return {
            "success": True,
            "state": session.state_machine.state.value,
            "messages": [_format_message(message) for message in session.messages],
        }
    except Exception as e:
        logger.error(f"Error reading conversation: {e}")
        return {"success": False, "error": str(e)}


async def _reset_conversation_impl() -> dict[str, Any]:
    try:
        session = get_chat_session()
        await session.reset()
        return {"success": True}
    except Exception as e:
        logger.error(f"Error resetting conversation: {e}")
        return {"success": False, "error": str(e)}


@mcp.tool()
async def send_message(message: str) -> dict[str, Any]:
    """
    Send one chat message to the Todoist assistant.

    Args:
        message: Natural-language request, e.g. "Create a task: Buy milk tomorrow"

    Returns:
        Dictionary with the turn outcome and the assistant replies
    """
    return await _send_message_impl(message=message)


@mcp.tool()
async def list_tasks(refresh: bool = True) -> dict[str, Any]:
    """
    List open Todoist tasks.

    Args:
        refresh: Fetch the latest tasks from Todoist first

    Returns:
        Dictionary with the task list
    """
    return await _list_tasks_impl(refresh=refresh)


@mcp.tool()
async def get_suggestions() -> dict[str, Any]:
    """Get short workload suggestions for the open tasks."""
    return await _get_suggestions_impl()


@mcp.tool()
async def get_conversation() -> dict[str, Any]:
    """Get the conversation state and recent messages."""
    return await _get_conversation_impl()


@mcp.tool()
async def reset_conversation() -> dict[str, Any]:
    """Clear the conversation and any pending confirmations."""
    return await _reset_conversation_impl()


# Compatibility wrapper for tests
class MCPServer:
    """
    Compatibility wrapper for testing.

    The actual MCP server uses FastMCP with function decorators.
    This class provides a plain method interface over the same tools.
    """

    def __init__(
        self,
        session: ChatSession,
        server_name: str = DEFAULT_MCP_SERVER_NAME,
        host: str = DEFAULT_MCP_HOST,
        port: int = DEFAULT_MCP_PORT,
    ) -> None:
        self._session = session
        self._server_name = server_name
        self._host = host
        self._port = port
        self._initialized = False

    async def initialize(self) -> None:
        set_chat_session(self._session)
        self._initialized = True

    async def shutdown(self) -> None:
        await self._session.close()
        set_chat_session(None)
        self._initialized = False

    def get_available_tools(self) -> list[str]:
        return [
            "send_message",
            "list_tasks",
            "get_suggestions",
            "get_conversation",
            "reset_conversation",
        ]

    async def handle_send_message(self, params: dict[str, Any]) -> dict[str, Any]:
        if "message" not in params:
            return {"success": False, "error": "Missing required field: message"}
        return await _send_message_impl(message=params["message"])

    async def handle_list_tasks(self, params: dict[str, Any]) -> dict[str, Any]:
        return await _list_tasks_impl(refresh=params.get("refresh", True))

    async def handle_get_suggestions(self, params: dict[str, Any]) -> dict[str, Any]:
        return await _get_suggestions_impl()

    async def handle_get_conversation(self, params: dict[str, Any]) -> dict[str, Any]:
        return await _get_conversation_impl()

    async def handle_reset_conversation(self, params: dict[str, Any]) -> dict[str, Any]:
        return await _reset_conversation_impl()


def cli_entry() -> None:
    """CLI entry point for the MCP server."""
    import sys

    from todoist_agent.logging_utils import configure_logging

    configure_logging()

    transport_type = "stdio"
    if len(sys.argv) > 1 and sys.argv[1] in ("stdio", "sse", "http"):
        transport_type = "sse" if sys.argv[1] == "http" else sys.argv[1]

    # Build the session before FastMCP takes over the event loop
    async def setup() -> None:
        # Tasks load lazily so no HTTP connection is bound to this setup loop
        session = await create_chat_session(load_tasks=False)
        set_chat_session(session)
        logger.info(f"MCP Server initialized with 5 tools (transport={transport_type})")
        if transport_type == "sse":
            logger.info(
                f"Server will listen on http://{DEFAULT_MCP_HOST}:{DEFAULT_MCP_PORT}"
            )

    try:
        asyncio.run(setup())
    except Exception as e:
        print(f"❌ Could not start the Todoist assistant: {e}")
        sys.exit(1)

    if transport_type == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(transport="sse", host=DEFAULT_MCP_HOST, port=DEFAULT_MCP_PORT)


if __name__ == "__main__":
    cli_entry()
