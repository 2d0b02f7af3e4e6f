"""Example demonstrating MCP Server usage.

Requires TODOIST_API_TOKEN. Runs offline (no Ollama) so task commands go
through the built-in parser.
"""

import asyncio
import logging
import tempfile
from pathlib import Path

from todoist_agent.assistant.mcp_server import MCPServer
from todoist_agent.assistant.session import create_chat_session

logging.basicConfig(level=logging.INFO)


async def main() -> None:
    """Demonstrate MCP Server functionality."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        session = await create_chat_session(
            db_path=str(Path(tmp_dir) / "session.db"), offline=True
        )

        mcp_server = MCPServer(session=session)
        await mcp_server.initialize()

        print("Available MCP tools:", mcp_server.get_available_tools())
        print()

        # Example 1: Create a task
        print("=== Creating a task ===")
        result = await mcp_server.handle_send_message(
            {"message": "Create a task: Write documentation due tomorrow p2"}
        )
        for reply in result["replies"]:
            print(reply["content"])
        print()

        # Example 2: Same task again triggers the duplicate check
        print("=== Creating a duplicate ===")
        result = await mcp_server.handle_send_message(
            {"message": "Add task Write documentation"}
        )
        print(f"Outcome: {result['outcome']} (pending: {result['pending']})")
        result = await mcp_server.handle_send_message({"message": "cancel"})
        print(f"Outcome: {result['outcome']}")
        print()

        # Example 3: List tasks
        print("=== Listing tasks ===")
        result = await mcp_server.handle_list_tasks({})
        for task in result.get("tasks", []):
            print(f"[{task['priority_label']}] {task['content']}")
        print()

        # Example 4: Complete the task
        print("=== Completing the task ===")
        result = await mcp_server.handle_send_message(
            {"message": "Mark Write documentation as done"}
        )
        for reply in result["replies"]:
            print(reply["content"])
        print()

        # Example 5: Suggestions and conversation state
        result = await mcp_server.handle_get_suggestions({})
        print(f"Suggestions: {result['suggestions']}")
        result = await mcp_server.handle_get_conversation({})
        print(f"State: {result['state']}, {len(result['messages'])} messages")

        await mcp_server.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
