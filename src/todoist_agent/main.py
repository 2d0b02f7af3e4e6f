"""Command-line chat interface for the Todoist assistant."""

import argparse
import asyncio
import logging
import sys

from .assistant.config import DEFAULT_DATABASE_PATH, DEFAULT_OLLAMA_MODEL
from .assistant.models import Message, MessageStatus, TurnOutcome
from .assistant.session import ChatSession, create_chat_session
from .logging_utils import configure_logging

EXIT_COMMANDS = ("exit", "quit", "/exit", "/quit")
RESET_COMMAND = "/reset"
TASKS_COMMAND = "/tasks"
SUGGEST_COMMAND = "/suggest"


class ChatCLI:
    """Interactive terminal chat over a ChatSession."""

    def __init__(self, session: ChatSession) -> None:
        self._session = session
        self._running = False

    def _print_message(self, message: Message) -> None:
        prefix = "⚠️ " if message.status == MessageStatus.ERROR else "🤖"
        print(f"{prefix} {message.content}")

    def print_tasks(self) -> None:
        tasks = self._session.tasks
        if not tasks:
            print("📭 No open tasks.")
            return
        print(f"📋 {len(tasks)} open tasks:")
        for task in tasks:
            due = f" (due {task.due.display()})" if task.due else ""
            print(f"  - [{task.priority_label}] {task.content}{due}")

    async def handle_line(self, line: str) -> bool:
        """
        Handle one line of user input.

        Args:
            line: Raw line read from the terminal

        Returns:
            False when the user asked to leave, True otherwise
        """
        command = line.strip().lower()
        if not command:
            return True
        if command in EXIT_COMMANDS:
            return False
        if command == RESET_COMMAND:
            await self._session.reset()
            print("🔄 Conversation reset.")
            return True
        if command == TASKS_COMMAND:
            await self._session.refresh_tasks()
            self.print_tasks()
            return True
        if command == SUGGEST_COMMAND:
            for suggestion in self._session.get_suggestions():
                print(f"💡 {suggestion}")
            return True

        result = await self._session.send_message(line)
        if result.outcome == TurnOutcome.IGNORED:
            print("⏳ Still working on your previous message...")
            return True
        for message in result.messages:
            self._print_message(message)
        return True

    async def run(self) -> None:
        """
        Main chat loop.

        Reads lines until exit, end of input or Ctrl+C.
        """
        messages = self._session.messages
        if messages:
            self._print_message(messages[-1])
        print(
            f"   Commands: {TASKS_COMMAND}, {SUGGEST_COMMAND}, {RESET_COMMAND}, exit"
        )

        self._running = True
        try:
            while self._running:
                try:
                    line = await asyncio.to_thread(input, "💬 You: ")
                except EOFError:
                    break
                self._running = await self.handle_line(line)
            print("\n👋 Goodbye!")
        except (KeyboardInterrupt, asyncio.CancelledError):
            print("\n👋 Goodbye!")
        finally:
            self._running = False


async def main(
    db_path: str = DEFAULT_DATABASE_PATH,
    offline: bool = False,
    model: str = DEFAULT_OLLAMA_MODEL,
    use_llm_intent: bool = True,
    reset_conversation: bool = False,
) -> None:
    """Main entry point for the CLI application."""
    try:
        session = await create_chat_session(
            db_path=db_path,
            offline=offline,
            model=model,
            use_llm_intent=use_llm_intent,
        )
    except Exception as e:
        print(f"❌ Could not start the Todoist assistant: {e}")
        raise SystemExit(1) from e

    try:
        if reset_conversation:
            await session.reset()
            print("🔄 Conversation reset.")
        await ChatCLI(session).run()
    finally:
        await session.close()


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Todoist Agent - Manage Todoist tasks through a local AI chat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  todoist-agent                          # Chat with the default Ollama model
  todoist-agent --model llama3.1:8b      # Use another Ollama model
  todoist-agent --offline                # No LLM, heuristic parsing only
  todoist-agent --no-llm-intent          # LLM replies, heuristic intent parsing
  todoist-agent --reset-conversation     # Start from a fresh conversation
  todoist-agent --verbose                # Enable verbose logging
  todoist-agent --trace                  # Enable trace logging

Environment:
  TODOIST_API_TOKEN   - Todoist REST API token (required)
  OLLAMA_BASE_URL     - Ollama server address
  TODOIST_AGENT_DB_PATH - Conversation database location

Controls:
  /tasks    - Show open tasks
  /suggest  - Show workload suggestions
  /reset    - Clear the conversation
  exit      - Leave the chat (Ctrl+C also works)
        """,
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging and debug information",
    )

    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable trace logging (most verbose, includes raw API payloads)",
    )

    parser.add_argument(
        "--offline",
        action="store_true",
        help="Run without the LLM; task commands use the built-in parser",
    )

    parser.add_argument(
        "--no-llm-intent",
        action="store_true",
        help="Use the built-in parser for task commands even when the LLM is available",
    )

    parser.add_argument(
        "--model",
        type=str,
        default=DEFAULT_OLLAMA_MODEL,
        help=f"Ollama model name (default: {DEFAULT_OLLAMA_MODEL})",
    )

    parser.add_argument(
        "--db-path",
        type=str,
        default=DEFAULT_DATABASE_PATH,
        metavar="PATH",
        help=f"SQLite file for conversation history (default: {DEFAULT_DATABASE_PATH})",
    )

    parser.add_argument(
        "--reset-conversation",
        action="store_true",
        help="Clear the saved conversation before starting",
    )

    return parser


def handle_arguments(args: argparse.Namespace) -> bool:
    """
    Handle parsed command-line arguments.

    Args:
        args: Parsed arguments from argparse

    Returns:
        True if execution should continue
    """
    configure_logging(verbose=args.verbose, trace=args.trace)

    if args.offline and args.no_llm_intent:
        logging.info("--no-llm-intent has no effect in offline mode")

    return True


def cli_entry_with_args() -> None:
    """CLI entry point with argument parsing."""
    parser = create_argument_parser()

    try:
        args = parser.parse_args()

        if not handle_arguments(args):
            sys.exit(1)

        asyncio.run(
            main(
                db_path=args.db_path,
                offline=args.offline,
                model=args.model,
                use_llm_intent=not args.no_llm_intent,
                reset_conversation=args.reset_conversation,
            )
        )

    except KeyboardInterrupt:
        pass  # Graceful shutdown
    except SystemExit:
        # Re-raise SystemExit (from argparse help, etc.)
        raise
    except Exception:
        sys.exit(1)


if __name__ == "__main__":
    cli_entry_with_args()
