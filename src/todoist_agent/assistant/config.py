"""Configuration constants for the Todoist chat assistant."""

import os

# Intent Recognition
DEFAULT_CONFIDENCE_THRESHOLD = 0.7
INTENT_CONTEXT_MESSAGES = 3  # recent messages sent along with intent analysis
FALLBACK_CONFIDENCE = 0.1
FALLBACK_REASONING = "fallback"
HEURISTIC_CONFIDENCE = 0.9  # offline parser matches are treated as clear commands

# Priority tiers (Todoist API: 4 = highest urgency)
PRIORITY_TIERS = {
    "urgent": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
}
DEFAULT_TASK_PRIORITY = 1
AMBIGUOUS_PRIORITY_TERMS = ("important", "urgent", "asap", "immediately")

# LLM Configuration
DEFAULT_OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2:3b")
DEFAULT_OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
DEFAULT_OLLAMA_TIMEOUT = 30.0  # seconds
DEFAULT_OLLAMA_MAX_RETRIES = 3
DEFAULT_OLLAMA_TEMPERATURE = 0.1

# Todoist Configuration
TODOIST_API_TOKEN_ENV = "TODOIST_API_TOKEN"
DEFAULT_TODOIST_API_BASE_URL = os.getenv(
    "TODOIST_API_BASE_URL", "https://api.todoist.com/rest/v2"
)
DEFAULT_TODOIST_TIMEOUT = 10.0  # seconds
DEFAULT_MIN_REQUEST_INTERVAL = 2.0  # seconds between task-store requests
RATE_LIMIT_MARKER = "429"
RATE_LIMIT_MESSAGE = (
    "Rate limited by Todoist. Please wait a moment before trying again."
)
INVALID_RESPONSE_MESSAGE = "Invalid response format from Todoist API"

# Validation Limits
MAX_CONTENT_LENGTH = 500
MAX_LABEL_LENGTH = 50
MAX_LABELS = 10
MAX_USER_INPUT_LENGTH = 1000
LABEL_PATTERN = r"^[A-Za-z0-9_-]+$"

# Conversation
MAX_CONTEXT_MESSAGES = 10
CONVERSATION_HISTORY_MESSAGES = 5  # messages sent with conversational replies
STATE_HISTORY_SIZE = 10
CONTEXT_STORAGE_KEY = "ai_context"
WELCOME_MESSAGE = (
    "Hi! I'm your Todoist assistant. I can help you manage tasks using "
    "natural language. Try \"Create a task: Buy groceries due tomorrow\"."
)

# Storage Configuration
DEFAULT_DATABASE_PATH = os.getenv(
    "TODOIST_AGENT_DB_PATH", os.path.expanduser("~/.todoist-agent/session.db")
)
DEFAULT_WAL_MODE = True
SCHEMA_VERSION = 1

# MCP Server Configuration
DEFAULT_MCP_HOST = "localhost"
DEFAULT_MCP_PORT = 3000
DEFAULT_MCP_SERVER_NAME = "todoist-agent"
