"""Custom exceptions for the chat assistant pipeline."""


class AssistantError(Exception):
    """Base exception for assistant errors."""

    pass


class TaskStoreError(AssistantError):
    """Exception raised for task-store (Todoist) errors."""

    pass


class IntentAnalysisError(AssistantError):
    """Exception raised when an LLM response cannot be turned into an intent."""

    pass


class LLMProxyError(AssistantError):
    """Exception raised for LLM proxy communication errors."""

    pass


class PersistenceError(AssistantError):
    """Exception raised for key-value store errors."""

    pass
