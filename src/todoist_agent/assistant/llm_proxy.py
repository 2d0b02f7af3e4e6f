"""LLM proxy backed by a local Ollama server."""

import asyncio
import logging
import time

import ollama

from .config import (
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MAX_RETRIES,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OLLAMA_TEMPERATURE,
    DEFAULT_OLLAMA_TIMEOUT,
)
from .exceptions import LLMProxyError
from .interfaces import LLMProxy
from .models import LLMRequest, LLMResponse, TodoistTask

logger = logging.getLogger(__name__)


def format_task_list(tasks: list[TodoistTask]) -> str:
    """Render open tasks as prompt lines."""
    if not tasks:
        return "No open tasks"
    lines = []
    for task in tasks:
        due = f" (due: {task.due.display()})" if task.due else ""
        lines.append(f"- {task.content}{due} [Priority: {task.priority}]")
    return "\n".join(lines)


class OllamaProxy(LLMProxy):
    """Sends chat completions to Ollama with timeout and retry handling."""

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        base_url: str = DEFAULT_OLLAMA_BASE_URL,
        timeout: float = DEFAULT_OLLAMA_TIMEOUT,
        max_retries: int = DEFAULT_OLLAMA_MAX_RETRIES,
        temperature: float = DEFAULT_OLLAMA_TEMPERATURE,
        client: ollama.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the Ollama proxy.

        Args:
            model: Ollama model name
            base_url: Ollama service URL
            timeout: Per-attempt timeout in seconds
            max_retries: Maximum attempts on timeout
            temperature: Sampling temperature
            client: Preconfigured client (tests inject a mock)
        """
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.temperature = temperature
        self._client = client or ollama.AsyncClient(host=base_url)

    def _build_messages(self, request: LLMRequest) -> list[dict[str, str]]:
        system_prompt = request.system_prompt
        if request.tasks:
            system_prompt = (
                f"{system_prompt}\n\nCurrent open tasks:\n"
                f"{format_task_list(request.tasks)}"
            )
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(
            {"role": turn["role"], "content": turn["content"]}
            for turn in request.conversation_history
        )
        messages.append({"role": "user", "content": request.message})
        return messages

    async def _chat(self, messages: list[dict[str, str]]) -> str:
        """
        Run the chat call with retries.

        Raises:
            LLMProxyError: If every attempt fails
        """
        for attempt in range(self.max_retries):
            try:
                response = await asyncio.wait_for(
                    self._client.chat(
                        model=self.model,
                        messages=messages,
                        options={"temperature": self.temperature},
                    ),
                    timeout=self.timeout,
                )
                return response["message"]["content"]

            except TimeoutError as e:
                logger.error(f"Timeout on attempt {attempt + 1}/{self.max_retries}: {e}")
                if attempt < self.max_retries - 1:
                    # Exponential backoff
                    await asyncio.sleep(2**attempt)
                else:
                    raise LLMProxyError(
                        f"Max retries exceeded after {self.max_retries} attempts"
                    ) from e

            except ConnectionError as e:
                logger.error(f"Connection error: {e}")
                raise LLMProxyError(f"Connection failed: {e}") from e

            except Exception as e:
                logger.error(f"LLM request error: {e}")
                raise LLMProxyError(f"LLM request failed: {e}") from e

        raise LLMProxyError(f"Max retries exceeded after {self.max_retries} attempts")

    async def complete(self, request: LLMRequest) -> LLMResponse:
        start_time = time.time()
        try:
            content = await self._chat(self._build_messages(request))
        except LLMProxyError as e:
            return LLMResponse(success=False, error=str(e))

        logger.debug(
            f"LLM response received: {len(content)} chars in "
            f"{time.time() - start_time:.3f}s"
        )
        return LLMResponse(success=True, response=content)
