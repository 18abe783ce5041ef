"""
Text-completion service clients used inside workers.

The orchestration core never talks to the completion backend directly; only
:class:`~agent_conductor.agents.specialized.CompletionAgent` subclasses do.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from ..models.errors import ExternalServiceError
from ..utils.config import CompletionConfig
from ..utils.error_handler import ErrorHandler, RetryConfig
from ..utils.logging import get_logger

logger = get_logger(__name__)


class CompletionOptions(BaseModel):
    """Per-call generation options."""
    max_tokens: int = Field(default=1500, ge=1)
    temperature: float = Field(default=0.6, ge=0.0, le=2.0)
    timeout_ms: int = Field(default=30000, ge=100)
    system_prompt: Optional[str] = None


class TextCompletionService(ABC):
    """Interface for prompt-in, text-out generation backends."""

    @abstractmethod
    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> str:
        """Return the completion text for ``prompt``."""

    async def close(self) -> None:
        """Release any held resources."""


class HTTPCompletionService(TextCompletionService):
    """
    Client for an OpenAI-compatible ``/chat/completions`` endpoint.

    Transport errors and non-2xx responses are retried with exponential
    backoff and finally raised as :class:`ExternalServiceError`.
    """

    def __init__(self, config: CompletionConfig, client: Optional[httpx.AsyncClient] = None):
        if not config.endpoint:
            raise ValueError("CompletionConfig.endpoint is required for HTTPCompletionService")

        self.config = config
        self.error_handler = ErrorHandler()
        self.retry_config = RetryConfig(max_retries=config.max_retries, base_delay=0.5, max_delay=5.0)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=config.endpoint.rstrip("/"))

    def _build_payload(self, prompt: str, options: CompletionOptions) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})

        return {
            "model": self.config.model,
            "messages": messages,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> str:
        options = options or CompletionOptions(
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            timeout_ms=self.config.timeout_ms
        )
        payload = self._build_payload(prompt, options)

        async def send() -> httpx.Response:
            response = await self._client.post(
                "/chat/completions",
                json=payload,
                headers=self._headers(),
                timeout=options.timeout_ms / 1000.0
            )
            response.raise_for_status()
            return response

        try:
            response = await self.error_handler.with_retry(
                send,
                self.retry_config,
                error_types=(httpx.HTTPError,),
                context={"service": "completion", "model": self.config.model}
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Completion request failed: {e}", model=self.config.model) from e

        try:
            body = response.json()
            return body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError(f"Malformed completion response: {e}") from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class TemplateCompletionService(TextCompletionService):
    """
    Deterministic offline backend.

    Renders ``template`` with the prompt; used by the CLI demo and in tests.
    """

    def __init__(self, template: str = "{prompt}", responses: Optional[Dict[str, str]] = None):
        self.template = template
        self.responses = responses or {}
        self.prompts: List[str] = []

    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> str:
        self.prompts.append(prompt)
        for marker, response in self.responses.items():
            if marker in prompt:
                return response
        return self.template.format(prompt=prompt)
