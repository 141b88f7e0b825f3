"""
STOCKCOUNT LLM Client
Chat-completion access for spoken command extraction.

Provides a unified interface for LLM inference with support for:
- OpenAI chat completions (primary, JSON mode)
- Anthropic Claude messages API (fallback)
- A mock backend for tests and offline runs

The client only moves text; prompt construction and JSON parsing live in the
command extractor.

Usage:
    from stockcount.llm_client import create_llm_client

    client = create_llm_client("openai", model="gpt-4o-mini")
    response = await client.chat(
        messages=[{"role": "user", "content": "Add 5 gallons of milk"}],
        json_mode=True,
    )
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from stockcount.exceptions import LLMTransportError

logger = logging.getLogger("stockcount.llm_client")


__all__ = [
    "LLMClient",
    "LLMBackend",
    "LLMResponse",
    "TokenUsage",
    "BaseLLMClient",
    "MockLLMClient",
    "OpenAIClient",
    "AnthropicClient",
    "create_llm_client",
]


# =============================================================================
# Enums and Data Classes
# =============================================================================


class LLMBackend(Enum):
    """Supported LLM backends."""
    OPENAI = "openai"        # OpenAI API
    ANTHROPIC = "anthropic"  # Anthropic Claude API
    MOCK = "mock"            # Mock for testing


DEFAULT_MODELS = {
    LLMBackend.OPENAI: "gpt-4o-mini",
    LLMBackend.ANTHROPIC: "claude-3-haiku-20240307",
    LLMBackend.MOCK: "mock",
}


@dataclass
class TokenUsage:
    """Token usage for the last request plus session totals."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    session_prompt_tokens: int = 0
    session_completion_tokens: int = 0
    session_total_tokens: int = 0

    def add(self, prompt: int, completion: int):
        """Add token counts from a request."""
        self.prompt_tokens = prompt
        self.completion_tokens = completion
        self.total_tokens = prompt + completion

        self.session_prompt_tokens += prompt
        self.session_completion_tokens += completion
        self.session_total_tokens += prompt + completion

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "session_prompt_tokens": self.session_prompt_tokens,
            "session_completion_tokens": self.session_completion_tokens,
            "session_total_tokens": self.session_total_tokens,
        }


@dataclass
class LLMResponse:
    """Response from LLM inference."""
    content: str
    finish_reason: str = ""
    model: str = ""
    usage: Optional[TokenUsage] = None
    latency_ms: float = 0.0


# =============================================================================
# Base Client Interface
# =============================================================================


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def chat(
        self,
        messages: List[Dict[str, Any]],
        temperature: float = 0.3,
        max_tokens: int = 300,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Send chat completion request."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the backend is available."""
        pass


# =============================================================================
# Mock Client (for testing)
# =============================================================================


class MockLLMClient(BaseLLMClient):
    """Mock LLM client returning queued responses."""

    def __init__(self, responses: Optional[List[Union[str, LLMResponse, Exception]]] = None):
        self.responses: List[Union[str, LLMResponse, Exception]] = list(responses or [])
        self.call_count = 0
        self.last_messages: List[Dict[str, Any]] = []
        self.available = True

    def set_response(self, response: Union[str, LLMResponse, Exception]):
        """Queue the next response; an exception is raised instead of returned."""
        self.responses.append(response)

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        temperature: float = 0.3,
        max_tokens: int = 300,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.call_count += 1
        self.last_messages = messages

        if not self.responses:
            return LLMResponse(content='{"commands": []}', model="mock")

        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return LLMResponse(content=response, model="mock")
        return response

    async def health_check(self) -> bool:
        return self.available


# =============================================================================
# Anthropic Client
# =============================================================================


class AnthropicClient(BaseLLMClient):
    """
    Anthropic Claude API client.

    Requires ANTHROPIC_API_KEY environment variable or an explicit key.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or DEFAULT_MODELS[LLMBackend.ANTHROPIC]
        self._client = None

    async def _ensure_client(self):
        """Lazily initialize the client."""
        if self._client is not None:
            return

        if not self.api_key:
            raise LLMTransportError("ANTHROPIC_API_KEY not set", service_name="anthropic")

        try:
            from anthropic import AsyncAnthropic
            self._client = AsyncAnthropic(api_key=self.api_key)
        except ImportError:
            raise LLMTransportError("anthropic package not installed", service_name="anthropic")

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        temperature: float = 0.3,
        max_tokens: int = 300,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate chat completion using Anthropic API."""
        await self._ensure_client()

        start_time = time.time()

        system_content = ""
        chat_messages = []
        for msg in messages:
            if msg["role"] == "system":
                system_content = msg["content"]
            else:
                chat_messages.append(msg)

        if json_mode:
            system_content += "\n\nRespond with a single JSON object and nothing else."

        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system_content,
                messages=chat_messages,
                temperature=temperature,
            )
        except Exception as e:
            logger.error(f"Anthropic API call failed: {e}")
            raise LLMTransportError(str(e), service_name="anthropic") from e

        latency_ms = (time.time() - start_time) * 1000

        content = "".join(
            block.text for block in response.content if block.type == "text"
        )

        usage = TokenUsage()
        usage.add(response.usage.input_tokens, response.usage.output_tokens)

        return LLMResponse(
            content=content,
            finish_reason=response.stop_reason or "",
            model=self.model,
            usage=usage,
            latency_ms=latency_ms,
        )

    async def health_check(self) -> bool:
        try:
            await self._ensure_client()
            return self._client is not None
        except LLMTransportError:
            return False


# =============================================================================
# OpenAI Client (Primary)
# =============================================================================


class OpenAIClient(BaseLLMClient):
    """
    OpenAI API client.

    Requires OPENAI_API_KEY environment variable or an explicit key.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or DEFAULT_MODELS[LLMBackend.OPENAI]
        self._client = None

    async def _ensure_client(self):
        """Lazily initialize the client."""
        if self._client is not None:
            return

        if not self.api_key:
            raise LLMTransportError("OPENAI_API_KEY not set", service_name="openai")

        try:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)
        except ImportError:
            raise LLMTransportError("openai package not installed", service_name="openai")

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        temperature: float = 0.3,
        max_tokens: int = 300,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate chat completion using OpenAI API."""
        await self._ensure_client()

        start_time = time.time()

        kwargs: Dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except Exception as e:
            logger.error(f"OpenAI API call failed: {e}")
            raise LLMTransportError(str(e), service_name="openai") from e

        latency_ms = (time.time() - start_time) * 1000

        choice = response.choices[0]

        usage = TokenUsage()
        if response.usage:
            usage.add(response.usage.prompt_tokens, response.usage.completion_tokens)

        return LLMResponse(
            content=choice.message.content or "",
            finish_reason=choice.finish_reason or "",
            model=self.model,
            usage=usage,
            latency_ms=latency_ms,
        )

    async def health_check(self) -> bool:
        try:
            await self._ensure_client()
            return self._client is not None
        except LLMTransportError:
            return False


# =============================================================================
# Main LLM Client (Backend Selection)
# =============================================================================


class LLMClient:
    """
    Unified LLM client with ordered backend fallback.

    Tracks token usage across the process for cost monitoring.
    """

    def __init__(
        self,
        backend: Union[LLMBackend, str] = LLMBackend.OPENAI,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        fallback_backends: Optional[List[LLMBackend]] = None,
    ):
        """
        Initialize LLM client.

        Args:
            backend: Primary backend to use
            api_key: API key for the primary backend
            model: Model name for the primary backend
            fallback_backends: Ordered list of fallback backends, tried with
                their default model and environment credentials
        """
        if isinstance(backend, str):
            backend = LLMBackend(backend)

        self.backend = backend
        self.api_key = api_key
        self.model = model
        self.fallback_backends = fallback_backends or []

        self.token_usage = TokenUsage()

        self._clients: Dict[LLMBackend, BaseLLMClient] = {}

        logger.info(f"LLM client initialized with backend: {backend.value}")

    def _get_client(self, backend: LLMBackend) -> BaseLLMClient:
        """Get or create client for backend."""
        if backend in self._clients:
            return self._clients[backend]

        primary = backend == self.backend
        api_key = self.api_key if primary else None
        model = self.model if primary else None

        if backend == LLMBackend.ANTHROPIC:
            client: BaseLLMClient = AnthropicClient(api_key=api_key, model=model)
        elif backend == LLMBackend.OPENAI:
            client = OpenAIClient(api_key=api_key, model=model)
        elif backend == LLMBackend.MOCK:
            client = MockLLMClient()
        else:
            raise ValueError(f"Unknown backend: {backend}")

        self._clients[backend] = client
        return client

    def register_client(self, backend: LLMBackend, client: BaseLLMClient) -> None:
        """Install a pre-built client for a backend (tests, custom transports)."""
        self._clients[backend] = client

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        temperature: float = 0.3,
        max_tokens: int = 300,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Run a chat completion, trying fallbacks in order.

        Raises:
            LLMTransportError: Every configured backend failed
        """
        errors: List[str] = []

        for backend in [self.backend] + self.fallback_backends:
            client = self._get_client(backend)
            try:
                response = await client.chat(
                    messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    json_mode=json_mode,
                )
            except LLMTransportError as e:
                logger.warning(f"LLM backend {backend.value} failed: {e}")
                errors.append(f"{backend.value}: {e.message}")
                continue

            if response.usage:
                self.token_usage.add(
                    response.usage.prompt_tokens, response.usage.completion_tokens
                )
            logger.debug(
                f"LLM response from {backend.value} in {response.latency_ms:.0f}ms"
            )
            return response

        raise LLMTransportError("All LLM backends failed: " + "; ".join(errors))

    async def health_check(self) -> bool:
        """True if any configured backend is available."""
        for backend in [self.backend] + self.fallback_backends:
            if await self._get_client(backend).health_check():
                return True
        return False

    def get_token_usage(self) -> Dict[str, int]:
        return self.token_usage.to_dict()


# =============================================================================
# Factory Function
# =============================================================================


def create_llm_client(
    backend: str = "openai",
    **kwargs
) -> LLMClient:
    """
    Create an LLM client.

    Args:
        backend: Backend type ("openai", "anthropic", "mock")
        **kwargs: Additional client configuration

    Returns:
        Configured LLMClient instance
    """
    return LLMClient(backend=LLMBackend(backend), **kwargs)
