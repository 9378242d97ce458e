"""LLM client abstraction."""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM."""

    content: list[Any]  # Content blocks (text or tool_use)
    stop_reason: str  # "end_turn", "tool_use", "max_tokens", etc.
    usage: dict[str, int] = field(default_factory=dict)
    model: str = ""
    raw_response: Any = None


@dataclass
class ToolUse:
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any]


def _block_field(block: Any, name: str, default: Any = None) -> Any:
    if isinstance(block, dict):
        return block.get(name, default)
    return getattr(block, name, default)


def response_text(response: LLMResponse) -> str:
    """Concatenate all text blocks of a response."""
    parts = []
    for block in response.content:
        if _block_field(block, "type") == "text":
            parts.append(_block_field(block, "text", ""))
    return "\n".join(parts).strip()


def tool_uses(response: LLMResponse) -> list[ToolUse]:
    """Extract tool_use blocks of a response."""
    uses = []
    for block in response.content:
        if _block_field(block, "type") == "tool_use":
            uses.append(
                ToolUse(
                    id=_block_field(block, "id", ""),
                    name=_block_field(block, "name", ""),
                    input=dict(_block_field(block, "input", {}) or {}),
                )
            )
    return uses


def serialize_content(content: list[Any]) -> list[dict]:
    """Turn SDK content blocks into plain dicts for the message history."""
    blocks = []
    for block in content:
        block_type = _block_field(block, "type")
        if block_type == "text":
            blocks.append({"type": "text", "text": _block_field(block, "text", "")})
        elif block_type == "tool_use":
            blocks.append(
                {
                    "type": "tool_use",
                    "id": _block_field(block, "id", ""),
                    "name": _block_field(block, "name", ""),
                    "input": _block_field(block, "input", {}),
                }
            )
    return blocks


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat(
        self, messages: list[dict], tools: list[dict] | None = None, tool_choice: dict | None = None
    ) -> LLMResponse:
        """
        Send chat request to LLM.

        Args:
            messages: List of message dicts with role and content
            tools: Optional list of tool definitions
            tool_choice: Optional tool choice constraint

        Returns:
            LLMResponse object
        """
        pass


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider."""

    def __init__(self, config: dict) -> None:
        """
        Initialize Anthropic provider.

        Args:
            config: Provider configuration. "base_url" points the SDK at a
                compatible endpoint (e.g. an Azure deployment).
        """
        self.config = config
        self.model = config.get("model", "claude-sonnet-4-20250514")
        self.max_tokens = config.get("max_tokens", 4096)
        self.temperature = config.get("temperature", 0.7)

        retry_config = config.get("retry", {})
        self.max_retries = retry_config.get("max_retries", 5)
        self.base_delay = retry_config.get("base_delay", 2.0)
        self.max_delay = retry_config.get("max_delay", 60.0)
        self.exponential_base = retry_config.get("exponential_base", 2.0)

        throttle_config = config.get("throttle", {})
        self.throttle_enabled = throttle_config.get("enabled", False)
        self.min_request_interval = throttle_config.get("min_request_interval", 0.5)
        self.last_request_time = 0.0

        api_key_env = config.get("api_key_env", "ANTHROPIC_API_KEY")
        self.api_key = os.getenv(api_key_env)
        if not self.api_key:
            raise ValueError(f"API key not found in environment variable: {api_key_env}")

        from anthropic import AsyncAnthropic

        client_kwargs = {"api_key": self.api_key}
        if config.get("base_url"):
            client_kwargs["base_url"] = config["base_url"]
        self.client = AsyncAnthropic(**client_kwargs)

        logger.info(f"Initialized Anthropic provider with model: {self.model}")

    async def _apply_throttle(self) -> None:
        if not self.throttle_enabled:
            return

        elapsed = time.time() - self.last_request_time
        if elapsed < self.min_request_interval:
            await asyncio.sleep(self.min_request_interval - elapsed)
        self.last_request_time = time.time()

    async def chat(
        self, messages: list[dict], tools: list[dict] | None = None, tool_choice: dict | None = None
    ) -> LLMResponse:
        """
        Send chat request to Anthropic API with retry on rate limits.

        Raises:
            Exception: If all retries are exhausted
        """
        await self._apply_throttle()

        system_message = None
        conversation_messages = []
        for msg in messages:
            if msg["role"] == "system":
                system_message = msg["content"]
            else:
                conversation_messages.append(msg)

        params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": conversation_messages,
        }
        if system_message:
            params["system"] = system_message
        if tools:
            params["tools"] = tools
            if tool_choice:
                params["tool_choice"] = tool_choice

        logger.debug(f"Calling Anthropic API with {len(conversation_messages)} messages")

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.messages.create(**params)
                return LLMResponse(
                    content=response.content,
                    stop_reason=response.stop_reason,
                    usage={
                        "input_tokens": response.usage.input_tokens,
                        "output_tokens": response.usage.output_tokens,
                    },
                    model=response.model,
                    raw_response=response,
                )
            except Exception as e:
                if self._is_rate_limit_error(e) and attempt < self.max_retries:
                    delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
                    retry_after = self._get_retry_after(e)
                    if retry_after:
                        delay = min(retry_after, self.max_delay)

                    logger.warning(
                        f"Rate limit error (429) on attempt {attempt + 1}/{self.max_retries + 1}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                    continue

                logger.error(f"Error calling Anthropic API: {e}", exc_info=True)
                raise

        raise RuntimeError("Retry loop exited without a response")

    def _is_rate_limit_error(self, error: Exception) -> bool:
        if "RateLimitError" in type(error).__name__:
            return True
        error_str = str(error).lower()
        return "429" in error_str or "rate limit" in error_str or "too many requests" in error_str

    def _get_retry_after(self, error: Exception) -> float | None:
        try:
            if hasattr(error, "response") and hasattr(error.response, "headers"):
                retry_after = error.response.headers.get("retry-after")
                if retry_after:
                    return float(retry_after)
        except (AttributeError, ValueError, TypeError):
            pass
        return None


class LLMClient:
    """Main LLM client that routes to the configured provider."""

    def __init__(self, config: dict, provider: Optional[LLMProvider] = None) -> None:
        """
        Initialize LLM client.

        Args:
            config: LLM configuration
            provider: Pre-built provider (skips provider construction)
        """
        self.config = config
        self.timeout_seconds = config.get("timeout_seconds")

        if provider is not None:
            self.provider = provider
            return

        provider_name = config.get("provider", "anthropic")
        if provider_name in ("anthropic", "azure_anthropic"):
            self.provider = AnthropicProvider(config.get(provider_name, {}))
        else:
            raise ValueError(f"Unsupported LLM provider: {provider_name}")

        logger.info(f"Initialized LLM client with provider: {provider_name}")

    async def chat(
        self,
        messages: list[dict],
        tools: list[dict] | None = None,
        tool_choice: dict | None = None,
        timeout: float | None = None,
    ) -> LLMResponse:
        """
        Send chat request to the provider.

        Args:
            messages: List of message dicts
            tools: Optional list of tool definitions
            tool_choice: Optional tool choice constraint
            timeout: Per-call timeout in seconds (falls back to config)

        Raises:
            asyncio.TimeoutError: If the call exceeds the timeout
        """
        timeout = timeout if timeout is not None else self.timeout_seconds
        call = self.provider.chat(messages, tools, tool_choice)
        if timeout:
            return await asyncio.wait_for(call, timeout=timeout)
        return await call
