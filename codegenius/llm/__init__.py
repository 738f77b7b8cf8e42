"""Streaming LLM providers - direct HTTP calls to chat completion APIs."""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator

import httpx

from codegenius.cancellation import CancellationToken
from codegenius.config import OLLAMA_DEFAULT_BASE_URL, OPENAI_DEFAULT_BASE_URL
from codegenius.exceptions import LLMAPIError, LLMError
from codegenius.logging import get_logger

log = get_logger(__name__)

_VALID_ROLES = {"system", "user", "assistant"}
SUPPORTED_PROVIDERS = ("openai", "ollama")
_PROVIDER_ALIASES = {
    "chatgpt": "openai",
    "openai-compatible": "openai",
}


@dataclass
class Message:
    """A message in the conversation."""

    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def _message_payload(messages: list[Message] | list[dict[str, Any]]) -> list[dict[str, str]]:
    """Validate and convert messages into wire format."""
    result = []
    for msg in messages:
        if isinstance(msg, dict):
            role = msg.get("role")
            content = msg.get("content")
        else:
            role = getattr(msg, "role", None)
            content = getattr(msg, "content", None)
        if role not in _VALID_ROLES or content is None:
            raise LLMError("Each message must have a valid 'role' and 'content'")
        result.append({"role": role, "content": str(content)})
    return result


class LLMProvider(ABC):
    """Abstract base class for streaming LLM providers."""

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
        cancellation: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Yield text fragments; the sequence simply ends when the reply is done.

        Implementations stop yielding promptly once `cancellation` is cancelled.
        """

    async def close(self) -> None:
        """Release network resources."""
        return None


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible `/chat/completions` provider using server-sent events."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        base_url: str = OPENAI_DEFAULT_BASE_URL,
        api_key: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize OpenAI-compatible provider.

        Args:
            model: Model name (e.g., 'gpt-4o-mini')
            base_url: API base URL, without the `/chat/completions` suffix
            api_key: Bearer token
            temperature: Default sampling temperature
            max_tokens: Default completion token cap (None = server default)
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport override
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens

        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _body(
        self,
        messages: list[Message],
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": _message_payload(messages),
            "stream": True,
            "temperature": self.temperature if temperature is None else temperature,
        }
        limit = max_tokens if max_tokens is not None else self.max_tokens
        if limit is not None:
            body["max_tokens"] = limit
        return body

    @staticmethod
    def _parse_event(line: str) -> tuple[str | None, bool]:
        """Parse one SSE line into (content, done)."""
        if not line.startswith("data:"):
            return None, False
        data = line[5:].strip()
        if data == "[DONE]":
            return None, True
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError:
            return None, False
        if isinstance(chunk, dict) and chunk.get("error"):
            error = chunk["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise LLMAPIError(f"OpenAI stream error: {message}")
        choices = chunk.get("choices") or []
        if not choices:
            return None, False
        delta = choices[0].get("delta") or {}
        return delta.get("content") or None, False

    async def stream(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
        cancellation: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion."""
        url = f"{self.base_url}/chat/completions"
        body = self._body(messages, temperature, max_tokens)

        try:
            log.debug("Calling chat completions", model=self.model, url=url, msg_count=len(body["messages"]))
            async with self.client.stream("POST", url, json=body, headers=self._headers()) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(
                        f"OpenAI API error {response.status_code}: {error_text}",
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if cancellation is not None and cancellation.is_cancelled:
                        log.debug("Stream cancelled by caller", model=self.model)
                        return
                    if not line.strip():
                        continue
                    content, done = self._parse_event(line.strip())
                    if done:
                        break
                    if content:
                        yield content

        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"OpenAI streaming error: {e}")
        except Exception as e:
            raise LLMError(f"OpenAI stream failed: {e}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


class OllamaProvider(LLMProvider):
    """Direct Ollama API provider."""

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = OLLAMA_DEFAULT_BASE_URL,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        api_key: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key

        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def stream(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
        cancellation: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion."""
        url = f"{self.base_url}/api/chat"

        options: dict[str, Any] = {
            "temperature": self.temperature if temperature is None else temperature,
        }
        limit = max_tokens if max_tokens is not None else self.max_tokens
        if limit is not None:
            options["num_predict"] = limit

        body: dict[str, Any] = {
            "model": self.model,
            "messages": _message_payload(messages),
            "stream": True,
            "options": options,
        }

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with self.client.stream("POST", url, json=body, headers=headers) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(
                        f"Ollama API error {response.status_code}: {error_text}",
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if cancellation is not None and cancellation.is_cancelled:
                        return
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if chunk.get("error"):
                        raise LLMAPIError(f"Ollama stream error: {chunk['error']}")
                    content = chunk.get("message", {}).get("content")
                    if content:
                        yield content
                    if chunk.get("done"):
                        break

        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama streaming error: {e}")
        except Exception as e:
            raise LLMError(f"Ollama stream failed: {e}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def normalize_provider_name(provider: str) -> str:
    """Map provider aliases onto supported provider names."""
    cleaned = str(provider or "").strip().lower()
    return _PROVIDER_ALIASES.get(cleaned, cleaned)


def create_provider(
    provider: str = "openai",
    model: str = "gpt-4o-mini",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.7,
    max_tokens: int | None = None,
    timeout: float = 120.0,
) -> LLMProvider:
    """Create an LLM provider.

    Args:
        provider: Provider name (openai, ollama)
        model: Model name
        api_key: Optional API key
        base_url: Optional base URL
        temperature: Default temperature
        max_tokens: Default max tokens
        timeout: HTTP timeout in seconds

    Returns:
        Configured LLMProvider instance
    """
    name = normalize_provider_name(provider)
    if name == "openai":
        return OpenAIProvider(
            model=model,
            base_url=base_url or OPENAI_DEFAULT_BASE_URL,
            api_key=api_key,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    if name == "ollama":
        return OllamaProvider(
            model=model,
            base_url=base_url or OLLAMA_DEFAULT_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )
    raise ValueError(f"Provider '{provider}' not supported. Use 'openai' or 'ollama'.")


# Global provider instance
_provider: LLMProvider | None = None


def get_provider() -> LLMProvider:
    """Get the global LLM provider instance."""
    global _provider
    if _provider is None:
        from codegenius.config import get_config
        cfg = get_config()
        _provider = create_provider(
            provider=cfg.model.provider,
            model=cfg.model.model,
            api_key=cfg.model.resolved_api_key() or None,
            base_url=cfg.model.base_url or None,
            temperature=cfg.model.temperature,
            max_tokens=cfg.model.max_tokens,
            timeout=cfg.model.timeout,
        )
    return _provider


def set_provider(provider: LLMProvider | None) -> None:
    """Set the global LLM provider instance."""
    global _provider
    _provider = provider
