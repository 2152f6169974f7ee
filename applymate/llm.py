"""Groq chat-completions client used for agent turns and image extraction."""

import asyncio
import json
import logging
import math
from typing import Any, Optional, Sequence

import requests

from .config import DEFAULT_GROQ_BASE_URL
from .errors import AuthenticationError, RateLimitError, ToolUseFailedError, UpstreamError
from .models import ChatMessage, ModelResponse, ToolCall

logger = logging.getLogger(__name__)


def estimate_tokens(messages: Sequence[Any]) -> int:
    """Rough token cost of a prompt: serialized length / 4."""
    payload = [m.to_payload() if isinstance(m, ChatMessage) else m for m in messages]
    return math.ceil(len(json.dumps(payload)) / 4)


def classify_error(status: Optional[int], body: str) -> UpstreamError:
    """Map a failed completion request to the matching error type."""
    text = body.lower()
    if status == 429 or "rate limit" in text or "rate_limit" in text:
        return RateLimitError(f"Groq rate limit reached: {body[:200]}")
    if status in (401, 403) or "api key" in text or "invalid_api_key" in text:
        return AuthenticationError(f"Groq rejected the API key: {body[:200]}")
    if "tool_use_failed" in text:
        return ToolUseFailedError(f"Model produced an unusable tool call: {body[:200]}")
    return UpstreamError(f"Groq request failed ({status}): {body[:200]}")


def parse_completion(result: dict[str, Any]) -> ModelResponse:
    """Extract content, tool calls and usage from a completion body."""
    choices = result.get("choices") or [{}]
    message = choices[0].get("message") or {}

    tool_calls = []
    for index, raw in enumerate(message.get("tool_calls") or []):
        function = raw.get("function") or {}
        arguments: Any = function.get("arguments") or "{}"
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                logger.warning(f"Undecodable arguments for tool {function.get('name')}: {arguments[:100]}")
        if arguments is None:
            arguments = {}
        tool_calls.append(
            ToolCall(
                id=raw.get("id") or f"call_{index}",
                name=function.get("name", ""),
                arguments=arguments if isinstance(arguments, (dict, str)) else json.dumps(arguments),
            )
        )

    usage = result.get("usage") or {}
    return ModelResponse(
        content=message.get("content") or "",
        tool_calls=tool_calls,
        total_tokens=usage.get("total_tokens"),
    )


class GroqChatModel:
    """Blocking HTTP client for an OpenAI-compatible chat endpoint.

    The API key is passed per call so the caller decides which pooled key
    each request spends.
    """

    def __init__(
        self,
        model: str,
        base_url: str = DEFAULT_GROQ_BASE_URL,
        timeout: float = 15.0,
        temperature: float = 0.0,
    ):
        self.model = model
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.timeout = timeout
        self.temperature = temperature

    def complete(
        self,
        messages: Sequence[Any],
        api_key: str,
        tools: Optional[list[dict]] = None,
        tool_choice: str = "auto",
        max_tokens: Optional[int] = None,
    ) -> ModelResponse:
        """Run one chat completion."""
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_payload() if isinstance(m, ChatMessage) else m for m in messages],
            "temperature": self.temperature,
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = tool_choice
        if max_tokens:
            body["max_tokens"] = max_tokens

        try:
            response = requests.post(
                self.url,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Groq request failed: {e}") from e

        if response.status_code >= 400:
            raise classify_error(response.status_code, response.text)

        try:
            result = response.json()
        except ValueError as e:
            raise UpstreamError(f"Groq returned a non-JSON body: {e}") from e

        return parse_completion(result)

    async def invoke(
        self,
        messages: Sequence[Any],
        api_key: str,
        tools: Optional[list[dict]] = None,
        tool_choice: str = "auto",
        max_tokens: Optional[int] = None,
    ) -> ModelResponse:
        """Run complete() in a worker thread."""
        return await asyncio.to_thread(
            self.complete, messages, api_key, tools, tool_choice, max_tokens
        )
