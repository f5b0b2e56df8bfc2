"""Provider contract shared by every streaming adapter."""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable

import httpx

from coworkbot.content import ContentBlock, Message, TextBlock, ToolUseBlock
from coworkbot.exceptions import LLMError, NetworkError
from coworkbot.error_handler import error_for_status
from coworkbot.logging import get_logger

log = get_logger(__name__)

INVALID_JSON_INPUT = "Invalid JSON input"


@dataclass
class StreamChatRequest:
    """Everything a provider needs for one streaming call."""

    model: str
    system_prompt: str
    messages: list[Message]
    tools: list[dict[str, Any]] = field(default_factory=list)  # {"name", "description", "parameters"}
    max_tokens: int = 4096
    cancel_event: asyncio.Event | None = None
    on_token: Callable[[str], None] | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


def parse_tool_input(tool_id: str, name: str, raw: str) -> ToolUseBlock:
    """Build a ToolUseBlock from accumulated argument JSON.

    Malformed arguments never raise; the block carries an error marker and the
    raw text instead.
    """
    try:
        parsed = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError:
        parsed = None
    if not isinstance(parsed, dict):
        log.warning("Invalid tool arguments", tool=name, tool_use_id=tool_id, raw=raw[:200])
        return ToolUseBlock(id=tool_id, name=name, input={"error": INVALID_JSON_INPUT, "raw": raw})
    return ToolUseBlock(id=tool_id, name=name, input=parsed)


def text_block(buffer: list[str]) -> TextBlock | None:
    text = "".join(buffer)
    return TextBlock(text=text) if text else None


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """Yield decoded JSON payloads of ``data:`` lines until ``[DONE]``."""
    async for line in response.aiter_lines():
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            log.debug("Skipping undecodable SSE line", line=data[:200])
            continue
        if isinstance(payload, dict):
            yield payload


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    provider_name: str = ""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self._base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @property
    def base_url(self) -> str:
        return self._base_url

    @abstractmethod
    async def stream_chat(self, request: StreamChatRequest) -> list[ContentBlock]:
        """Stream one completion and return its ordered content blocks."""

    @abstractmethod
    async def check_connection(self, model: str) -> bool:
        """Minimal request (one token, no tools); raises when unreachable."""

    async def _post_json(self, url: str, body: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self.client.post(url, json=body, headers=headers)
        except httpx.TransportError as e:
            raise NetworkError(f"{self.provider_name} network error: {e}") from e
        if not response.is_success:
            raise error_for_status(response.status_code, response.text, provider=self.provider_name)
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise LLMError(f"{self.provider_name} response decode error: {e}") from e

    async def _raise_for_stream_status(self, response: httpx.Response) -> None:
        if not response.is_success:
            error_text = (await response.aread()).decode("utf-8", errors="replace")
            raise error_for_status(response.status_code, error_text, provider=self.provider_name)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
