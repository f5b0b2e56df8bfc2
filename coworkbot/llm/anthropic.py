"""Anthropic Messages API provider (block-framed streaming)."""

from typing import Any, Callable

import httpx

from coworkbot.content import (
    ContentBlock,
    ImageBlock,
    Message,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from coworkbot.error_handler import error_for_status
from coworkbot.exceptions import NetworkError
from coworkbot.llm.base import (
    LLMProvider,
    StreamChatRequest,
    iter_sse_data,
    parse_tool_input,
    text_block,
)
from coworkbot.logging import get_logger

log = get_logger(__name__)

ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
CONNECTION_CHECK_MODEL = "claude-3-haiku-20240307"

_ERROR_STATUS = {
    "invalid_request_error": 400,
    "authentication_error": 401,
    "permission_error": 403,
    "not_found_error": 404,
    "rate_limit_error": 429,
    "api_error": 500,
    "overloaded_error": 529,
}


class BlockFramedAssembler:
    """Rebuild content blocks from start/delta/stop framed stream events.

    Tool arguments arrive as JSON fragments for the currently open block and
    are parsed when that block closes.
    """

    def __init__(self, on_token: Callable[[str], None] | None = None):
        self._on_token = on_token
        self._blocks: list[ContentBlock] = []
        self._text: list[str] = []
        self._tool: dict[str, Any] | None = None
        self.stopped = False

    def feed(self, event: dict[str, Any]) -> None:
        kind = event.get("type")
        if kind == "content_block_start":
            block = event.get("content_block") or {}
            if block.get("type") == "tool_use":
                self._flush_text()
                self._tool = {"id": block.get("id", ""), "name": block.get("name", ""), "input": ""}
            elif block.get("type") == "text" and block.get("text"):
                self._add_text(block["text"])
        elif kind == "content_block_delta":
            delta = event.get("delta") or {}
            if delta.get("type") == "text_delta":
                self._add_text(delta.get("text", ""))
            elif delta.get("type") == "input_json_delta" and self._tool is not None:
                self._tool["input"] += delta.get("partial_json", "")
        elif kind == "content_block_stop":
            if self._tool is not None:
                tool = self._tool
                self._tool = None
                self._blocks.append(parse_tool_input(tool["id"], tool["name"], tool["input"]))
        elif kind == "message_stop":
            self.stopped = True
        elif kind == "error":
            error = event.get("error") or {}
            status = _ERROR_STATUS.get(error.get("type", ""), 500)
            raise error_for_status(status, error.get("message", ""), provider="anthropic")

    def finish(self) -> list[ContentBlock]:
        """Close the stream; buffered text becomes the final block.

        A tool block still open (stream cut short) is dropped.
        """
        if self._tool is not None:
            log.debug("Dropping unterminated tool block", tool=self._tool["name"])
            self._tool = None
        self._flush_text()
        return list(self._blocks)

    def _add_text(self, text: str) -> None:
        if not text:
            return
        self._text.append(text)
        if self._on_token:
            self._on_token(text)

    def _flush_text(self) -> None:
        block = text_block(self._text)
        self._text = []
        if block:
            self._blocks.append(block)


def convert_block(block: ContentBlock) -> dict[str, Any]:
    """Convert a content block to the Messages API shape."""
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, ImageBlock):
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": block.media_type, "data": block.data},
        }
    if isinstance(block, ToolUseBlock):
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": dict(block.input)}
    if isinstance(block, ToolResultBlock):
        entry: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": block.tool_use_id,
            "content": block.content,
        }
        if block.is_error:
            entry["is_error"] = True
        return entry
    raise TypeError(f"Unsupported content block: {type(block)!r}")


def convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
    result = []
    for msg in messages:
        if isinstance(msg.content, str):
            result.append({"role": msg.role, "content": msg.content})
        else:
            result.append({"role": msg.role, "content": [convert_block(b) for b in msg.content]})
    return result


def convert_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "name": tool["name"],
            "description": tool.get("description", ""),
            "input_schema": tool.get("parameters") or {"type": "object", "properties": {}},
        }
        for tool in tools
        if tool.get("name")
    ]


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API over httpx."""

    provider_name = "anthropic"

    def __init__(
        self,
        api_key: str,
        base_url: str = ANTHROPIC_BASE_URL,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        base = (base_url or ANTHROPIC_BASE_URL).strip().rstrip("/")
        if base.endswith("/v1"):
            base = base[: -len("/v1")]
        super().__init__(api_key, base, timeout=timeout, client=client)

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/v1/messages"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    async def stream_chat(self, request: StreamChatRequest) -> list[ContentBlock]:
        body: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "system": request.system_prompt,
            "messages": convert_messages(request.messages),
            "stream": True,
        }
        tools = convert_tools(request.tools)
        if tools:
            body["tools"] = tools

        assembler = BlockFramedAssembler(on_token=request.on_token)
        log.debug("Calling Anthropic", model=request.model, msg_count=len(request.messages))
        try:
            async with self.client.stream(
                "POST", self.messages_url, json=body, headers=self._headers()
            ) as response:
                await self._raise_for_stream_status(response)
                async for event in iter_sse_data(response):
                    if request.cancelled:
                        log.info("Stream cancelled", provider=self.provider_name)
                        break
                    assembler.feed(event)
                    if assembler.stopped:
                        break
        except httpx.TransportError as e:
            raise NetworkError(f"anthropic network error: {e}") from e
        return assembler.finish()

    async def check_connection(self, model: str = CONNECTION_CHECK_MODEL) -> bool:
        body = {
            "model": model or CONNECTION_CHECK_MODEL,
            "max_tokens": 1,
            "messages": [{"role": "user", "content": "ping"}],
        }
        await self._post_json(self.messages_url, body, self._headers())
        return True
