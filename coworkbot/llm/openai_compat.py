"""OpenAI-compatible chat completions provider (delta-accumulation streaming)."""

import json
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

OPENAI_BASE_URL = "https://api.openai.com/v1"
MINIMAX_BASE_URL = "https://api.minimax.io/v1"
CONNECTION_CHECK_MODEL = "gpt-4o-mini"

_KNOWN_SUFFIXES = (
    "/v1/chat/completions",
    "/chat/completions",
    "/v1/text/chatcompletion",
    "/text/chatcompletion",
)


def normalize_base_url(raw: str) -> str:
    """Strip a pasted endpoint path back to the API base.

    ``https://host/v1/chat/completions`` becomes ``https://host/v1``.
    """
    trimmed = str(raw or "").strip().rstrip("/")
    lowered = trimmed.lower()
    for suffix in _KNOWN_SUFFIXES:
        if lowered.endswith(suffix):
            base = trimmed[: -len(suffix)]
            return base + ("/v1" if suffix.startswith("/v1") else "")
    return trimmed


class DeltaAssembler:
    """Accumulate text and tool-call deltas keyed by positional index.

    Tool calls are only finalized at stream end since an index may receive
    its id, name and argument fragments in any order.
    """

    def __init__(self, on_token: Callable[[str], None] | None = None):
        self._on_token = on_token
        self._text: list[str] = []
        self._tool_calls: dict[int, dict[str, str]] = {}

    def feed(self, chunk: dict[str, Any]) -> None:
        choices = chunk.get("choices") or []
        if not choices:
            return
        delta = choices[0].get("delta") or {}

        content = delta.get("content")
        if content:
            self._text.append(content)
            if self._on_token:
                self._on_token(content)

        for tc in delta.get("tool_calls") or []:
            index = int(tc.get("index", 0))
            current = self._tool_calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
            if tc.get("id"):
                current["id"] = tc["id"]
            function = tc.get("function") or {}
            if function.get("name"):
                current["name"] = function["name"]
            if function.get("arguments"):
                current["arguments"] += function["arguments"]

    def finish(self) -> list[ContentBlock]:
        blocks: list[ContentBlock] = []
        text = text_block(self._text)
        if text:
            blocks.append(text)
        for index in sorted(self._tool_calls):
            tc = self._tool_calls[index]
            tool_id = tc["id"] or f"call_{index}"
            blocks.append(parse_tool_input(tool_id, tc["name"], tc["arguments"]))
        return blocks


def convert_messages(history: list[Message], system_prompt: str) -> list[dict[str, Any]]:
    """Convert block history to chat-completions messages.

    Tool results become ``tool`` role messages; assistant tool uses become
    ``tool_calls``.
    """
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]

    for msg in history:
        if isinstance(msg.content, str):
            messages.append({"role": msg.role, "content": msg.content})
            continue

        if msg.role == "user":
            parts: list[dict[str, Any]] = []
            results: list[ToolResultBlock] = []
            for block in msg.content:
                if isinstance(block, ToolResultBlock):
                    results.append(block)
                elif isinstance(block, TextBlock):
                    parts.append({"type": "text", "text": block.text})
                elif isinstance(block, ImageBlock):
                    parts.append({
                        "type": "image_url",
                        "image_url": {"url": f"data:{block.media_type};base64,{block.data}"},
                    })
            if parts:
                messages.append({"role": "user", "content": parts})
            for res in results:
                messages.append({
                    "role": "tool",
                    "tool_call_id": res.tool_use_id,
                    "content": res.content,
                })
        elif msg.role == "assistant":
            texts = [b.text for b in msg.content if isinstance(b, TextBlock)]
            uses = [b for b in msg.content if isinstance(b, ToolUseBlock)]
            entry: dict[str, Any] = {"role": "assistant"}
            if texts:
                entry["content"] = "\n".join(texts)
            if uses:
                entry["tool_calls"] = [
                    {
                        "id": b.id,
                        "type": "function",
                        "function": {"name": b.name, "arguments": json.dumps(b.input)},
                    }
                    for b in uses
                ]
            messages.append(entry)

    return messages


def convert_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("parameters") or {"type": "object", "properties": {}},
            },
        }
        for tool in tools
        if tool.get("name")
    ]


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions API over httpx."""

    provider_name = "openai"
    default_base_url = OPENAI_BASE_URL

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            api_key,
            normalize_base_url(base_url or self.default_base_url),
            timeout=timeout,
            client=client,
        )

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def stream_chat(self, request: StreamChatRequest) -> list[ContentBlock]:
        body: dict[str, Any] = {
            "model": request.model,
            "messages": convert_messages(request.messages, request.system_prompt),
            "stream": True,
            "max_tokens": request.max_tokens,
        }
        tools = convert_tools(request.tools)
        if tools:
            body["tools"] = tools

        assembler = DeltaAssembler(on_token=request.on_token)
        log.debug("Calling chat completions", provider=self.provider_name, model=request.model)
        try:
            async with self.client.stream(
                "POST", self.completions_url, json=body, headers=self._headers()
            ) as response:
                await self._raise_for_stream_status(response)
                async for chunk in iter_sse_data(response):
                    if request.cancelled:
                        log.info("Stream cancelled", provider=self.provider_name)
                        break
                    assembler.feed(chunk)
        except httpx.TransportError as e:
            raise NetworkError(f"{self.provider_name} network error: {e}") from e
        return assembler.finish()

    async def check_connection(self, model: str = CONNECTION_CHECK_MODEL) -> bool:
        body = {
            "model": model or CONNECTION_CHECK_MODEL,
            "max_tokens": 1,
            "messages": [{"role": "user", "content": "ping"}],
        }
        await self._post_json(self.completions_url, body, self._headers())
        return True


class MiniMaxProvider(OpenAIProvider):
    """MiniMax speaks the OpenAI wire format."""

    provider_name = "minimax"
    default_base_url = MINIMAX_BASE_URL
