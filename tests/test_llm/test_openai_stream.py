import json

import httpx
import pytest

from coworkbot.content import ImageBlock, Message, TextBlock, ToolResultBlock, ToolUseBlock
from coworkbot.exceptions import RateLimitError, SensitiveContentError
from coworkbot.llm import DeltaAssembler, MiniMaxProvider, OpenAIProvider, StreamChatRequest, normalize_base_url
from coworkbot.llm.base import INVALID_JSON_INPUT
from coworkbot.llm.openai_compat import convert_messages


def chunk(content: str | None = None, tool_calls: list[dict] | None = None) -> dict:
    delta: dict = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return {"choices": [{"index": 0, "delta": delta}]}


def sse(*chunks: dict) -> str:
    return "".join(f"data: {json.dumps(c)}\n\n" for c in chunks) + "data: [DONE]\n\n"


def make_provider(handler, cls=OpenAIProvider, base_url=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return cls(api_key="sk-test", base_url=base_url, client=client)


def make_request(**kwargs) -> StreamChatRequest:
    defaults = {
        "model": "gpt-4o-mini",
        "system_prompt": "You are helpful.",
        "messages": [Message(role="user", content="Hello")],
    }
    defaults.update(kwargs)
    return StreamChatRequest(**defaults)


@pytest.mark.asyncio
async def test_stream_accumulates_text_and_indexed_tool_calls():
    seen: list[httpx.Request] = []
    body = sse(
        chunk(content="Checking"),
        chunk(content="..."),
        chunk(tool_calls=[{"index": 0, "id": "call_a", "function": {"name": "read_file", "arguments": '{"pa'}}]),
        chunk(tool_calls=[{"index": 0, "function": {"arguments": 'th": "/a"}'}}]),
        chunk(tool_calls=[{"index": 1, "function": {"name": "list_directory", "arguments": "{}"}}]),
    )

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    provider = make_provider(handler)
    tokens: list[str] = []

    blocks = await provider.stream_chat(make_request(on_token=tokens.append))

    assert blocks == [
        TextBlock(text="Checking..."),
        ToolUseBlock(id="call_a", name="read_file", input={"path": "/a"}),
        ToolUseBlock(id="call_1", name="list_directory", input={}),
    ]
    assert tokens == ["Checking", "..."]
    assert str(seen[0].url) == "https://api.openai.com/v1/chat/completions"
    assert seen[0].headers["authorization"] == "Bearer sk-test"
    payload = json.loads(seen[0].content)
    assert payload["messages"][0] == {"role": "system", "content": "You are helpful."}
    assert payload["stream"] is True
    assert "tools" not in payload
    await provider.close()


@pytest.mark.asyncio
async def test_tools_are_sent_in_function_format():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, text=sse(chunk(content="ok")))

    provider = make_provider(handler)
    tools = [{"name": "echo", "description": "Echo", "parameters": {"type": "object", "properties": {}}}]

    await provider.stream_chat(make_request(tools=tools))

    assert seen[0]["tools"] == [
        {
            "type": "function",
            "function": {"name": "echo", "description": "Echo", "parameters": {"type": "object", "properties": {}}},
        }
    ]


@pytest.mark.asyncio
async def test_rate_limit_status_raises_rate_limit_error():
    provider = make_provider(lambda request: httpx.Response(429, text="Too Many Requests"))

    with pytest.raises(RateLimitError):
        await provider.stream_chat(make_request())


@pytest.mark.asyncio
async def test_content_filter_failure_raises_sensitive_content_error():
    provider = make_provider(
        lambda request: httpx.Response(500, text='{"base_resp": {"status_code": 1027, "status_msg": "output new_sensitive"}}'),
        cls=MiniMaxProvider,
    )

    with pytest.raises(SensitiveContentError):
        await provider.stream_chat(make_request())


@pytest.mark.asyncio
async def test_minimax_uses_its_own_endpoint():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"choices": []})

    provider = make_provider(handler, cls=MiniMaxProvider)

    assert await provider.check_connection("MiniMax-M2") is True
    assert str(seen[0].url) == "https://api.minimax.io/v1/chat/completions"
    assert json.loads(seen[0].content)["max_tokens"] == 1


def test_tool_calls_are_emitted_in_index_order():
    assembler = DeltaAssembler()
    assembler.feed(chunk(tool_calls=[{"index": 1, "id": "second", "function": {"name": "b", "arguments": "{}"}}]))
    assembler.feed(chunk(tool_calls=[{"index": 0, "id": "first", "function": {"name": "a", "arguments": "{}"}}]))

    assert [block.id for block in assembler.finish()] == ["first", "second"]


def test_malformed_arguments_become_error_marker():
    assembler = DeltaAssembler()
    assembler.feed(chunk(tool_calls=[{"index": 0, "id": "c1", "function": {"name": "a", "arguments": "[1, 2"}}]))

    [block] = assembler.finish()
    assert block.input == {"error": INVALID_JSON_INPUT, "raw": "[1, 2"}


def test_chunks_without_choices_are_ignored():
    assembler = DeltaAssembler()
    assembler.feed({"choices": []})
    assembler.feed({"usage": {"total_tokens": 3}})

    assert assembler.finish() == []


def test_normalize_base_url_strips_pasted_endpoints():
    assert normalize_base_url("https://api.openai.com/v1/chat/completions") == "https://api.openai.com/v1"
    assert normalize_base_url("https://proxy.local/chat/completions/") == "https://proxy.local"
    assert normalize_base_url("https://api.minimax.io/v1/text/chatcompletion") == "https://api.minimax.io/v1"
    assert normalize_base_url(" https://api.openai.com/v1 ") == "https://api.openai.com/v1"


def test_convert_messages_maps_images_tool_calls_and_results():
    history = [
        Message(role="user", content=[ImageBlock(media_type="image/png", data="AAAA"), TextBlock("What is this?")]),
        Message(
            role="assistant",
            content=[TextBlock("Let me look."), ToolUseBlock(id="c1", name="read_file", input={"path": "/a"})],
        ),
        Message(role="user", content=[ToolResultBlock(tool_use_id="c1", content="data")]),
    ]

    converted = convert_messages(history, "system")

    assert converted[0] == {"role": "system", "content": "system"}
    assert converted[1]["content"] == [
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
        {"type": "text", "text": "What is this?"},
    ]
    assert converted[2] == {
        "role": "assistant",
        "content": "Let me look.",
        "tool_calls": [
            {
                "id": "c1",
                "type": "function",
                "function": {"name": "read_file", "arguments": json.dumps({"path": "/a"})},
            }
        ],
    }
    assert converted[3] == {"role": "tool", "tool_call_id": "c1", "content": "data"}
