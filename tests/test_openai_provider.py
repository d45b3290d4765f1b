"""Tests for the OpenAI-compatible provider, served by httpx.MockTransport."""
import json

import httpx
import pytest
from openai import AsyncOpenAI

from mcp_bridge._exceptions import PayloadTooLargeError, ProviderError
from mcp_bridge.adapters.openai import OpenAIRequestAdapter
from mcp_bridge.budget import IMAGE_PLACEHOLDER
from mcp_bridge.providers.openai import OpenAILLM
from mcp_bridge.types.chat import ChatMessage, ChatRequest, ImagePart, TextPart
from mcp_bridge.types.tool import ToolDescriptor, ToolOffer


def completion(content="Hello there", tool_calls=None):
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "gpt-4o",
        "choices": [{"index": 0, "message": message, "finish_reason": "stop"}],
    }


def chunk(text):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 0,
        "model": "gpt-4o",
        "choices": [{"index": 0, "delta": {"content": text}, "finish_reason": None}],
    }


class Gateway:
    """Replays queued responses for /chat/completions and records request bodies."""

    def __init__(self, *responses, models=("gpt-4o", "gpt-4o-mini")):
        self.responses = list(responses)
        self.models = list(models)
        self.bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/models"):
            data = [{"id": m, "object": "model", "created": 0, "owned_by": "x"} for m in self.models]
            return httpx.Response(200, json={"object": "list", "data": data})
        self.bodies.append(json.loads(request.content))
        return self.responses.pop(0)


def make_llm(gateway, model="gpt-4o"):
    client = AsyncOpenAI(
        api_key="sk-test",
        base_url="http://gateway.test/v1",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(gateway)),
    )
    return OpenAILLM.from_client(model, client)


def photo_request():
    parts = (TextPart("What is in this picture?"), ImagePart("aGVsbG8gd29ybGQ="))
    return ChatRequest(model="gpt-4o", messages=[ChatMessage.user(parts)])


@pytest.mark.asyncio
async def test_buffered_completion():
    gateway = Gateway(httpx.Response(200, json=completion()))
    llm = make_llm(gateway)
    request = ChatRequest(
        model="gpt-4o",
        messages=[ChatMessage.system("Be brief"), ChatMessage.user("Hi")],
        options={"temperature": 0.2},
    )

    response = await llm.chat(request)

    assert response.content == "Hello there"
    assert response.tool_calls == ()
    body = gateway.bodies[0]
    assert body["messages"] == [
        {"role": "system", "content": "Be brief"},
        {"role": "user", "content": "Hi"},
    ]
    assert body["temperature"] == 0.2
    assert "tools" not in body


@pytest.mark.asyncio
async def test_tool_calls_are_parsed():
    calls = [
        {"id": "call_1", "type": "function", "function": {"name": "clock_now", "arguments": '{"tz": "UTC"}'}},
        {"id": "call_2", "type": "function", "function": {"name": "clock_now", "arguments": "{oops"}},
    ]
    gateway = Gateway(httpx.Response(200, json=completion(content=None, tool_calls=calls)))
    llm = make_llm(gateway)
    offer = ToolOffer("clock", ToolDescriptor(name="now", description="Current time"))
    request = ChatRequest(model="gpt-4o", messages=[ChatMessage.user("time?")], tools=[offer])

    response = await llm.chat(request)

    assert [(c.id, c.name, c.arguments) for c in response.tool_calls] == [
        ("call_1", "clock_now", {"tz": "UTC"})
    ]
    tool = gateway.bodies[0]["tools"][0]
    assert tool["function"]["name"] == "clock_now"
    assert tool["function"]["description"] == "[clock] Current time"


@pytest.mark.asyncio
async def test_payload_too_large_retries_once_without_images():
    too_large = httpx.Response(
        413, json={"error": {"code": "tokens_limit_reached", "message": "Request body too large"}}
    )
    gateway = Gateway(too_large, httpx.Response(200, json=completion("A cat")))
    llm = make_llm(gateway)

    response = await llm.chat(photo_request())

    assert response.content == "A cat"
    assert len(gateway.bodies) == 2
    first, retry = (json.dumps(b) for b in gateway.bodies)
    assert "aGVsbG8gd29ybGQ=" in first
    assert "aGVsbG8gd29ybGQ=" not in retry
    assert IMAGE_PLACEHOLDER in retry


@pytest.mark.asyncio
async def test_payload_too_large_twice():
    error = {"error": {"code": "tokens_limit_reached", "message": "too big"}}
    gateway = Gateway(httpx.Response(413, json=error), httpx.Response(413, json=error))
    llm = make_llm(gateway)

    with pytest.raises(PayloadTooLargeError, match="still too large after reducing to 96000"):
        await llm.chat(photo_request())
    assert len(gateway.bodies) == 2


@pytest.mark.asyncio
async def test_tokens_limit_code_on_other_status_is_not_retried():
    error = {"error": {"code": "tokens_limit_reached", "message": "too big"}}
    gateway = Gateway(httpx.Response(400, json=error))
    llm = make_llm(gateway)

    with pytest.raises(ProviderError, match=r"\(400\)") as info:
        await llm.chat(photo_request())
    assert not isinstance(info.value, PayloadTooLargeError)
    assert len(gateway.bodies) == 1


@pytest.mark.asyncio
async def test_error_embedded_in_success_response():
    body = {"error": {"code": "tokens_limit_reached", "message": "prompt too long"}}
    gateway = Gateway(httpx.Response(200, json=body), httpx.Response(200, json=completion("ok")))
    llm = make_llm(gateway)

    response = await llm.chat(ChatRequest(model="gpt-4o", messages=[ChatMessage.user("hi")]))

    assert response.content == "ok"
    assert len(gateway.bodies) == 2


@pytest.mark.asyncio
async def test_other_embedded_error():
    gateway = Gateway(httpx.Response(200, json={"error": {"message": "upstream exploded"}}))
    llm = make_llm(gateway)

    with pytest.raises(ProviderError, match="upstream exploded"):
        await llm.chat(ChatRequest(model="gpt-4o", messages=[ChatMessage.user("hi")]))


@pytest.mark.asyncio
async def test_no_choices():
    body = completion()
    body["choices"] = []
    llm = make_llm(Gateway(httpx.Response(200, json=body)))

    with pytest.raises(ProviderError, match="no choices"):
        await llm.chat(ChatRequest(model="gpt-4o", messages=[ChatMessage.user("hi")]))


@pytest.mark.asyncio
async def test_server_error_is_classified():
    llm = make_llm(Gateway(httpx.Response(500, json={"error": {"message": "down"}})))

    with pytest.raises(ProviderError, match=r"\(500\)"):
        await llm.chat(ChatRequest(model="gpt-4o", messages=[ChatMessage.user("hi")]))


@pytest.mark.asyncio
async def test_streaming():
    events = "".join(f"data: {json.dumps(chunk(t))}\n\n" for t in ("Hel", "", "lo")) + "data: [DONE]\n\n"
    gateway = Gateway(
        httpx.Response(200, content=events.encode(), headers={"content-type": "text/event-stream"})
    )
    llm = make_llm(gateway)
    request = ChatRequest(model="gpt-4o", messages=[ChatMessage.user("hi")], stream=True)

    response = await llm.chat(request)

    assert response.done is False
    assert [part async for part in response.stream] == ["Hel", "lo"]
    assert gateway.bodies[0]["stream"] is True


@pytest.mark.asyncio
async def test_models_and_health():
    llm = make_llm(Gateway())
    assert await llm.check_health()
    assert await llm.list_models() == ["gpt-4o", "gpt-4o-mini"]


@pytest.mark.asyncio
async def test_unreachable_gateway():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    llm = make_llm(refuse)
    assert not await llm.check_health()
    assert await llm.list_models() == []
    with pytest.raises(ProviderError, match="Connection problem"):
        await llm.chat(ChatRequest(model="gpt-4o", messages=[ChatMessage.user("hi")]))


def test_from_client_type_check():
    with pytest.raises(TypeError):
        OpenAILLM.from_client("gpt-4o", object())


def test_to_provider_extras_do_not_override():
    """Unknown options pass through, but never replace standard arguments."""
    request = ChatRequest(
        model="gpt-4o",
        messages=[ChatMessage.user("hi")],
        options={"max_tokens": 50, "response_format": {"type": "json_object"}, "extra": {"model": "x"}},
    )
    args = OpenAIRequestAdapter().to_provider(request)
    assert args["model"] == "gpt-4o"
    assert args["max_tokens"] == 50
    assert args["response_format"] == {"type": "json_object"}
