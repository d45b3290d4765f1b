"""Plain chat against one provider, buffered and streamed, without tool servers."""

import asyncio
import logging

from openai import AsyncOpenAI

from mcp_bridge import ChatMessage, ChatRequest, Provider, create_llm, get_api_key

logging.basicConfig(level=logging.INFO)


async def chat_example_default_client():
    async with create_llm(Provider.OLLAMA, "llama3.2") as llm:
        if not await llm.check_health():
            print("Ollama is not running")
            return

        request = ChatRequest(
            model=llm.model,
            messages=[
                ChatMessage.system("You are a helpful assistant."),
                ChatMessage.user("What is the capital of Italy?"),
            ],
            options={"temperature": 0.3, "max_tokens": 200},
        )
        response = await llm.chat(request)
        print("Ollama:", response.content)


async def chat_example_streaming():
    client = AsyncOpenAI(api_key=get_api_key(Provider.OPENAI), max_retries=3, timeout=30)
    async with create_llm(Provider.OPENAI, "gpt-4o-mini", client=client) as llm:
        request = ChatRequest(
            model=llm.model,
            messages=[ChatMessage.user("Write a haiku about pipes.")],
            stream=True,
        )
        cancel = asyncio.Event()
        response = await llm.chat(request, cancel=cancel)
        async for fragment in response.stream:
            print(fragment, end="", flush=True)
        print()


if __name__ == "__main__":
    asyncio.run(chat_example_default_client())
    asyncio.run(chat_example_streaming())
