from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from mcp_bridge import BridgeRuntime, Provider, Settings

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

CONFIG = Path(__file__).with_name("mcp-servers.example.json")


async def ask(settings: Settings, question: str, stream: bool) -> None:
    """
    Start the configured tool servers, answer one question, shut down.

    The model sees every tool from every running server; when it asks for
    tools they all run at once and the model then writes the final answer.
    """
    async with BridgeRuntime(settings) as runtime:
        logger.info("Tool servers: %s", runtime.servers.server_status())
        result = await runtime.chat(question, system_prompt="Use tools when they help.", stream=stream)

        for tool_result in result.tool_results:
            logger.info("Tool %s returned: %s", tool_result.id, tool_result.content)

        if result.stream is not None:
            async for fragment in result.stream:
                print(fragment, end="", flush=True)
            print()
        else:
            print(result.answer)


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--provider",
        choices=[p.value for p in Provider],
        default=Provider.OLLAMA.value,
    )
    parser.add_argument("--model", default="llama3.2")  # "gpt-4o-mini", "gpt-4.1"
    parser.add_argument("--config", default=str(CONFIG))
    parser.add_argument("--stream", action="store_true")
    parser.add_argument("question", nargs="?", default="What time is it in Tokyo?")
    args = parser.parse_args()

    settings = Settings(provider=Provider(args.provider), model=args.model, config_path=args.config)
    asyncio.run(ask(settings, args.question, args.stream))
