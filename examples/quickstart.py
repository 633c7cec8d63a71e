"""
sportml-chat quickstart: Minimal example.

Prerequisites:
    pip install sportml-chat
    ollama pull llama3.2:3b
"""

import asyncio

from sportml_chat import ChatOrchestrator, ProviderConfig


async def main():
    orchestrator = ChatOrchestrator().enable_cache(ttl_seconds=900)
    orchestrator.add_provider(ProviderConfig(
        name="ollama",
        kind="ollama",
        base_url="http://localhost:11434",
        models=["llama3.2:3b", "llama3.2:1b", "phi3"],
    ))

    async with orchestrator:
        for _ in range(2):
            response = await orchestrator.handle({"message": "Who won the 2022 World Cup?"})

            if response.status_code == 200:
                print(f"Reply: {response.body['reply']}")
                print(f"Provider: {response.body['provider']}")
                print(f"Cached: {response.cached}")
            else:
                print(f"Error {response.status_code}: {response.body['error']}")

        print(orchestrator.get_stats())


if __name__ == "__main__":
    asyncio.run(main())
