"""
sportml-chat custom provider example.

Registers an adapter for a new provider kind and puts it in front of the
local Ollama server. The canned adapter answers only football questions and
reports a failure otherwise, so other questions fall through to Ollama.

Prerequisites:
    pip install sportml-chat
    ollama pull llama3.2:3b
"""

import asyncio

from sportml_chat import (
    ChatOrchestrator,
    FailureReason,
    ProviderConfig,
    ProviderFailure,
    ProviderSuccess,
    register_provider,
)


class CannedFootballProvider:
    """Answers from a fixed table of football facts."""

    FACTS = {
        "euro 2024": "Spain won Euro 2024, beating England 2-1 in the final.",
        "world cup": "Argentina won the 2022 World Cup on penalties against France.",
    }

    async def invoke(self, message, config):
        lowered = message.lower()
        for key, fact in self.FACTS.items():
            if key in lowered:
                return ProviderSuccess(reply=fact, provider_label=f"{config.name} (table)")
        return ProviderFailure(FailureReason.NO_SUITABLE_MODEL, "no canned answer")

    async def health_check(self, config):
        return True

    async def close(self):
        pass


register_provider("canned", CannedFootballProvider)


async def main():
    orchestrator = (
        ChatOrchestrator()
        .add_provider(ProviderConfig(
            name="facts", kind="canned", base_url="", models=[], priority=1,
        ))
        .add_provider(ProviderConfig(
            name="ollama", kind="ollama", priority=2,
            base_url="http://localhost:11434", models=["llama3.2:3b"],
        ))
    )

    async with orchestrator:
        for question in ["Who won Euro 2024?", "How long is a marathon?"]:
            response = await orchestrator.handle({"message": question})
            print(f"{question} -> [{response.status_code}] {response.body}")
            for attempt in response.attempts:
                print(f"  {attempt}")


if __name__ == "__main__":
    asyncio.run(main())
