"""Streaming chat example.

Demonstrates:
- Consuming canonical stream events from any vendor
- Wrapping a model with logging and caching middleware

Usage:
    uv run --env-file=.env examples/stream_chat_example.py --provider anthropic --model claude-sonnet-4-5
    uv run examples/stream_chat_example.py --provider compatible --url http://localhost:11434/v1 --model llama3
"""

import argparse
import asyncio
import logging

from switchboard.events import Finish, TextDelta
from switchboard.message import Message, MessageRole
from switchboard.middleware import CachingMiddleware, LoggingMiddleware, with_middleware
from switchboard.model import LanguageModel
from switchboard.provider import (
    AnthropicProvider,
    ModelProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
)

PROVIDERS = {
    "openai": lambda url: OpenAIProvider(),
    "anthropic": lambda url: AnthropicProvider(),
    "compatible": lambda url: OpenAICompatibleProvider(url),
}


def make_provider(provider: str, url: str | None) -> ModelProvider:
    if provider == "compatible" and not url:
        raise SystemExit("--url is required for compatible provider")
    return PROVIDERS[provider](url)


async def main():
    parser = argparse.ArgumentParser(description="Streaming chat")
    parser.add_argument("--provider", choices=PROVIDERS, default="openai")
    parser.add_argument("--model", default="gpt-4o-mini")
    parser.add_argument("--url", default=None)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    model = with_middleware(
        LanguageModel(make_provider(args.provider, args.url), args.model),
        LoggingMiddleware(),
        CachingMiddleware(),
    )
    conversation: list[Message] = []

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        conversation.append(Message(role=MessageRole.USER, content=user_input))
        parts = []
        print("Assistant: ", end="", flush=True)
        async for event in model.stream(conversation):
            if isinstance(event, TextDelta):
                parts.append(event.text)
                print(event.text, end="", flush=True)
            elif isinstance(event, Finish):
                print(f"\n[{event.reason.value}]\n")
        conversation.append(Message(role=MessageRole.ASSISTANT, content="".join(parts)))


if __name__ == "__main__":
    asyncio.run(main())
