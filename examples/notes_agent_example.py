"""Multi-step agent example: a note-taking assistant.

Demonstrates:
- Defining tools with @tool (including a context-aware tool)
- Resolving a model from a "vendor/model-id" string with ProviderRegistry
- Running the tool-calling loop with a step budget and error policy
- Observing each step as it finishes

Usage:
    uv run --env-file=.env examples/notes_agent_example.py --model openai/gpt-4o-mini --trace
    uv run examples/notes_agent_example.py --model vllm/Qwen/Qwen3-8B --url localhost:8000
"""

import argparse
import asyncio

from switchboard.context import Context
from switchboard.message import Message, MessageRole
from switchboard.model import LanguageModel
from switchboard.provider import AnthropicProvider, OpenAIProvider, OpenRouter, VLLMProvider
from switchboard.registry import ProviderRegistry
from switchboard.runner import Runner, ToolErrorPolicy
from switchboard.tools import LLMRecoverableError, tool

NOTES: dict[str, str] = {}


def make_registry(url: str | None) -> ProviderRegistry:
    registry = (
        ProviderRegistry()
        .register("openai", lambda m: LanguageModel(OpenAIProvider(), m))
        .register("openrouter", lambda m: LanguageModel(OpenRouter(), m))
        .register("anthropic", lambda m: LanguageModel(AnthropicProvider(), m))
    )
    if url:
        host, _, port = url.partition(":")
        registry.register("vllm", lambda m: LanguageModel(VLLMProvider(host, int(port or 8000)), m))
    return registry


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from switchboard.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


@tool
def add_note(title: str, content: str):
    """Save a note with the given title and content."""
    NOTES[title] = content
    return f"Saved note '{title}'."


@tool
def get_note(title: str):
    """Retrieve a note by title."""
    if title not in NOTES:
        raise LLMRecoverableError(
            f"No note titled '{title}'. Known titles: {', '.join(NOTES) or 'none'}"
        )
    return NOTES[title]


@tool
def list_notes():
    """List all saved note titles."""
    return sorted(NOTES)


@tool
def delete_note(context: Context, title: str):
    """Delete a note by title."""
    if NOTES.pop(title, None) is None:
        return f"No note found with title '{title}'."
    return f"Deleted note '{title}' (step {context.step_number})."


def print_step(step):
    for call in step.tool_calls:
        print(f"  [step {step.step_number}] {call.name}({call.arguments})")


async def main():
    parser = argparse.ArgumentParser(description="Notes agent")
    parser.add_argument("--model", default="openai/gpt-4o-mini")
    parser.add_argument("--url", default=None)
    parser.add_argument("--max-steps", type=int, default=6)
    parser.add_argument("--trace", action="store_true")
    args = parser.parse_args()

    if args.trace:
        setup_tracing("notes-agent")

    model = make_registry(args.url).language_model(args.model)
    runner = Runner()
    conversation = [Message(
        role=MessageRole.SYSTEM,
        content=(
            "You are a helpful note-taking assistant. "
            "Use the provided tools to manage the user's notes."
        ),
    )]

    print("Note-taking Assistant\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        conversation.append(Message(role=MessageRole.USER, content=user_input))
        result = await runner.run(
            model,
            conversation,
            tools=[add_note, get_note, list_notes, delete_note],
            max_steps=args.max_steps,
            tool_error_policy=ToolErrorPolicy.CONTINUE,
            on_step_finish=print_step,
        )
        conversation = result.messages
        print(f"Assistant: {result.text}\n")


if __name__ == "__main__":
    asyncio.run(main())
