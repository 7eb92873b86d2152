"""Vendor transports.

A :class:`ModelProvider` turns canonical messages and options into one
vendor request and yields the vendor's raw stream events as plain
dicts.  Decoding those events is the job of the matching
:mod:`switchboard.adapters` adapter, chosen by ``vendor``.

Retries and timeouts are left to the vendor SDK client.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from switchboard.errors import TransportError
from switchboard.message import Message, MessageRole
from switchboard.options import GenerateOptions

logger = logging.getLogger(__name__)


class ModelProvider:
    """Base transport.  Subclasses set ``vendor`` and implement
    :meth:`stream_raw` as an async generator."""

    vendor: str = ""

    async def stream_raw(
            self,
            model: str,
            messages: list[Message],
            options: GenerateOptions,
    ) -> AsyncIterator[Any]:
        raise NotImplementedError


class OpenAIChatProvider(ModelProvider):
    """Shared chat-completions transport for OpenAI-style vendors."""

    vendor = "openai"
    client: AsyncOpenAI

    def build_request(
            self,
            model: str,
            messages: list[Message],
            options: GenerateOptions,
    ) -> dict:
        request: dict[str, Any] = {
            "model": model,
            "messages": [m.model_dump(exclude_none=True) for m in messages],
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if options.tools:
            request["tools"] = [t.openai_schema() for t in options.tools]
            request["tool_choice"] = _openai_tool_choice(options.tool_choice)
        if options.max_tokens is not None:
            request["max_tokens"] = options.max_tokens
        if options.temperature is not None:
            request["temperature"] = options.temperature
        if options.top_p is not None:
            request["top_p"] = options.top_p
        if options.stop_sequences:
            request["stop"] = options.stop_sequences
        return request

    async def stream_raw(
            self,
            model: str,
            messages: list[Message],
            options: GenerateOptions,
    ) -> AsyncIterator[Any]:
        request = self.build_request(model, messages, options)
        try:
            stream = await self.client.chat.completions.create(**request)
        except openai.APIStatusError as e:
            raise TransportError(e.message, vendor=self.vendor, status_code=e.status_code) from e
        except openai.APIError as e:
            raise TransportError(e.message, vendor=self.vendor) from e

        try:
            async for chunk in stream:
                yield chunk.model_dump()
        except openai.APIStatusError as e:
            raise TransportError(e.message, vendor=self.vendor, status_code=e.status_code) from e
        except openai.APIError as e:
            raise TransportError(e.message, vendor=self.vendor) from e
        finally:
            await stream.close()


def _openai_tool_choice(choice: str | None) -> Any:
    if choice is None:
        return "auto"
    if choice in ("auto", "none", "required"):
        return choice
    return {"type": "function", "function": {"name": choice}}


class OpenAIProvider(OpenAIChatProvider):

    vendor = "openai"

    def __init__(self, api_key: str | None = None):
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        self.client = AsyncOpenAI(
            api_key=api_key,
            max_retries=5,
            timeout=600.0
        )


class OpenRouter(OpenAIChatProvider):

    vendor = "openrouter"

    def __init__(self, api_key: str | None = None):
        if not api_key:
            api_key = os.getenv("OPENROUTER_API_KEY")
        self.client = AsyncOpenAI(
            base_url="https://openrouter.ai/api/v1",
            api_key=api_key,
            max_retries=5,
            timeout=180.0
        )


class VLLMProvider(OpenAIChatProvider):

    vendor = "vllm"

    def __init__(self, url: str, port: int):
        self.base_url = f"http://{url}:{port}/v1"
        self.client = AsyncOpenAI(base_url=self.base_url, api_key="DUMMY")


class OpenAICompatibleProvider(OpenAIChatProvider):
    """Any server exposing the OpenAI chat-completions API (Ollama,
    LM Studio, llama.cpp, ...)."""

    vendor = "openai-compatible"

    def __init__(self, base_url: str, api_key: str | None = None):
        self.base_url = base_url.rstrip("/")
        self.client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key or "DUMMY",
        )


class AnthropicProvider(ModelProvider):
    """Anthropic Messages API.

    System messages are lifted into the ``system`` parameter and tool
    results are sent as ``tool_result`` blocks in user turns.
    """

    vendor = "anthropic"
    default_max_tokens = 4096

    def __init__(self, api_key: str | None = None, timeout: float = 600.0):
        if not api_key:
            api_key = os.getenv("ANTHROPIC_API_KEY")
        self.client = AsyncAnthropic(
            api_key=api_key,
            max_retries=5,
            timeout=timeout,
        )

    def build_request(
            self,
            model: str,
            messages: list[Message],
            options: GenerateOptions,
    ) -> dict:
        system_parts = []
        wire: list[dict] = []
        tool_turn: dict | None = None
        for m in messages:
            if m.role == MessageRole.TOOL:
                block = {
                    "type": "tool_result",
                    "tool_use_id": m.tool_call_id,
                    "content": m.content or "",
                }
                # Consecutive tool results share one user turn.
                if tool_turn is None:
                    tool_turn = {"role": "user", "content": []}
                    wire.append(tool_turn)
                tool_turn["content"].append(block)
                continue
            tool_turn = None
            if m.role == MessageRole.SYSTEM:
                if m.content:
                    system_parts.append(m.content)
            elif m.role == MessageRole.USER:
                wire.append({"role": "user", "content": m.content or ""})
            else:
                blocks: list[dict] = []
                if m.content:
                    blocks.append({"type": "text", "text": m.content})
                for tc in m.tool_calls or []:
                    blocks.append({
                        "type": "tool_use", "id": tc.id,
                        "name": tc.name, "input": tc.arguments,
                    })
                wire.append({"role": "assistant", "content": blocks})

        request: dict[str, Any] = {
            "model": model,
            "messages": wire,
            "max_tokens": options.max_tokens or self.default_max_tokens,
            "stream": True,
        }
        if system_parts:
            request["system"] = "\n\n".join(system_parts)
        if options.tools:
            request["tools"] = [t.anthropic_schema() for t in options.tools]
            if options.tool_choice is not None:
                request["tool_choice"] = _anthropic_tool_choice(options.tool_choice)
        if options.temperature is not None:
            request["temperature"] = options.temperature
        if options.top_p is not None:
            request["top_p"] = options.top_p
        if options.stop_sequences:
            request["stop_sequences"] = options.stop_sequences
        return request

    async def stream_raw(
            self,
            model: str,
            messages: list[Message],
            options: GenerateOptions,
    ) -> AsyncIterator[Any]:
        request = self.build_request(model, messages, options)
        try:
            stream = await self.client.messages.create(**request)
        except anthropic.APIStatusError as e:
            raise TransportError(e.message, vendor=self.vendor, status_code=e.status_code) from e
        except anthropic.APIError as e:
            raise TransportError(e.message, vendor=self.vendor) from e

        try:
            async for event in stream:
                yield event.model_dump()
        except anthropic.APIStatusError as e:
            raise TransportError(e.message, vendor=self.vendor, status_code=e.status_code) from e
        except anthropic.APIError as e:
            raise TransportError(e.message, vendor=self.vendor) from e
        finally:
            await stream.close()


def _anthropic_tool_choice(choice: str) -> dict:
    if choice == "auto":
        return {"type": "auto"}
    if choice == "required":
        return {"type": "any"}
    if choice == "none":
        return {"type": "none"}
    return {"type": "tool", "name": choice}
