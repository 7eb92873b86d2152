"""Composable wrappers around a :class:`~switchboard.model.LanguageModel`.

A middleware sees every ``generate`` and ``stream`` call together with a
``next`` callable that invokes the rest of the chain.  The first
middleware in a chain is the outermost one.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol

from switchboard.events import Finish, StreamEvent
from switchboard.message import Message
from switchboard.options import GenerateOptions
from switchboard.result import GenerateResult

logger = logging.getLogger(__name__)

GenerateNext = Callable[[list[Message], GenerateOptions | None], Awaitable[GenerateResult]]
StreamNext = Callable[[list[Message], GenerateOptions | None], AsyncIterator[StreamEvent]]


class Middleware:
    """Base middleware.  Both hooks pass straight through by default."""

    async def generate(
        self,
        messages: list[Message],
        options: GenerateOptions | None,
        model,
        next: GenerateNext,
    ) -> GenerateResult:
        return await next(messages, options)

    def stream(
        self,
        messages: list[Message],
        options: GenerateOptions | None,
        model,
        next: StreamNext,
    ) -> AsyncIterator[StreamEvent]:
        return next(messages, options)


class MiddlewareLanguageModel:
    """A language model with an ordered middleware chain applied.

    Exposes the same ``generate``/``stream`` interface as the model it
    wraps, so it can be used anywhere a model is expected.
    """

    def __init__(self, inner, middlewares: list[Middleware]):
        self.inner = inner
        self.middlewares = list(middlewares)

    @property
    def vendor(self) -> str:
        return self.inner.vendor

    @property
    def model_id(self) -> str:
        return self.inner.model_id

    def __repr__(self) -> str:
        names = ", ".join(type(m).__name__ for m in self.middlewares)
        return f"MiddlewareLanguageModel({self.inner!r}, [{names}])"

    async def generate(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        chain: GenerateNext = self.inner.generate
        for middleware in reversed(self.middlewares):
            chain = _bind_generate(middleware, self.inner, chain)
        return await chain(messages, options)

    def stream(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        chain: StreamNext = self.inner.stream
        for middleware in reversed(self.middlewares):
            chain = _bind_stream(middleware, self.inner, chain)
        return chain(messages, options)


def _bind_generate(middleware: Middleware, model, next: GenerateNext) -> GenerateNext:
    async def call(messages, options):
        return await middleware.generate(messages, options, model, next)
    return call


def _bind_stream(middleware: Middleware, model, next: StreamNext) -> StreamNext:
    def call(messages, options):
        return middleware.stream(messages, options, model, next)
    return call


def with_middleware(model, *middlewares: Middleware):
    """Wrap *model* with *middlewares*.

    If *model* is already wrapped, the new middlewares are appended to
    its chain (innermost) instead of nesting another wrapper.
    """
    if not middlewares:
        return model
    if isinstance(model, MiddlewareLanguageModel):
        return MiddlewareLanguageModel(model.inner, [*model.middlewares, *middlewares])
    return MiddlewareLanguageModel(model, list(middlewares))


class LoggingMiddleware(Middleware):
    """Logs duration, token usage and finish reason of every call."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    async def generate(self, messages, options, model, next):
        start = time.perf_counter()
        self.logger.debug(f"generate starting: provider={model.vendor}, model={model.model_id}")
        try:
            result = await next(messages, options)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.logger.error(
                f"generate failed after {elapsed_ms:.0f}ms: "
                f"provider={model.vendor}, model={model.model_id}: {e}"
            )
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000
        usage = result.usage
        self.logger.info(
            f"generate completed in {elapsed_ms:.0f}ms: "
            f"provider={model.vendor}, model={model.model_id}, "
            f"input_tokens={usage.input_tokens if usage else None}, "
            f"output_tokens={usage.output_tokens if usage else None}, "
            f"finish_reason={result.finish_reason.value}"
        )
        return result

    async def stream(self, messages, options, model, next):
        start = time.perf_counter()
        self.logger.debug(f"stream starting: provider={model.vendor}, model={model.model_id}")
        async for event in next(messages, options):
            if isinstance(event, Finish):
                elapsed_ms = (time.perf_counter() - start) * 1000
                self.logger.info(
                    f"stream completed in {elapsed_ms:.0f}ms: "
                    f"provider={model.vendor}, model={model.model_id}, "
                    f"finish_reason={event.reason.value}"
                )
            yield event


class Cache(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: float) -> None: ...


class InMemoryCache:
    """Process-local cache with per-entry expiry."""

    def __init__(self):
        self._entries: dict[str, tuple[float, str]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: float) -> None:
        now = time.monotonic()
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]
        self._entries[key] = (now + ttl, value)

    def __len__(self) -> int:
        return len(self._entries)


class CachingMiddleware(Middleware):
    """Caches ``generate`` results.  Streams pass through uncached.

    Partial results (tool calls with undecodable arguments) are never
    stored.

    Args:
        cache: Backend with async ``get``/``set``; defaults to an
            :class:`InMemoryCache`.
        ttl: Entry lifetime in seconds.
        include_tool_schemas: Hash tool parameter schemas into the key,
            not just tool names.
    """

    def __init__(
        self,
        cache: Cache | None = None,
        ttl: float = 3600.0,
        include_tool_schemas: bool = False,
    ):
        self.cache = cache if cache is not None else InMemoryCache()
        self.ttl = ttl
        self.include_tool_schemas = include_tool_schemas

    async def generate(self, messages, options, model, next):
        key = self.cache_key(model, messages, options or GenerateOptions())
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {model.vendor}/{model.model_id}")
            return GenerateResult.model_validate_json(cached)

        result = await next(messages, options)
        if not result.partial:
            await self.cache.set(key, result.model_dump_json(), self.ttl)
        return result

    def cache_key(self, model, messages: list[Message], options: GenerateOptions) -> str:
        parts = [
            model.vendor,
            model.model_id,
            json.dumps([m.model_dump(mode="json") for m in messages], sort_keys=True),
            f"mt:{options.max_tokens}",
            f"t:{options.temperature}",
            f"tp:{options.top_p}",
            f"stop:{options.stop_sequences}",
            f"tc:{options.tool_choice}",
        ]
        for t in options.tools:
            parts.append(f"tool:{t.name}")
            if self.include_tool_schemas:
                parts.append(json.dumps(t.parameters, sort_keys=True))
        digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
        return f"switchboard:cache:{digest}"
