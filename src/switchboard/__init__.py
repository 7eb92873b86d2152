from switchboard.adapters import (
    AnthropicStreamAdapter,
    BedrockStreamAdapter,
    OpenAIStreamAdapter,
    StreamAdapter,
    make_adapter,
)
from switchboard.context import Context
from switchboard.errors import (
    ExecutorFailure,
    MalformedStreamError,
    MissingExecutorError,
    RequestValidationError,
    SwitchboardError,
    ToolArgumentDecodeError,
    TransportError,
)
from switchboard.events import (
    Finish,
    FinishReason,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    Usage,
)
from switchboard.instrumentation import instrument, uninstrument
from switchboard.message import Message, MessageRole, ToolCall, ToolDefinition
from switchboard.middleware import (
    CachingMiddleware,
    InMemoryCache,
    LoggingMiddleware,
    Middleware,
    MiddlewareLanguageModel,
    with_middleware,
)
from switchboard.model import LanguageModel
from switchboard.options import GenerateOptions
from switchboard.provider import (
    AnthropicProvider,
    ModelProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    OpenRouter,
    VLLMProvider,
)
from switchboard.registry import ProviderRegistry
from switchboard.result import GenerateResult, StepResult, ToolResult
from switchboard.runner import LoopState, Runner, RunResult, ToolErrorPolicy
from switchboard.streaming import ToolCallAccumulator, ToolCallFragment
from switchboard.tools import LLMRecoverableError, Tool, tool

__all__ = [
    "AnthropicProvider",
    "AnthropicStreamAdapter",
    "BedrockStreamAdapter",
    "CachingMiddleware",
    "Context",
    "ExecutorFailure",
    "Finish",
    "FinishReason",
    "GenerateOptions",
    "GenerateResult",
    "InMemoryCache",
    "LLMRecoverableError",
    "LanguageModel",
    "LoggingMiddleware",
    "LoopState",
    "MalformedStreamError",
    "Message",
    "MessageRole",
    "Middleware",
    "MiddlewareLanguageModel",
    "MissingExecutorError",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "OpenAIStreamAdapter",
    "OpenRouter",
    "ProviderRegistry",
    "RequestValidationError",
    "RunResult",
    "Runner",
    "StepResult",
    "StreamAdapter",
    "StreamEvent",
    "SwitchboardError",
    "TextDelta",
    "Tool",
    "ToolArgumentDecodeError",
    "ToolCall",
    "ToolCallAccumulator",
    "ToolCallDelta",
    "ToolCallFragment",
    "ToolDefinition",
    "ToolErrorPolicy",
    "ToolResult",
    "TransportError",
    "Usage",
    "VLLMProvider",
    "instrument",
    "make_adapter",
    "tool",
    "uninstrument",
    "with_middleware",
]
