import asyncio
import inspect
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from switchboard.context import Context
from switchboard.errors import (
    ExecutorFailure,
    MissingExecutorError,
    RequestValidationError,
    ToolArgumentDecodeError,
)
from switchboard.events import FinishReason, Usage
from switchboard.instrumentation import agent_span, record_error, tool_span
from switchboard.message import Message, MessageRole, ToolCall, ToolDefinition
from switchboard.options import GenerateOptions
from switchboard.result import GenerateResult, StepResult, ToolResult, total_usage
from switchboard.tools import LLMRecoverableError, Tool

logger = logging.getLogger(__name__)

StepObserver = Callable[[StepResult], Any]


class LoopState(Enum):
    READY = "ready"
    CALLING = "calling"
    AWAITING_TOOL_RESULTS = "awaiting_tool_results"
    DONE = "done"
    FAILED = "failed"


class ToolErrorPolicy(Enum):
    """What the loop does when a tool executor raises.

    ``ABORT`` stops the loop with :class:`ExecutorFailure`.  ``CONTINUE``
    reports the failure to the model as the tool's result.
    """

    ABORT = "abort"
    CONTINUE = "continue"


@dataclass
class RunResult:
    """The result of a single Runner.run() invocation."""

    messages: list[Message]
    steps: list[StepResult]
    state: LoopState = LoopState.DONE

    @property
    def last_step(self) -> StepResult:
        return self.steps[-1]

    @property
    def text(self) -> str:
        return self.last_step.text

    @property
    def usage(self) -> Usage | None:
        return total_usage([s.usage for s in self.steps])


@dataclass
class _ToolOutcome:
    """Result of executing a single tool call."""

    output: str
    is_error: bool
    exception: Exception | None = None


class Runner:
    """Executes the multi-step tool-calling loop.

    Each step makes one ``generate`` call.  When the model stops with
    ``FinishReason.TOOL_CALLS`` and budget remains, the requested tools
    run, their results are appended as tool messages in request order,
    and the next step begins.  Otherwise the loop is done.

    Args:
        parallel_tool_calls: Run the tool calls of one step
            concurrently.  Results are appended in request order
            either way.  Under ``ToolErrorPolicy.ABORT`` a sequential
            step runs nothing after the failing call, while a parallel
            step lets the calls already started finish first.
    """

    def __init__(self, parallel_tool_calls: bool = True):
        self.parallel_tool_calls = parallel_tool_calls

    async def run(
        self,
        model,
        messages: list[Message],
        *,
        tools: list[Tool | ToolDefinition] | None = None,
        executors: dict[str, Callable | Tool] | None = None,
        max_steps: int = 1,
        on_step_finish: StepObserver | None = None,
        tool_error_policy: ToolErrorPolicy | None = None,
        options: GenerateOptions | None = None,
    ) -> RunResult:
        """Run the loop until a final answer or the step budget is spent.

        Args:
            model: A ``LanguageModel`` or middleware-wrapped model.
            messages: The conversation so far.  Not mutated.
            tools: Tool definitions offered to the model.  ``Tool``
                objects also register themselves as executors.
            executors: Executors keyed by tool name.
            max_steps: Maximum number of ``generate`` calls.  The
                default of 1 never executes tools.
            on_step_finish: Awaited with each ``StepResult`` before the
                next step starts.  An exception aborts the loop.
            tool_error_policy: Required when ``max_steps > 1``.
            options: Sampling settings; tool definitions are merged in.

        Raises:
            RequestValidationError: On an invalid budget or a missing
                policy.
            MissingExecutorError: If the model requests an unknown tool.
            ExecutorFailure: If a tool raises under ``ABORT``.
        """
        if max_steps < 1:
            raise RequestValidationError(f"max_steps must be at least 1, got {max_steps}")
        if max_steps > 1 and tool_error_policy is None:
            raise RequestValidationError(
                "tool_error_policy must be set explicitly when max_steps > 1"
            )

        definitions = list(options.tools) if options else []
        executor_map: dict[str, Callable | Tool] = {}
        for t in tools or []:
            if isinstance(t, Tool):
                definitions.append(t.definition)
                executor_map[t.name] = t
            else:
                definitions.append(t)
        executor_map.update(executors or {})
        call_options = (options or GenerateOptions()).model_copy(update={"tools": definitions})

        conversation = list(messages)
        steps: list[StepResult] = []
        state = LoopState.READY

        async with agent_span(model.model_id, max_steps) as span:
            try:
                for step_number in range(1, max_steps + 1):
                    state = LoopState.CALLING
                    logger.debug(f"Step {step_number}/{max_steps}: calling {model.model_id}")
                    result = await model.generate(conversation, call_options)

                    # Undecodable calls still get a (failed) result so
                    # the conversation matches what the model emitted.
                    broken = {e.call_id: e for e in result.tool_errors}
                    calls = _in_request_order(result)
                    assistant = Message(
                        role=MessageRole.ASSISTANT,
                        content=result.text or None,
                        tool_calls=calls or None,
                    )
                    conversation.append(assistant)

                    runs_tools = (
                        result.finish_reason == FinishReason.TOOL_CALLS
                        and bool(calls)
                        and step_number < max_steps
                    )
                    if not runs_tools:
                        step = StepResult(
                            step_number=step_number,
                            messages=[assistant],
                            text=result.text,
                            tool_calls=result.tool_calls,
                            finish_reason=result.finish_reason,
                            usage=result.usage,
                            tool_errors=result.tool_errors,
                        )
                        steps.append(step)
                        await _notify(on_step_finish, step)
                        state = LoopState.DONE
                        break

                    state = LoopState.AWAITING_TOOL_RESULTS
                    for tc in calls:
                        if tc.id not in broken and tc.name not in executor_map:
                            raise MissingExecutorError(
                                f"No executor registered for tool '{tc.name}'",
                                tool_name=tc.name, call_id=tc.id, vendor=model.vendor,
                            )

                    outcomes = await self._execute_tools(
                        calls, broken, executor_map, conversation, step_number, model,
                        stop_on_failure=tool_error_policy == ToolErrorPolicy.ABORT,
                    )
                    tool_results = []
                    tool_messages = []
                    for tc, outcome in zip(calls, outcomes):
                        if outcome.exception is not None and tool_error_policy == ToolErrorPolicy.ABORT:
                            raise ExecutorFailure(
                                f"Tool '{tc.name}' failed: {outcome.exception}",
                                tool_name=tc.name, call_id=tc.id, vendor=model.vendor,
                            ) from outcome.exception
                        tool_results.append(ToolResult(
                            tool_call_id=tc.id, tool_name=tc.name,
                            output=outcome.output, is_error=outcome.is_error,
                        ))
                        tool_messages.append(Message(
                            role=MessageRole.TOOL, content=outcome.output, tool_call_id=tc.id,
                        ))
                    conversation.extend(tool_messages)

                    step = StepResult(
                        step_number=step_number,
                        messages=[assistant, *tool_messages],
                        text=result.text,
                        tool_calls=result.tool_calls,
                        tool_results=tool_results,
                        finish_reason=result.finish_reason,
                        usage=result.usage,
                        tool_errors=result.tool_errors,
                    )
                    steps.append(step)
                    await _notify(on_step_finish, step)
                    state = LoopState.READY
            except Exception as e:
                logger.error(f"Agent loop failed in state {state.value}: {e}")
                state = LoopState.FAILED
                record_error(span, e)
                raise

        logger.info(f"Agent loop done after {len(steps)} step(s)")
        return RunResult(messages=conversation, steps=steps, state=state)

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def _execute_tools(
        self,
        calls: list[ToolCall],
        broken: dict[str, ToolArgumentDecodeError],
        executor_map: dict,
        conversation: list[Message],
        step_number: int,
        model,
        stop_on_failure: bool = False,
    ) -> list[_ToolOutcome]:
        """Run the calls of one step, returning outcomes in request order.

        Sequentially, dispatch stops after the first raising executor when
        *stop_on_failure* is set, so later calls never run.  In parallel
        every call has already started by the time one fails.
        """
        def one(tc: ToolCall):
            if tc.id in broken:
                return _decode_failure(broken[tc.id])
            ctx = Context(
                messages=list(conversation), tool_call=tc,
                step_number=step_number, model=model,
            )
            return self._execute_one(tc, executor_map[tc.name], ctx)

        if self.parallel_tool_calls and len(calls) > 1:
            return list(await asyncio.gather(*(one(tc) for tc in calls)))
        outcomes = []
        for tc in calls:
            outcome = await one(tc)
            outcomes.append(outcome)
            if stop_on_failure and outcome.exception is not None:
                break
        return outcomes

    async def _execute_one(self, tc: ToolCall, executor, ctx: Context) -> _ToolOutcome:
        if not isinstance(tc.arguments, dict):
            logger.warning(f"Arguments for {tc.name} are not a JSON object: {tc.arguments!r}")
            return _ToolOutcome(
                output=f"Error: arguments for '{tc.name}' must be a JSON object",
                is_error=True,
            )
        params = dict(tc.arguments)
        logger.info(f"Calling {tc.name} with {params}")
        func = executor.func if isinstance(executor, Tool) else executor
        if "context" in inspect.signature(func).parameters:
            params["context"] = ctx

        async with tool_span(tc.name, tc.id) as span:
            try:
                output = executor(**params)
                if inspect.isawaitable(output):
                    output = await output
            except LLMRecoverableError as e:
                logger.info(f"Tool {tc.name} requested retry: {e}")
                return _ToolOutcome(output=str(e), is_error=False)
            except Exception as e:
                logger.error(f"Tool {tc.name} raised: {e}")
                record_error(span, e)
                return _ToolOutcome(
                    output=f"Error calling {tc.name}: {e}", is_error=True, exception=e,
                )

        if isinstance(executor, Tool):
            output = output.output
        output_str = output if isinstance(output, str) else json.dumps(output, default=str)
        return _ToolOutcome(output=output_str, is_error=False)


def _in_request_order(result: GenerateResult) -> list[ToolCall]:
    """Decoded and undecodable calls merged by stream index."""
    indices = result.tool_call_indices
    if len(indices) != len(result.tool_calls):
        indices = list(range(len(result.tool_calls)))
    indexed = list(zip(indices, result.tool_calls))
    indexed.extend(
        (e.index, ToolCall(id=e.call_id, name=e.tool_name, arguments={}))
        for e in result.tool_errors
    )
    return [call for _, call in sorted(indexed, key=lambda pair: pair[0])]


async def _decode_failure(error: ToolArgumentDecodeError) -> _ToolOutcome:
    return _ToolOutcome(
        output=f"Error: invalid JSON arguments for '{error.tool_name}': {error.raw_arguments}",
        is_error=True,
    )


async def _notify(observer: StepObserver | None, step: StepResult) -> None:
    if observer is None:
        return
    outcome = observer(step)
    if inspect.isawaitable(outcome):
        await outcome
