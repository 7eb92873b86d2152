import inspect
import re
import types
import typing
from typing import Any, Callable

from pydantic import BaseModel

from switchboard.message import ToolDefinition


class ToolCallResult(BaseModel):
    tool_name: str
    output: Any


class LLMRecoverableError(Exception):
    """Raise from a tool to send the message back to the model as a
    normal tool result, so it can correct itself and retry."""


# Parameters the runner injects; never exposed to the model.
_INJECTED_PARAMS = {"context"}

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    set: "array",
    dict: "object",
}


def _json_type(annotation) -> str:
    if annotation is inspect.Parameter.empty:
        return "string"
    if isinstance(annotation, str):
        # Postponed annotations: match on the bare type name.
        by_name = {t.__name__: json_type for t, json_type in _JSON_TYPES.items()}
        return by_name.get(annotation.split("[")[0], "string")
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        return _json_type(args[0]) if len(args) == 1 else "string"
    return _JSON_TYPES.get(origin or annotation, "string")


def _build_parameters_schema(func: Callable) -> tuple[dict, list[str]]:
    """Derive a JSON-Schema object and the required names from *func*."""
    descriptions = _parse_param_descriptions(func)
    properties = {}
    required = []
    for name, param in inspect.signature(func).parameters.items():
        if name in _INJECTED_PARAMS:
            continue
        properties[name] = {
            "type": _json_type(param.annotation),
            "description": descriptions.get(name, ""),
        }
        if param.default is inspect.Parameter.empty:
            required.append(name)
    schema = {"type": "object", "properties": properties, "required": required}
    return schema, required


_GOOGLE_SECTION = re.compile(r"^\s*(Args|Arguments|Parameters):\s*$")
_GOOGLE_PARAM = re.compile(r"^(\s*)(\w+)(?:\s*\([^)]*\))?:\s*(.*)$")
_SPHINX_PARAM = re.compile(r"^\s*:param\s+(?:\w+\s+)?(\w+):\s*(.*)$")
_NUMPY_PARAM = re.compile(r"^(\s*)(\w+)\s*:\s*.+$")


def _parse_param_descriptions(func: Callable) -> dict[str, str]:
    """Extract per-parameter descriptions from *func*'s docstring.

    Understands Google (``Args:``), Sphinx (``:param x:``) and NumPy
    (``Parameters`` + dashes) styles.  Continuation lines are joined
    with newlines.
    """
    doc = inspect.getdoc(func)
    if not doc:
        return {}
    lines = doc.splitlines()

    if any(_SPHINX_PARAM.match(line) for line in lines):
        return _parse_sphinx(lines)
    for i, line in enumerate(lines[:-1]):
        if line.strip() == "Parameters" and set(lines[i + 1].strip()) == {"-"}:
            return _parse_numpy(lines[i + 2:])
    for i, line in enumerate(lines):
        if _GOOGLE_SECTION.match(line):
            return _parse_google(lines[i + 1:])
    return {}


def _parse_google(lines: list[str]) -> dict[str, str]:
    descriptions: dict[str, list[str]] = {}
    param_indent = None
    current = None
    for line in lines:
        if not line.strip():
            if current is not None:
                break
            continue
        indent = len(line) - len(line.lstrip())
        if param_indent is None:
            param_indent = indent
        if indent < param_indent:
            break
        match = _GOOGLE_PARAM.match(line)
        if indent == param_indent and match:
            current = match.group(2)
            descriptions[current] = [match.group(3).strip()]
        elif current is not None:
            descriptions[current].append(line.strip())
    return {k: "\n".join(v) for k, v in descriptions.items()}


def _parse_sphinx(lines: list[str]) -> dict[str, str]:
    descriptions: dict[str, list[str]] = {}
    current = None
    for line in lines:
        match = _SPHINX_PARAM.match(line)
        if match:
            current = match.group(1)
            descriptions[current] = [match.group(2).strip()]
        elif line.strip().startswith(":") or not line.strip():
            current = None
        elif current is not None:
            descriptions[current].append(line.strip())
    return {k: "\n".join(v) for k, v in descriptions.items()}


def _parse_numpy(lines: list[str]) -> dict[str, str]:
    descriptions: dict[str, list[str]] = {}
    current = None
    for i, line in enumerate(lines):
        if not line.strip():
            continue
        # The next section header ends the parameter list.
        if i + 1 < len(lines) and set(lines[i + 1].strip()) == {"-"}:
            break
        match = _NUMPY_PARAM.match(line)
        if match and not match.group(1):
            current = match.group(2)
            descriptions[current] = []
        elif current is not None:
            descriptions[current].append(line.strip())
    return {k: "\n".join(v) for k, v in descriptions.items() if v}


class Tool:
    """A Python callable exposed to the model as a tool.

    The parameter schema is derived from the signature and docstring
    unless ``parameters_schema`` is given.  A parameter named
    ``context`` is filled in by the runner and hidden from the model.

    Args:
        func: Sync or async function implementing the tool.
        name: Tool name; defaults to ``func.__name__``.
        description: Defaults to the docstring summary.
        parameters_schema: Explicit JSON-Schema for the arguments.
    """

    def __init__(
        self,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
        parameters_schema: dict | None = None,
    ):
        self.func = func
        self.name = name or func.__name__
        if description is None:
            doc = inspect.getdoc(func) or ""
            description = doc.split("\n\n")[0].strip()
        self.description = description
        if parameters_schema is None:
            parameters_schema, _ = _build_parameters_schema(func)
        self.parameters_schema = parameters_schema

    def __repr__(self) -> str:
        return f"Tool({self.name!r})"

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters_schema,
        )

    @property
    def wants_context(self) -> bool:
        return "context" in inspect.signature(self.func).parameters

    async def __call__(self, *args, **kwargs) -> ToolCallResult:
        output = self.func(*args, **kwargs)
        if inspect.isawaitable(output):
            output = await output
        return ToolCallResult(tool_name=self.name, output=output)


def tool(func: Callable | None = None, *, name: str | None = None, description: str | None = None):
    """Decorator turning a function into a :class:`Tool`.

    Usable bare (``@tool``) or with overrides
    (``@tool(name="search")``).
    """
    def wrap(f: Callable) -> Tool:
        return Tool(f, name=name, description=description)

    if func is not None:
        return wrap(func)
    return wrap
