# sandbox.py
# Tool execution boundary.
#
# execute() never raises. Every outcome, including quota exhaustion, bad
# arguments, and faults inside tool code, comes back as a value the model
# loop can hand to the model: the tool's result or {"error": message}.
#
# Order of checks per call:
#   resolve tool → per-run quota → global pacing → validate params → run
#   → ledger → artifact registry

import builtins
import json
import math
import operator
import re
import textwrap
import threading
import time
from typing import Any, Callable

from pydantic import ConfigDict, ValidationError, create_model
from RestrictedPython import compile_restricted, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)

from skill_runner import display
from skill_runner.context import ToolContext
from skill_runner.errors import ToolNotFoundError, ToolParameterError, ToolQuotaExceeded
from skill_runner.models import ToolCallLog, ToolDefinition, ToolParam
from skill_runner.state import RunState

# ---------------------------------------------------------------------------
# Quotas
# ---------------------------------------------------------------------------

DEFAULT_TOOL_CALL_LIMIT = 5

# Expensive or side-effecting tools get tighter caps than cheap lookups.
TOOL_CALL_LIMITS: dict[str, int] = {
    "brave-search": 6,
    "web-search": 6,
    "apify-scraper": 3,
    "generate-image": 2,
    "edit-image": 3,
    "generate-pdf": 2,
    "generate-docx": 2,
    "generate-excel": 2,
    "generate-csv": 3,
    "send-email": 1,
    "send-webhook": 2,
    "send-chat-message": 2,
    "transcribe-audio": 2,
    "text-to-speech": 2,
}


# ---------------------------------------------------------------------------
# Global pacing
# ---------------------------------------------------------------------------


class CallPacer:
    """
    Enforces a minimum gap between consecutive external calls.

    One instance (PACER) is shared by every run in the process: the
    downstream APIs are shared, so their cadence is too. Per-run state lives
    on ToolSandbox; this is the single exception.
    """

    def __init__(
        self,
        min_gap: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_gap = min_gap
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call_at: float | None = None

    def wait(self) -> float:
        """Block until the gap has elapsed. Returns seconds waited."""
        with self._lock:
            waited = 0.0
            if self._last_call_at is not None:
                remaining = self._last_call_at + self.min_gap - self._clock()
                if remaining > 0:
                    self._sleep(remaining)
                    waited = remaining
            self._last_call_at = self._clock()
            return waited


PACER = CallPacer(min_gap=1.5)


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------

_PARAM_TYPES: dict[str, Any] = {
    "string": str,
    "number": int | float,
    "boolean": bool,
    "array": list,
    "object": dict,
}


def validate_params(tool: ToolDefinition, params: Any) -> dict[str, Any]:
    """
    Check arguments against the tool's declared parameters.

    Undeclared keys pass through untouched. Raises ToolParameterError.
    """
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise ToolParameterError(f"Arguments for '{tool.name}' must be a JSON object.")

    fields: dict[str, Any] = {}
    for param in tool.parameters:
        fields[param.name] = _field_for(param)

    model = create_model(
        f"{tool.name}_params",
        __config__=ConfigDict(extra="allow"),
        **fields,
    )
    try:
        validated = model.model_validate(params)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ToolParameterError(f"Invalid arguments for '{tool.name}': {problems}") from exc
    return {**validated.model_dump(exclude_unset=True), **(validated.model_extra or {})}


def _field_for(param: ToolParam) -> tuple[Any, Any]:
    python_type = _PARAM_TYPES.get(param.type, Any)
    if param.required:
        return (python_type, ...)
    return (python_type | None, None)


# ---------------------------------------------------------------------------
# Code evaluation
# ---------------------------------------------------------------------------

TOOL_ENTRY_POINT = "run_tool"

_EXTRA_BUILTINS: dict[str, Any] = {
    name: getattr(builtins, name)
    for name in (
        "all", "any", "dict", "enumerate", "filter", "list", "map", "max",
        "min", "reversed", "set", "sum",
        "Exception", "KeyError", "RuntimeError", "TypeError", "ValueError",
    )
}

_INPLACE_OPS: dict[str, Callable[[Any, Any], Any]] = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "|=": operator.ior,
    "&=": operator.iand,
}


def _inplacevar(op: str, target: Any, value: Any) -> Any:
    if op not in _INPLACE_OPS:
        raise TypeError(f"Operator {op} is not allowed in tool code.")
    return _INPLACE_OPS[op](target, value)


def _apply(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    return func(*args, **kwargs)


def _tool_globals() -> dict[str, Any]:
    return {
        "__builtins__": {**safe_builtins, **_EXTRA_BUILTINS, "getattr": safer_getattr},
        "__name__": "tool",
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_apply_": _apply,
        "json": json,
        "re": re,
        "math": math,
    }


def compile_tool(tool: ToolDefinition) -> Callable[[dict, ToolContext], Any]:
    """
    Turn a stored tool body into a callable `run_tool(params, ctx)`.

    The body is compiled with RestrictedPython: no imports, and no access to
    `_`-prefixed or dunder attributes, so `ctx` exposes only its public
    helpers. It sees safe builtins plus json, re and math. Policy violations
    raise SyntaxError, which the sandbox returns as an error value.
    """
    source = f"def {TOOL_ENTRY_POINT}(params, ctx):\n" + textwrap.indent(tool.code, "    ")
    code = compile_restricted(source, filename=f"<tool:{tool.name}>", mode="exec")
    namespace = _tool_globals()
    exec(code, namespace)
    return namespace[TOOL_ENTRY_POINT]


# ---------------------------------------------------------------------------
# Sandbox
# ---------------------------------------------------------------------------

Handler = Callable[[dict, ToolContext], Any]


class ToolSandbox:
    """
    Executes tool calls for ONE run.

    Owns the run's call counters; shares only the process-wide pacer.
    """

    def __init__(
        self,
        tools: list[ToolDefinition],
        run: RunState,
        context: ToolContext,
        handlers: dict[str, Handler] | None = None,
        pacer: CallPacer = PACER,
        limits: dict[str, int] | None = None,
    ) -> None:
        self._tools = {t.name: t for t in tools}
        self._run = run
        self._context = context
        self._handlers = handlers or {}
        self._pacer = pacer
        self._limits = limits if limits is not None else TOOL_CALL_LIMITS
        self._counts: dict[str, int] = {}
        self._count_lock = threading.Lock()

    def calls_made(self, tool_name: str) -> int:
        return self._counts.get(tool_name, 0)

    def _reserve_call(self, tool_name: str) -> None:
        limit = self._limits.get(tool_name, DEFAULT_TOOL_CALL_LIMIT)
        with self._count_lock:
            used = self._counts.get(tool_name, 0)
            if used >= limit:
                raise ToolQuotaExceeded(
                    f"Maximum {limit} calls to {tool_name} reached. Proceed without it."
                )
            self._counts[tool_name] = used + 1

    def _resolve(self, tool_name: str) -> Handler:
        tool = self._tools.get(tool_name)
        if tool is None:
            raise ToolNotFoundError(f'Tool "{tool_name}" not found')
        if tool.code.strip():
            return compile_tool(tool)
        handler = self._handlers.get(tool_name)
        if handler is None:
            raise ToolNotFoundError(f'Tool "{tool_name}" has no executable logic')
        return handler

    def execute(self, tool_name: str, params: Any) -> Any:
        """Run one tool call. Returns the tool's result or {"error": message}."""
        started = time.monotonic()
        self._run.progress("tool-start", f"Running {tool_name}", tool=tool_name)

        try:
            handler = self._resolve(tool_name)
            self._reserve_call(tool_name)
            self._pacer.wait()
            arguments = validate_params(self._tools[tool_name], params)
            output = handler(arguments, self._context)
        except ToolQuotaExceeded as exc:
            output = {"error": str(exc)}
            self._run.log(f"⚠ {exc}")
        except Exception as exc:  # tool faults must never reach the loop
            output = {"error": str(exc) or exc.__class__.__name__}
            self._run.log(f"❌ {tool_name} failed: {output['error']}")
            display.tool_failed(tool_name, output["error"])

        duration_ms = int((time.monotonic() - started) * 1000)
        self._run.tool_calls.append(
            ToolCallLog(tool_name=tool_name, input=params, output=output, duration_ms=duration_ms)
        )
        self._run.artifacts.register_tool_output(tool_name, output)

        if not _is_error(output):
            self._run.log(f"✅ {tool_name} returned ({duration_ms}ms)")
        self._run.progress("tool-done", f"{tool_name} finished", tool=tool_name)
        return output


def _is_error(output: Any) -> bool:
    return isinstance(output, dict) and set(output) == {"error"}
