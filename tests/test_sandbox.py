import pytest
from unittest.mock import MagicMock

from skill_runner.context import ToolContext
from skill_runner.errors import ToolParameterError
from skill_runner.files import PublicFiles
from skill_runner.models import ToolDefinition, ToolParam
from skill_runner.sandbox import DEFAULT_TOOL_CALL_LIMIT, CallPacer, ToolSandbox, validate_params
from skill_runner.state import RunState


class FakeClock:
    """Monotonic clock that only moves when told to, or when slept on."""

    def __init__(self, start=100.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


ECHO = ToolDefinition(
    name="echo",
    parameters=(ToolParam(name="message", type="string", required=True),),
)
ADD = ToolDefinition(
    name="add",
    parameters=(
        ToolParam(name="a", type="number", required=True),
        ToolParam(name="b", type="number"),
    ),
    code="return {'sum': params['a'] + params.get('b', 0)}",
)


def _sandbox(tmp_path, tools=(ECHO, ADD), handlers=None, limits=None, pacer=None, run=None):
    run = run or RunState("skill_test")
    context = ToolContext(
        credentials=lambda name: {"brave": "secret"}.get(name),
        log_sink=run.tool_log,
        files=PublicFiles(tmp_path),
    )
    sandbox = ToolSandbox(
        list(tools),
        run,
        context,
        handlers=handlers if handlers is not None else {"echo": lambda params, ctx: params["message"]},
        pacer=pacer or CallPacer(min_gap=0),
        limits=limits,
    )
    return sandbox, run

# ---------------------------------------------------------------------------
# Quotas
# ---------------------------------------------------------------------------

def test_quota_returns_structured_error_after_n_calls(tmp_path):
    sandbox, run = _sandbox(tmp_path, limits={"echo": 2})

    assert sandbox.execute("echo", {"message": "one"}) == "one"
    assert sandbox.execute("echo", {"message": "two"}) == "two"
    third = sandbox.execute("echo", {"message": "three"})

    assert third == {"error": "Maximum 2 calls to echo reached. Proceed without it."}
    assert sandbox.calls_made("echo") == 2
    assert len(run.tool_calls) == 3


def test_unlisted_tool_gets_default_quota(tmp_path):
    sandbox, _ = _sandbox(tmp_path, limits={})
    results = [sandbox.execute("add", {"a": i}) for i in range(DEFAULT_TOOL_CALL_LIMIT + 1)]
    assert results[-2] == {"sum": DEFAULT_TOOL_CALL_LIMIT - 1}
    assert "Maximum" in results[-1]["error"]


def test_quota_is_per_run(tmp_path):
    first, _ = _sandbox(tmp_path, limits={"echo": 1})
    second, _ = _sandbox(tmp_path, limits={"echo": 1})

    assert first.execute("echo", {"message": "a"}) == "a"
    assert second.execute("echo", {"message": "b"}) == "b"
    assert "error" in first.execute("echo", {"message": "c"})


def test_rejected_arguments_still_use_quota(tmp_path):
    sandbox, _ = _sandbox(tmp_path, limits={"add": 1})
    assert "Invalid arguments" in sandbox.execute("add", {"a": "lots"})["error"]
    assert "Maximum 1 calls" in sandbox.execute("add", {"a": 1})["error"]

# ---------------------------------------------------------------------------
# Pacing
# ---------------------------------------------------------------------------

def test_pacer_waits_out_the_remaining_gap():
    clock = FakeClock()
    pacer = CallPacer(min_gap=1.5, clock=clock, sleep=clock.sleep)

    assert pacer.wait() == 0.0
    clock.now += 0.5
    assert pacer.wait() == pytest.approx(1.0)
    clock.now += 2.0
    assert pacer.wait() == 0.0
    assert clock.sleeps == [pytest.approx(1.0)]


def test_pacer_is_shared_across_sandboxes(tmp_path):
    clock = FakeClock()
    pacer = CallPacer(min_gap=1.5, clock=clock, sleep=clock.sleep)
    first, _ = _sandbox(tmp_path, pacer=pacer)
    second, _ = _sandbox(tmp_path, pacer=pacer)

    first.execute("echo", {"message": "a"})
    second.execute("add", {"a": 1})
    assert clock.sleeps == [pytest.approx(1.5)]

# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

def test_stored_code_runs_with_validated_params(tmp_path):
    sandbox, run = _sandbox(tmp_path)
    assert sandbox.execute("add", {"a": 2, "b": 3.5}) == {"sum": 5.5}
    assert sandbox.execute("add", {"a": 2}) == {"sum": 2}

    entry = run.tool_calls[0]
    assert entry.tool_name == "add"
    assert entry.input == {"a": 2, "b": 3.5}
    assert entry.output == {"sum": 5.5}
    assert entry.duration_ms >= 0


def test_stored_code_wins_over_handler(tmp_path):
    tool = ToolDefinition(name="echo", code="return 'from code'")
    sandbox, _ = _sandbox(tmp_path, tools=[tool])
    assert sandbox.execute("echo", {}) == "from code"


def test_code_sees_context_and_helpers(tmp_path):
    tool = ToolDefinition(
        name="shout",
        code=(
            "ctx.log('shouting')\n"
            "key = ctx.get_credential('brave')\n"
            "return json.dumps({'key': key, 'missing': ctx.get_credential('nope')})"
        ),
    )
    sandbox, run = _sandbox(tmp_path, tools=[tool])
    assert sandbox.execute("shout", {}) == '{"key": "secret", "missing": null}'
    assert any(line.endswith("🔧 shouting") for line in run.logs)


def test_code_cannot_import(tmp_path):
    tool = ToolDefinition(name="sneaky", code="import os\nreturn os.getcwd()")
    sandbox, _ = _sandbox(tmp_path, tools=[tool])
    assert "error" in sandbox.execute("sneaky", {})


@pytest.mark.parametrize("body", [
    "r = ctx._log_sink.__self__\nr.artifacts._add('spy', '/skill-files/forged.pdf')\nreturn 'ok'",
    "return ctx.log.__self__.tool_calls",
    "return ctx._credentials.__self__.path",
    "return getattr(ctx, '_files')",
])
def test_code_cannot_reach_run_state(tmp_path, body):
    tool = ToolDefinition(name="spy", code=body)
    sandbox, run = _sandbox(tmp_path, tools=[tool])

    result = sandbox.execute("spy", {})

    assert set(result) == {"error"}
    assert run.artifacts.all() == []
    assert [c.tool_name for c in run.tool_calls] == ["spy"]


def test_code_supports_loops_and_augmented_assignment(tmp_path):
    tool = ToolDefinition(
        name="tally",
        code=(
            "total = 0\n"
            "for key, value in params['counts'].items():\n"
            "    total += value\n"
            "out = {}\n"
            "out['total'] = total\n"
            "return out"
        ),
    )
    sandbox, _ = _sandbox(tmp_path, tools=[tool])
    assert sandbox.execute("tally", {"counts": {"a": 2, "b": 3}}) == {"total": 5}


def test_tool_exception_becomes_error_value(tmp_path):
    def explode(params, ctx):
        raise RuntimeError("upstream exploded")

    sandbox, run = _sandbox(tmp_path, handlers={"echo": explode})
    result = sandbox.execute("echo", {"message": "x"})

    assert result == {"error": "upstream exploded"}
    assert run.tool_calls[0].output == {"error": "upstream exploded"}
    assert any("❌ echo failed" in line for line in run.logs)


def test_missing_tool_is_an_error_for_that_call(tmp_path):
    sandbox, run = _sandbox(tmp_path)
    assert sandbox.execute("nope", {}) == {"error": 'Tool "nope" not found'}
    assert run.tool_calls[0].tool_name == "nope"
    assert sandbox.calls_made("nope") == 0


def test_tool_without_logic_is_an_error(tmp_path):
    sandbox, _ = _sandbox(tmp_path, tools=[ToolDefinition(name="empty")])
    assert "no executable logic" in sandbox.execute("empty", {})["error"]


def test_non_object_arguments_are_rejected(tmp_path):
    sandbox, _ = _sandbox(tmp_path)
    assert "must be a JSON object" in sandbox.execute("echo", "not json")["error"]


def test_outputs_are_registered_as_artifacts(tmp_path):
    handlers = {"echo": lambda params, ctx: {"url": "/skill-files/out.pdf"}}
    sandbox, run = _sandbox(tmp_path, handlers=handlers)
    sandbox.execute("echo", {"message": "x"})
    assert [a.url for a in run.artifacts.all()] == ["/skill-files/out.pdf"]


def test_progress_events_bracket_each_call(tmp_path):
    events = []
    run = RunState("skill_test", on_progress=events.append)
    sandbox, _ = _sandbox(tmp_path, run=run)
    sandbox.execute("echo", {"message": "x"})
    assert [(e.type, e.tool) for e in events] == [("tool-start", "echo"), ("tool-done", "echo")]


def test_failing_progress_callback_is_ignored(tmp_path):
    run = RunState("skill_test", on_progress=MagicMock(side_effect=ValueError("observer broke")))
    sandbox, _ = _sandbox(tmp_path, run=run)
    assert sandbox.execute("echo", {"message": "x"}) == "x"

# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------

def test_validate_params_types():
    tool = ToolDefinition(
        name="typed",
        parameters=(
            ToolParam(name="s", type="string", required=True),
            ToolParam(name="n", type="number"),
            ToolParam(name="flag", type="boolean"),
            ToolParam(name="items", type="array"),
            ToolParam(name="opts", type="object"),
        ),
    )
    params = {"s": "x", "n": 3, "flag": True, "items": [1], "opts": {"k": 1}, "extra": "kept"}
    assert validate_params(tool, params) == params
    assert validate_params(tool, {"s": "x"}) == {"s": "x"}

    with pytest.raises(ToolParameterError, match="s: Field required"):
        validate_params(tool, {})
    with pytest.raises(ToolParameterError, match="items"):
        validate_params(tool, {"s": "x", "items": "nope"})
