import json

import httpx
import pytest
from unittest.mock import MagicMock

from openai import APIConnectionError

from skill_runner.config import Settings
from skill_runner.errors import ProviderError
from skill_runner.harness import MAX_STEPS_MESSAGE, NO_PROVIDER_MESSAGE, SkillHarness
from skill_runner.models import ChatTurn, SkillDefinition, ToolCall, ToolDefinition
from skill_runner.sandbox import CallPacer
from skill_runner.store import JsonStore

LONG_ANSWER = "A finished answer. " * 10


def _provider(name="primary", turns=(), plan="[]", error=None):
    provider = MagicMock()
    provider.name = name
    provider.complete_text.return_value = plan
    if error is not None:
        provider.complete.side_effect = error
    else:
        provider.complete.side_effect = list(turns)
    return provider


def _tool_turn(call_id, name, arguments, content=""):
    return ChatTurn(
        content=content,
        tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)],
        raw_arguments={call_id: json.dumps(arguments)},
    )


def _connection_error():
    return APIConnectionError(request=httpx.Request("POST", "https://openrouter.ai/api/v1"))


@pytest.fixture
def settings(tmp_path):
    return Settings(public_dir=tmp_path / "public", store_path=tmp_path / "skills.json")


@pytest.fixture
def store(settings):
    store = JsonStore(settings.store_path)
    store.create_tool(ToolDefinition(name="echo", code="return {'echo': params}"))
    return store


def _harness(store, settings, *providers, **kwargs):
    return SkillHarness(
        store, settings, providers=list(providers), pacer=CallPacer(min_gap=0), **kwargs
    )


def _skill(store, **fields):
    return store.create_skill(SkillDefinition(**{"name": "custom-skill", **fields}))

# ---------------------------------------------------------------------------
# Skill runs
# ---------------------------------------------------------------------------

def test_run_with_tool_call_appends_produced_file(store, settings):
    skill = _skill(store, tools=["save-file"])
    provider = _provider(plan='["save-file"]', turns=[
        _tool_turn("call_1", "save-file", {"filename": "notes.md", "content": "# Notes"}),
        ChatTurn(content="Done. Your notes are saved."),
    ])

    result = _harness(store, settings, provider).run(skill.id, {"topic": "tides"})

    assert result.status == "success"
    assert result.output.startswith("Done. Your notes are saved.\n\n---\n")
    assert "(/skill-files/notes.md)" in result.output
    assert (settings.public_dir / "skill-files" / "notes.md").read_text() == "# Notes"
    assert [c.tool_name for c in result.tool_calls] == ["save-file"]

    first_messages, schemas = provider.complete.call_args_list[0].args
    assert first_messages[1]["content"] == 'Please execute this task with the following inputs:\ntopic: "tides"'
    assert "## Phase 1: Save File" in first_messages[0]["content"]
    assert [s["function"]["name"] for s in schemas] == ["save-file"]

    second_messages = provider.complete.call_args_list[1].args[0]
    assert second_messages[2]["tool_calls"][0]["id"] == "call_1"
    assert second_messages[3]["role"] == "tool"
    assert second_messages[3]["tool_call_id"] == "call_1"
    assert json.loads(second_messages[3]["content"]) == {
        "url": "/skill-files/notes.md", "title": "notes.md",
    }


def test_run_is_persisted(store, settings):
    skill = _skill(store)
    provider = _provider(turns=[ChatTurn(content=LONG_ANSWER)])

    result = _harness(store, settings, provider).run(skill.id)

    assert result.output == LONG_ANSWER
    history = store.get_run_history(skill.id)
    assert [r.id for r in history] == [result.id]
    assert history[0].status == "success"


def test_unknown_skill_aborts_with_recorded_error(store, settings):
    provider = _provider()
    result = _harness(store, settings, provider).run("skill_missing")

    assert result.status == "error"
    assert result.error == "Skill not found"
    assert result.output == ""
    provider.complete.assert_not_called()
    assert store.get_run_history("skill_missing")[0].error == "Skill not found"


def test_unreadable_store_ends_in_error_result(store, settings):
    settings.store_path.write_text("{not json")
    provider = _provider()

    result = _harness(store, settings, provider).run("skill_x")

    assert result.status == "error"
    assert result.error
    assert result.output == ""
    provider.complete.assert_not_called()


def test_seeded_skill_offers_pdf_tool(store, settings):
    skill = next(s for s in store.list_skills() if s.name == "web-research")
    provider = _provider(plan="not a plan", turns=[ChatTurn(content=LONG_ANSWER)])

    _harness(store, settings, provider).run(skill.id, {"topic": "tides"})

    messages, schemas = provider.complete.call_args.args
    names = [s["function"]["name"] for s in schemas]
    assert "generate-pdf" in names
    assert "brave-search" in names
    assert "generate-pdf" in messages[0]["content"]


def test_empty_plan_offers_only_declared_tools(store, settings):
    skill = _skill(store, tools=["echo", "not-a-real-tool"])
    provider = _provider(turns=[ChatTurn(content=LONG_ANSWER)])

    _harness(store, settings, provider).run(skill.id)

    schemas = provider.complete.call_args.args[1]
    assert [s["function"]["name"] for s in schemas] == ["echo"]
    assert "# General Assistant Mode" in provider.complete.call_args.args[0][0]["content"]


def test_short_final_text_joins_step_texts(store, settings):
    skill = _skill(store, tools=["echo"])
    provider = _provider(turns=[
        _tool_turn("c1", "echo", {"x": 1}, content="Here is the first part."),
        ChatTurn(content="Done."),
    ])

    result = _harness(store, settings, provider).run(skill.id)
    assert result.output == "Here is the first part.\n\nDone."


def test_step_cap_bounds_the_loop(store, settings):
    settings = settings.model_copy(update={"skill_max_steps": 3})
    skill = _skill(store, tools=["echo"])
    provider = _provider(turns=[_tool_turn(f"c{i}", "echo", {"i": i}) for i in range(5)])

    result = _harness(store, settings, provider).run(skill.id)

    assert result.status == "success"
    assert result.output == MAX_STEPS_MESSAGE
    assert provider.complete.call_count == 3
    assert len(result.tool_calls) == 3
    assert any("Max steps (3) reached" in line for line in result.logs)

# ---------------------------------------------------------------------------
# Provider fallback
# ---------------------------------------------------------------------------

def test_fallback_provider_completes_the_run(store, settings):
    skill = _skill(store)
    primary = _provider("openrouter", error=_connection_error())
    secondary = _provider("openai", turns=[ChatTurn(content=LONG_ANSWER)])

    result = _harness(store, settings, primary, secondary).run(skill.id)

    assert result.status == "success"
    assert result.output == LONG_ANSWER
    assert result.error is None
    secondary.complete.assert_called_once()


def test_fallback_keeps_earlier_tool_calls(store, settings):
    skill = _skill(store, tools=["echo"])
    primary = _provider("openrouter", turns=[
        _tool_turn("c1", "echo", {"n": 1}),
        ProviderError("openrouter returned no choices."),
    ])
    secondary = _provider("openai", turns=[ChatTurn(content=LONG_ANSWER)])

    result = _harness(store, settings, primary, secondary).run(skill.id)

    assert result.status == "success"
    assert [c.tool_name for c in result.tool_calls] == ["echo"]


def test_single_provider_failure_is_an_error_result(store, settings):
    skill = _skill(store)
    provider = _provider(error=_connection_error())

    result = _harness(store, settings, provider).run(skill.id)

    assert result.status == "error"
    assert result.output == ""
    assert "Connection error" in result.error
    assert store.get_run_history(skill.id)[0].status == "error"


def test_no_provider_configured(store, settings):
    skill = _skill(store)
    result = _harness(store, settings).run(skill.id)
    assert result.status == "error"
    assert result.error == NO_PROVIDER_MESSAGE

# ---------------------------------------------------------------------------
# Chat and follow-up
# ---------------------------------------------------------------------------

def test_chat_offers_every_tool_in_general_mode(store, settings):
    provider = _provider(turns=[ChatTurn(content=LONG_ANSWER)])
    harness = _harness(store, settings, provider)

    result = harness.run_chat("What should I cook tonight?")

    assert result.skill_id == "chat"
    messages, schemas = provider.complete.call_args.args
    assert messages[1]["content"] == "What should I cook tonight?"
    assert "# User Instructions (follow these closely)\nWhat should I cook tonight?" in messages[0]["content"]
    assert {s["function"]["name"] for s in schemas} == {t.name for t in harness.live_tools()}


def test_stored_tool_shadows_builtin(store, settings):
    store.create_tool(ToolDefinition(name="web-search", description="custom", code="return []"))
    harness = _harness(store, settings, _provider())
    web = [t for t in harness.live_tools() if t.name == "web-search"]
    assert len(web) == 1
    assert web[0].description == "custom"


def test_follow_up_sends_truncated_previous_output(store, settings):
    settings = settings.model_copy(update={"follow_up_context_chars": 10})
    provider = _provider(turns=[ChatTurn(content=LONG_ANSWER)])

    result = _harness(store, settings, provider).follow_up(
        "0123456789ABCDEF", "Make it a PDF", previous_skill_id="skill_prev"
    )

    assert result.status == "success"
    assert result.skill_id == "skill_prev"
    provider.complete_text.assert_not_called()
    messages = provider.complete.call_args.args[0]
    assert messages[1]["content"] == (
        "PREVIOUS OUTPUT:\n---\n0123456789\n---\n\nUSER REQUEST: Make it a PDF"
    )
    assert "- echo: " in messages[0]["content"]

# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

def test_stream_ends_with_result(store, settings):
    skill = _skill(store)
    provider = _provider(turns=[ChatTurn(content=LONG_ANSWER)])

    events = list(_harness(store, settings, provider).run_stream(skill.id))

    assert events[-1].type == "done"
    assert events[-1].result.status == "success"
    phases = [e.phase for e in events if e.type == "phase"]
    assert phases == ["planning", "prompting", "looping", "assembling"]


def test_chat_stream_reports_errors_before_done(store, settings):
    events = list(_harness(store, settings).run_chat_stream("hello"))
    assert [e.type for e in events[-2:]] == ["error", "done"]
    assert events[-1].result.error == NO_PROVIDER_MESSAGE


def test_broken_progress_callback_does_not_affect_run(store, settings):
    skill = _skill(store)
    provider = _provider(turns=[ChatTurn(content=LONG_ANSWER)])
    callback = MagicMock(side_effect=RuntimeError("observer broke"))

    result = _harness(store, settings, provider, on_progress=callback).run(skill.id)

    assert result.status == "success"
    assert callback.called


def test_closing_stream_early_still_records_run(store, settings):
    skill = _skill(store)
    provider = _provider(turns=[ChatTurn(content=LONG_ANSWER)])

    stream = _harness(store, settings, provider).run_stream(skill.id)
    first = next(stream)
    stream.close()

    assert first.type == "phase"
    history = store.get_run_history(skill.id)
    assert [r.status for r in history] == ["success"]
