# harness.py
# Skill runner harness.
#
# The harness owns control flow for every run. Models and tools are passive:
# the model proposes tool calls, the sandbox executes them, and the artifact
# registry has the last word on what the final text references.
#
# Per run:
#   planning → prompting → looping (primary provider, then fallback)
#   → assembling → persisted result
#
# All terminal output is delegated to display.py; no formatting here.

import json
import queue
import threading
from typing import Any, Callable, Iterator

from openai import OpenAIError

from skill_runner import display
from skill_runner.config import Settings
from skill_runner.context import ToolContext
from skill_runner.errors import ProviderError
from skill_runner.files import PublicFiles
from skill_runner.models import ProgressEvent, SkillDefinition, SkillRunResult, ToolDefinition
from skill_runner.planner import CapabilityPlanner
from skill_runner.prompt_builder import build_system_prompt
from skill_runner.providers import ChatProvider, build_providers, to_openai_tool
from skill_runner.sandbox import PACER, CallPacer, Handler, ToolSandbox
from skill_runner.state import ProgressCallback, RunState
from skill_runner.store import JsonStore
from skill_runner.tool_filter import filter_tools
from skill_runner.tools import BUILTIN_TOOLS, TOOLS

NO_PROVIDER_MESSAGE = (
    "No AI API key configured. Add an OpenRouter or OpenAI key "
    "(OPENROUTER_API_KEY or OPENAI_API_KEY)."
)
MAX_STEPS_MESSAGE = "Max tool-call steps reached. The model may not have finished."


# ---------------------------------------------------------------------------
# System Prompts
# ---------------------------------------------------------------------------

FOLLOW_UP_SYSTEM_PROMPT = """\
You are a helpful assistant that can use tools to process content.
You have been given the output from a previous skill run. The user wants you \
to do something with it.

Available tools:
{tools}

IMPORTANT:
- Use the provided tools to fulfil the user's request
- The previous output is provided below for context
- Be concise and direct in your final response
- Reference any file a tool creates by the exact URL it returned\
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def chat_skill() -> SkillDefinition:
    """Synthesized skill for freeform chat: no allow-list, planner decides."""
    return SkillDefinition(
        id="chat",
        name="chat",
        description="Freeform chat, capabilities determined by planner",
    )


def _tool_message(call_id: str, output: Any) -> dict[str, Any]:
    content = output if isinstance(output, str) else json.dumps(output, default=str)
    return {"role": "tool", "tool_call_id": call_id, "content": content}


def _preview(value: Any, limit: int = 200) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text if len(text) <= limit else text[:limit] + "…"


# ---------------------------------------------------------------------------
# Harness
# ---------------------------------------------------------------------------


class SkillHarness:
    """
    Runs skills, chat messages and follow-ups end to end.

    Every public entry point returns a SkillRunResult and never raises;
    every result is persisted through the store.

    Example:
        harness = SkillHarness(JsonStore("data/skills.json"))
        result = harness.run(skill_id, {"topic": "solid-state batteries"})
    """

    def __init__(
        self,
        store: JsonStore,
        settings: Settings | None = None,
        providers: list[ChatProvider] | None = None,
        planner: CapabilityPlanner | None = None,
        handlers: dict[str, Handler] | None = None,
        on_progress: ProgressCallback | None = None,
        pacer: CallPacer | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or Settings()
        if providers is None:
            providers = build_providers(store.get_credential, self._settings)
        self._providers = providers
        self._planner = planner or CapabilityPlanner(self._providers, self._settings)
        self._handlers = TOOLS if handlers is None else handlers
        self._on_progress = on_progress
        if pacer is None:
            pacer = PACER
            pacer.min_gap = self._settings.min_call_gap_seconds
        self._pacer = pacer
        self._files = PublicFiles(self._settings.public_dir)

        display.banner(
            repr(providers[0]) if providers else "none",
            repr(providers[1]) if len(providers) > 1 else None,
        )

    # ------------------------------------------------------------------
    # Tool set
    # ------------------------------------------------------------------

    def live_tools(self) -> list[ToolDefinition]:
        """Stored tools plus builtins; a stored tool shadows a builtin of the same name."""
        stored = self._store.list_tools()
        names = {t.name for t in stored}
        return stored + [t for t in BUILTIN_TOOLS if t.name not in names]

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(
        self,
        skill_id: str,
        inputs: dict[str, Any] | None = None,
        instructions: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SkillRunResult:
        run = RunState(skill_id, on_progress or self._on_progress)
        try:
            skill = self._store.get_skill(skill_id)
        except Exception as exc:  # an unreadable store still ends in a result
            return self._fail(run, exc)
        if skill is None:
            return self._finish(run, "error", error="Skill not found")

        inputs = inputs or {}
        if inputs:
            user_message = "Please execute this task with the following inputs:\n" + "\n".join(
                f"{k}: {json.dumps(v, default=str)}" for k, v in inputs.items()
            )
        else:
            user_message = "Please execute this task."
        return self._run_skill(
            run, skill, inputs, instructions, user_message, self._settings.skill_max_steps
        )

    def run_chat(self, message: str, on_progress: ProgressCallback | None = None) -> SkillRunResult:
        run = RunState("chat", on_progress or self._on_progress)
        return self._run_skill(
            run, chat_skill(), {}, message, message, self._settings.chat_max_steps
        )

    def follow_up(
        self,
        previous_output: str,
        message: str,
        previous_skill_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SkillRunResult:
        """Continue from a prior run's output. Skips planning; every tool is offered."""
        run = RunState(previous_skill_id or "follow-up", on_progress or self._on_progress)
        try:
            tools = self.live_tools()
            display.run_started("follow-up", [t.name for t in tools])
            run.log(f"▶ Follow-up request with {len(tools)} tools available")
            run.log(f"  Message: {message}")

            system_prompt = FOLLOW_UP_SYSTEM_PROMPT.format(
                tools="\n".join(f"- {t.name}: {t.description}" for t in tools)
            )
            context = previous_output[: self._settings.follow_up_context_chars]
            user_message = f"PREVIOUS OUTPUT:\n---\n{context}\n---\n\nUSER REQUEST: {message}"

            text = self._loop_with_fallback(
                run, system_prompt, user_message, tools, self._settings.skill_max_steps
            )
            return self._assemble(run, text)
        except Exception as exc:  # every run ends in a recorded result
            return self._fail(run, exc)

    def run_stream(
        self,
        skill_id: str,
        inputs: dict[str, Any] | None = None,
        instructions: str | None = None,
    ) -> Iterator[ProgressEvent]:
        """Yield progress events as they happen; the last one carries the result."""
        return self._stream(lambda emit: self.run(skill_id, inputs, instructions, on_progress=emit))

    def run_chat_stream(self, message: str) -> Iterator[ProgressEvent]:
        return self._stream(lambda emit: self.run_chat(message, on_progress=emit))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run_skill(
        self,
        run: RunState,
        skill: SkillDefinition,
        inputs: dict[str, Any],
        instructions: str | None,
        user_message: str,
        max_steps: int,
    ) -> SkillRunResult:
        try:
            all_tools = self.live_tools()
            by_name = {t.name: t for t in all_tools}
            declared = [by_name[name] for name in skill.tools if name in by_name]

            display.run_started(skill.name, [t.name for t in declared])
            run.log(f"▶ Starting skill: {skill.name}")
            run.log(f"  Tools: [{', '.join(t.name for t in declared) or 'none'}]")
            run.log(f"  Inputs: {json.dumps(inputs, default=str)}")

            # planning
            run.progress("phase", "Planning capabilities", phase="planning")
            plan, source = self._planner.plan_with_source(skill, inputs, instructions)
            display.plan_selected(plan, source)
            run.log(f"Planner ({source}) → [{', '.join(plan)}]")

            # prompting
            run.progress("phase", "Assembling prompt", phase="prompting")
            system_prompt = build_system_prompt(plan, skill, inputs, instructions)
            if plan:
                tools = filter_tools(plan, all_tools).flat_tools
            else:
                tools = declared if skill.tools else all_tools
            run.log(f"  Offered tools: [{', '.join(t.name for t in tools) or 'none'}]")

            text = self._loop_with_fallback(run, system_prompt, user_message, tools, max_steps)
            return self._assemble(run, text)
        except Exception as exc:  # every run ends in a recorded result
            return self._fail(run, exc)

    def _loop_with_fallback(
        self,
        run: RunState,
        system_prompt: str,
        user_message: str,
        tools: list[ToolDefinition],
        max_steps: int,
    ) -> str:
        """
        Run the bounded loop on the primary provider. On a provider fault,
        rerun the whole loop once on the secondary provider.

        Both attempts share one sandbox, so per-run quotas and artifacts
        carry over.
        """
        if not self._providers:
            raise ProviderError(NO_PROVIDER_MESSAGE)

        run.progress("phase", "Running model loop", phase="looping")
        sandbox = ToolSandbox(
            tools,
            run,
            ToolContext(
                credentials=self._store.get_credential,
                log_sink=run.tool_log,
                files=self._files,
                timeout=self._settings.request_timeout,
            ),
            handlers=self._handlers,
            pacer=self._pacer,
        )
        base = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]

        primary = self._providers[0]
        try:
            return self._agent_loop(run, primary, sandbox, list(base), tools, max_steps)
        except (OpenAIError, ProviderError) as exc:
            if len(self._providers) < 2:
                raise
            fallback = self._providers[1]
            run.log(f"⚠ {primary.name} failed ({exc}); retrying with {fallback.name}")
            display.provider_fallback(primary.name, fallback.name, str(exc))
            return self._agent_loop(run, fallback, sandbox, list(base), tools, max_steps)

    def _agent_loop(
        self,
        run: RunState,
        provider: ChatProvider,
        sandbox: ToolSandbox,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
        max_steps: int,
    ) -> str:
        """
        Model turn ⇄ tool calls until the model stops calling tools or the
        step cap is hit. Returns the text to assemble.
        """
        schemas = [to_openai_tool(t) for t in tools]
        step_texts: list[str] = []
        final_text = ""
        finished = False

        for step in range(1, max_steps + 1):
            run.progress("step", f"Step {step}/{max_steps} ({provider.name})", phase="looping")
            turn = provider.complete(messages, schemas)
            if turn.content.strip():
                step_texts.append(turn.content.strip())

            if not turn.tool_calls:
                final_text = turn.content
                finished = True
                run.log(f"✅ Model finished after {step} step(s)")
                break

            messages.append(turn.as_message())
            for call in turn.tool_calls:
                run.log(f"🔧 Model called: {call.name}({_preview(call.arguments)})")
                output = sandbox.execute(call.name, call.arguments)
                messages.append(_tool_message(call.id, output))

        if not finished:
            run.log(f"⚠ Max steps ({max_steps}) reached")

        if len(final_text.strip()) >= self._settings.min_final_text_chars:
            return final_text
        return "\n\n".join(step_texts) or final_text or MAX_STEPS_MESSAGE

    def _assemble(self, run: RunState, text: str) -> SkillRunResult:
        run.progress("phase", "Assembling output", phase="assembling")
        output = run.artifacts.assemble_output(text)
        run.log(f"📝 Output length: {len(output)} chars, {len(run.artifacts)} artifact(s)")
        return self._finish(run, "success", output)

    def _fail(self, run: RunState, exc: Exception) -> SkillRunResult:
        message = str(exc) or exc.__class__.__name__
        run.log(f"❌ Error: {message}")
        display.halt(message)
        return self._finish(run, "error", error=message)

    def _finish(
        self,
        run: RunState,
        status: str,
        output: str = "",
        error: str | None = None,
    ) -> SkillRunResult:
        result = run.result(status, output, error)
        try:
            self._store.save_run(result)
        except (OSError, ValueError) as exc:
            display.warning(f"Failed to save run {result.id}: {exc}")
        display.final_result(result)

        if error is not None:
            run.progress("error", error)
        run.progress("done", f"Run {status}", result=result)
        return result

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def _stream(
        self, start: Callable[[ProgressCallback], SkillRunResult]
    ) -> Iterator[ProgressEvent]:
        """
        Run `start` on a worker thread and yield its events in order.

        Closing the iterator early still waits for the run to finish, so the
        result is always recorded and the worker never outlives the stream.
        """
        events: queue.Queue[ProgressEvent | None] = queue.Queue()

        def emit(event: ProgressEvent) -> None:
            events.put(event)
            if self._on_progress is not None:
                self._on_progress(event)

        def worker() -> None:
            try:
                start(emit)
            finally:
                events.put(None)

        thread = threading.Thread(target=worker, daemon=True)
        thread.start()
        try:
            while True:
                event = events.get()
                if event is None:
                    break
                yield event
        finally:
            thread.join()
