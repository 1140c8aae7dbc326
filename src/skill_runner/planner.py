# planner.py
# Capability planner: decides which capabilities a task needs, in order.
#
# Three sources, tried in turn; the first non-empty answer wins:
#   model     : one cheap completion over the capability catalog
#   archetype : static pipeline for well-known skill names
#   inferred  : derived from the skill's declared tools
#
# plan() never raises. An empty plan means "general assistant mode".

import json
import re
from typing import Any

from openai import OpenAIError

from skill_runner import display
from skill_runner.capabilities import (
    CAPABILITY_REGISTRY,
    COMPOSE_CAPABILITY,
    PHASE_ORDER,
    SKILL_ARCHETYPE,
    owning_capability,
)
from skill_runner.config import Settings
from skill_runner.errors import ProviderError
from skill_runner.models import SkillDefinition
from skill_runner.providers import ChatProvider

PLANNER_SYSTEM_PROMPT = """\
You are a task planner. Given a task description, return ONLY a JSON array \
of capability names in execution order. Choose from the available \
capabilities. Return nothing but the JSON array, no markdown, no explanation.\
"""

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


def describe_task(
    skill: SkillDefinition,
    user_inputs: dict[str, Any],
    instructions: str | None = None,
) -> str:
    """One short block the planner model reads."""
    lines = [f"Skill: {skill.name} - {skill.description}"]
    if user_inputs:
        lines.append("Inputs: " + ", ".join(f"{k}: {v}" for k, v in user_inputs.items()))
    if instructions:
        lines.append(f"User instructions: {instructions}")
    return "\n".join(lines)


def parse_plan(raw: str) -> list[str]:
    """
    Parse a planner reply into known capability names.

    Markdown fences are tolerated. Unknown names and duplicates are dropped.
    Raises ValueError if the reply is not a JSON array.
    """
    text = raw.strip()
    if text.startswith("```"):
        text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text))
    parsed = json.loads(text)
    if not isinstance(parsed, list):
        raise ValueError("Planner reply is not a JSON array.")

    plan: list[str] = []
    for name in parsed:
        if isinstance(name, str) and name in CAPABILITY_REGISTRY and name not in plan:
            plan.append(name)
    return plan


def infer_from_tools(tool_names: list[str]) -> list[str]:
    """
    Map declared tools to their owning capabilities, ordered by phase.

    A plan that gathers input but never processes it gets the compose
    capability, so the output is never raw tool data.
    """
    by_phase: dict[str, list[str]] = {phase: [] for phase in PHASE_ORDER}
    seen: set[str] = set()
    for tool_name in tool_names:
        name = owning_capability(tool_name)
        if name is None or name in seen:
            continue
        seen.add(name)
        by_phase[CAPABILITY_REGISTRY[name].phase].append(name)

    if by_phase["input"] and not by_phase["process"]:
        by_phase["process"].append(COMPOSE_CAPABILITY)

    return [name for phase in PHASE_ORDER for name in by_phase[phase]]


class CapabilityPlanner:
    """
    Picks the capability pipeline for one run.

    The model source uses the first configured provider; with no provider
    the planner goes straight to the static fallbacks.
    """

    def __init__(self, providers: list[ChatProvider], settings: Settings | None = None) -> None:
        self._providers = providers
        self._settings = settings or Settings()

    def plan(
        self,
        skill: SkillDefinition,
        user_inputs: dict[str, Any] | None = None,
        instructions: str | None = None,
    ) -> list[str]:
        return self.plan_with_source(skill, user_inputs, instructions)[0]

    def plan_with_source(
        self,
        skill: SkillDefinition,
        user_inputs: dict[str, Any] | None = None,
        instructions: str | None = None,
    ) -> tuple[list[str], str]:
        """Returns (plan, source) where source is model, archetype, inferred or none."""
        task = describe_task(skill, user_inputs or {}, instructions)

        planned = self._ask_model(task)
        if planned:
            return planned, "model"

        archetype = SKILL_ARCHETYPE.get(skill.name)
        if archetype:
            return list(archetype), "archetype"

        inferred = infer_from_tools(skill.tools)
        return inferred, "inferred" if inferred else "none"

    def _ask_model(self, task: str) -> list[str]:
        if not self._providers:
            return []

        catalog = "\n".join(
            f"- {name}: {cap.description}" for name, cap in CAPABILITY_REGISTRY.items()
        )
        messages = [
            {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    f"Task:\n{task}\n\n"
                    f"Available capabilities:\n{catalog}\n\n"
                    "Return a JSON array of capability names in the order they "
                    "should be executed."
                ),
            },
        ]
        try:
            raw = self._providers[0].complete_text(
                messages,
                max_tokens=256,
                temperature=0,
                timeout=self._settings.planner_timeout,
            )
            return parse_plan(raw)
        except (OpenAIError, ProviderError, ValueError, TypeError, RecursionError) as exc:
            display.warning(f"Planner failed, falling back: {exc}")
            return []
