# prompt_builder.py
# Assembles the single system prompt for a run.
#
# Section order is fixed:
#   orchestrator rules
#   phases (or general assistant framing)
#   skill prompt
#   task inputs
#   user instructions
#   closing directive
#
# Instruction blocks are markdown files under prompts/. A missing block is
# never an error; a one-line description is synthesized instead.

import json
from pathlib import Path
from typing import Any

from skill_runner.capabilities import CAPABILITY_REGISTRY, humanize
from skill_runner.models import CapabilityDef, SkillDefinition

PROMPTS_DIR = Path(__file__).parent / "prompts"

DIVIDER = "\n---\n"

INLINE_ORCHESTRATOR = """\
# Orchestrator Rules

You are a task execution agent. Execute each phase in order. Do not skip ahead.

Rules:
- Never invent facts. Only use information from tool results.
- Retry a failed tool once before giving up.
- Your final response must contain ALL deliverables in full.
- Complete each phase before starting the next.\
"""

GENERAL_MODE = (
    "No specific capability pipeline was selected. "
    "You are a helpful general-purpose assistant. "
    "Use any available tools as needed to fulfil the user's request. "
    "Think step by step and provide a thorough, well-formatted answer.\n"
)

PHASED_MODE = (
    "Execute these phases **in the order listed**. "
    "Complete each phase fully before starting the next.\n"
)

CLOSING_DIRECTIVE = (
    "IMPORTANT: Your final message MUST contain the FULL generated content. "
    "Never summarise or truncate. Include every word."
)


def _read_block(filename: str, prompts_dir: Path) -> str | None:
    path = prompts_dir / filename
    try:
        return path.read_text(encoding="utf-8")
    except OSError:
        return None


def fallback_block(cap: CapabilityDef) -> str:
    if cap.tools:
        return f"{cap.description}. Use the {', '.join(cap.tools)} tool(s)."
    return f"{cap.description}. No tools needed, pure text generation."


def build_system_prompt(
    capabilities: list[str],
    skill: SkillDefinition,
    user_inputs: dict[str, Any] | None = None,
    instructions: str | None = None,
    prompts_dir: Path = PROMPTS_DIR,
) -> str:
    """Pure function of its arguments plus the static instruction blocks."""
    parts: list[str] = [_read_block("orchestrator.md", prompts_dir) or INLINE_ORCHESTRATOR]

    if capabilities:
        parts.append(DIVIDER + "# Your Phases For This Task\n")
        parts.append(PHASED_MODE)
    else:
        parts.append(DIVIDER + "# General Assistant Mode\n")
        parts.append(GENERAL_MODE)

    # Numbering follows plan position, so an unknown name leaves a gap.
    for index, name in enumerate(capabilities, start=1):
        cap = CAPABILITY_REGISTRY.get(name)
        if cap is None:
            continue
        header = f"{DIVIDER}## Phase {index}: {humanize(name)}\n"
        block = _read_block(cap.file, prompts_dir)
        if block is None:
            parts.append(header + fallback_block(cap) + "\n")
        else:
            parts.append(header)
            parts.append(block)

    if skill.prompt.strip():
        parts.append(DIVIDER + "# Additional Context From Skill Definition\n")
        parts.append(skill.prompt)

    inputs = user_inputs or {}
    parts.append(DIVIDER + "# Task Inputs\n")
    parts.append(
        "\n".join(f"{key}: {json.dumps(value, default=str)}" for key, value in inputs.items())
        or "(none provided)"
    )
    if skill.inputs:
        definitions = "\n".join(f"- {i.name} ({i.type}): {i.description}" for i in skill.inputs)
        parts.append(f"\nInput definitions:\n{definitions}")

    if instructions and instructions.strip():
        parts.append(f"{DIVIDER}# User Instructions (follow these closely)\n{instructions}")

    parts.append(DIVIDER + CLOSING_DIRECTIVE)
    return "\n".join(parts)
