# run.py
# Entry point. Config and wiring only, no logic lives here.
#
#   skill-runner "Write a short brief on heat pumps"
#   skill-runner --skill web-research --input topic="heat pumps"
#   skill-runner --list
#
# Keys come from .env or the environment: OPENROUTER_API_KEY (primary),
# OPENAI_API_KEY (fallback), plus any tool credentials (BRAVE_API_KEY).

import argparse
import sys

from skill_runner import display
from skill_runner.config import load_settings
from skill_runner.harness import SkillHarness
from skill_runner.store import JsonStore


def _parse_inputs(pairs: list[str]) -> dict[str, str]:
    inputs: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise SystemExit(f"Bad --input {pair!r}; expected key=value.")
        inputs[key.strip()] = value
    return inputs


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="skill-runner", description="Run a skill or a chat message.")
    parser.add_argument("message", nargs="?", help="Chat message, or instructions when --skill is given.")
    parser.add_argument("--skill", help="Skill name or id to run.")
    parser.add_argument("--input", action="append", default=[], metavar="KEY=VALUE")
    parser.add_argument("--list", action="store_true", help="List stored skills and exit.")
    parser.add_argument("--env-file", default=None)
    args = parser.parse_args(argv)

    settings = load_settings(args.env_file)
    store = JsonStore(settings.store_path)

    if args.list:
        for skill in store.list_skills():
            display.console.print(f"[bold]{skill.name}[/bold] [dim]{skill.id}[/dim]  {skill.description}")
        return 0

    harness = SkillHarness(store, settings)

    if args.skill:
        skill = next(
            (s for s in store.list_skills() if args.skill in (s.id, s.name)),
            None,
        )
        result = harness.run(
            skill.id if skill else args.skill,
            _parse_inputs(args.input),
            args.message,
        )
    elif args.message:
        result = harness.run_chat(args.message)
    else:
        parser.print_usage()
        return 2

    return 0 if result.status == "success" else 1


if __name__ == "__main__":
    sys.exit(main())
