# store.py
# JSON-file persistence for tools, skills, run history and credentials.
#
# One file, read and rewritten whole under a lock. Fine for an operator's
# workstation; the orchestration core only depends on the handful of
# methods the harness calls.

import json
import threading
import uuid
from pathlib import Path
from typing import Any

from skill_runner.config import credential_from_env
from skill_runner.models import SkillDefinition, SkillParam, SkillRunResult, ToolDefinition, ToolParam

MAX_RUN_HISTORY = 200

_EMPTY: dict[str, list] = {"agentTools": [], "agentSkills": [], "skillRuns": [], "apiKeys": []}


# ---------------------------------------------------------------------------
# Defaults seeded into an empty store
# ---------------------------------------------------------------------------

BRAVE_SEARCH_CODE = """\
key = ctx.get_credential("brave")
if not key:
    raise RuntimeError("Brave API key not configured. Set BRAVE_API_KEY or add it to apiKeys.")

ctx.log("Searching Brave for: " + params["query"])

resp = ctx.fetch(
    "https://api.search.brave.com/res/v1/web/search",
    params={"q": params["query"], "count": params.get("count") or 5},
    headers={"X-Subscription-Token": key, "Accept": "application/json"},
)
if resp.status != 200:
    raise RuntimeError("Brave API error: HTTP " + str(resp.status))

body = resp.body if isinstance(resp.body, dict) else {}
results = [
    {"title": r.get("title"), "url": r.get("url"), "description": r.get("description")}
    for r in body.get("web", {}).get("results", [])
]
ctx.log("Found " + str(len(results)) + " results")
return results
"""

DEFAULT_TOOL = ToolDefinition(
    name="brave-search",
    description="Search the web using the Brave Search API. Returns titles, URLs, and descriptions.",
    parameters=(
        ToolParam(name="query", type="string", description="The search query", required=True),
        ToolParam(name="count", type="number", description="Number of results (default 5)"),
    ),
    code=BRAVE_SEARCH_CODE,
)

DEFAULT_SKILL = SkillDefinition(
    name="web-research",
    description=(
        "Research a topic by searching the web from multiple angles and write "
        "a comprehensive article"
    ),
    prompt="""\
You are a thorough web research agent. Given a topic, you search the web from \
multiple angles and write a comprehensive article.

## Output Format
Write a 500-1000 word article with:
- A clear, engaging title
- An introduction paragraph
- 3-5 sections with subheadings
- Key facts and findings from your research
- Source URLs cited inline
- A brief conclusion

## Rules
- Make at least 3 different searches before writing
- Always cite sources with their URLs
- If results are thin on a subtopic, acknowledge the limitation""",
    tools=["brave-search"],
    inputs=[SkillParam(name="topic", description="The topic to research", required=True)],
    credentials=["brave"],
)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class JsonStore:
    """Tool, skill and run persistence backed by a single JSON document."""

    def __init__(self, path: Path | str, seed: bool = True) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        if seed:
            self.seed_defaults()

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {key: [] for key in _EMPTY}
        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        for key in _EMPTY:
            data.setdefault(key, [])
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        tmp.replace(self.path)

    def seed_defaults(self) -> None:
        with self._lock:
            data = self._read()
            changed = False
            if not data["agentTools"]:
                data["agentTools"].append(self._with_id(DEFAULT_TOOL, "tool"))
                changed = True
            if not data["agentSkills"]:
                data["agentSkills"].append(self._with_id(DEFAULT_SKILL, "skill"))
                changed = True
            if changed:
                self._write(data)

    @staticmethod
    def _with_id(model: ToolDefinition | SkillDefinition, prefix: str) -> dict[str, Any]:
        record = model.model_dump(mode="json")
        record["id"] = record.get("id") or _new_id(prefix)
        return record

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def list_tools(self) -> list[ToolDefinition]:
        with self._lock:
            return [ToolDefinition.model_validate(t) for t in self._read()["agentTools"]]

    def get_tool(self, tool_id: str) -> ToolDefinition | None:
        return next((t for t in self.list_tools() if t.id == tool_id), None)

    def get_tool_by_name(self, name: str) -> ToolDefinition | None:
        return next((t for t in self.list_tools() if t.name == name), None)

    def create_tool(self, tool: ToolDefinition) -> ToolDefinition:
        with self._lock:
            data = self._read()
            record = self._with_id(tool, "tool")
            data["agentTools"].append(record)
            self._write(data)
            return ToolDefinition.model_validate(record)

    def update_tool(self, tool_id: str, changes: dict[str, Any]) -> ToolDefinition | None:
        with self._lock:
            data = self._read()
            for index, record in enumerate(data["agentTools"]):
                if record.get("id") == tool_id:
                    merged = ToolDefinition.model_validate({**record, **changes, "id": tool_id})
                    data["agentTools"][index] = merged.model_dump(mode="json")
                    self._write(data)
                    return merged
            return None

    def delete_tool(self, tool_id: str) -> bool:
        with self._lock:
            data = self._read()
            kept = [t for t in data["agentTools"] if t.get("id") != tool_id]
            if len(kept) == len(data["agentTools"]):
                return False
            data["agentTools"] = kept
            self._write(data)
            return True

    # ------------------------------------------------------------------
    # Skills
    # ------------------------------------------------------------------

    def list_skills(self) -> list[SkillDefinition]:
        with self._lock:
            return [SkillDefinition.model_validate(s) for s in self._read()["agentSkills"]]

    def get_skill(self, skill_id: str) -> SkillDefinition | None:
        return next((s for s in self.list_skills() if s.id == skill_id), None)

    def create_skill(self, skill: SkillDefinition) -> SkillDefinition:
        with self._lock:
            data = self._read()
            record = self._with_id(skill, "skill")
            data["agentSkills"].append(record)
            self._write(data)
            return SkillDefinition.model_validate(record)

    def update_skill(self, skill_id: str, changes: dict[str, Any]) -> SkillDefinition | None:
        with self._lock:
            data = self._read()
            for index, record in enumerate(data["agentSkills"]):
                if record.get("id") == skill_id:
                    merged = SkillDefinition.model_validate({**record, **changes, "id": skill_id})
                    data["agentSkills"][index] = merged.model_dump(mode="json")
                    self._write(data)
                    return merged
            return None

    def delete_skill(self, skill_id: str) -> bool:
        with self._lock:
            data = self._read()
            kept = [s for s in data["agentSkills"] if s.get("id") != skill_id]
            if len(kept) == len(data["agentSkills"]):
                return False
            data["agentSkills"] = kept
            self._write(data)
            return True

    # ------------------------------------------------------------------
    # Run history
    # ------------------------------------------------------------------

    def save_run(self, result: SkillRunResult) -> None:
        """Append a run record; only the newest MAX_RUN_HISTORY are kept."""
        with self._lock:
            data = self._read()
            data["skillRuns"].append(result.model_dump(mode="json", by_alias=True))
            data["skillRuns"] = data["skillRuns"][-MAX_RUN_HISTORY:]
            self._write(data)

    def get_run_history(self, skill_id: str | None = None, limit: int = 50) -> list[SkillRunResult]:
        with self._lock:
            runs = self._read()["skillRuns"]
        if skill_id:
            runs = [r for r in runs if r.get("skillId") == skill_id]
        return [SkillRunResult.model_validate(r) for r in runs[-limit:]] if limit > 0 else []

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def set_credential(self, name: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data["apiKeys"] = [k for k in data["apiKeys"] if k.get("name") != name]
            data["apiKeys"].append({"name": name, "value": value})
            self._write(data)

    def get_credential(self, name: str) -> str | None:
        """Stored key first, then the {NAME}_API_KEY environment variable."""
        with self._lock:
            stored = self._read()["apiKeys"]
        for entry in stored:
            if entry.get("name") == name and entry.get("value"):
                return entry["value"]
        return credential_from_env(name)
