# tool_filter.py
# Narrows the live tool set to what the planned capabilities need.

from skill_runner.capabilities import CAPABILITY_REGISTRY
from skill_runner.models import ToolDefinition, ToolSelection


def filter_tools(capabilities: list[str], all_tools: list[ToolDefinition]) -> ToolSelection:
    """
    Tools required by `capabilities`.

    An empty plan is general assistant mode and gets every tool, unchanged.
    Otherwise the flat list keeps `all_tools` order with each tool once;
    names that resolve to no live tool are skipped.
    """
    if not capabilities:
        return ToolSelection(flat_tools=list(all_tools))

    by_name = {tool.name: tool for tool in all_tools}
    needed: set[str] = set()
    grouped: dict[str, list[ToolDefinition]] = {}

    for name in capabilities:
        cap = CAPABILITY_REGISTRY.get(name)
        if cap is None:
            continue
        needed.update(cap.tools)
        grouped[name] = [by_name[t] for t in cap.tools if t in by_name]

    flat: list[ToolDefinition] = []
    seen: set[str] = set()
    for tool in all_tools:
        if tool.name in needed and tool.name not in seen:
            seen.add(tool.name)
            flat.append(tool)

    return ToolSelection(flat_tools=flat, tools_by_capability=grouped)
