# tools.py
# Builtin tool registry: tools implemented in Python rather than stored code.
# The sandbox looks handlers up by name in TOOLS and never calls these
# functions directly. Each handler receives validated params and a
# ToolContext, and returns any JSON-like value.

from typing import Any

from skill_runner.context import ToolContext
from skill_runner.errors import SkillRunnerError
from skill_runner.models import ToolDefinition, ToolParam


def _tool_web_search(params: dict, ctx: ToolContext) -> list[dict[str, str]]:
    from ddgs import DDGS

    query = str(params.get("query", "")).strip()
    if not query:
        raise SkillRunnerError("No query provided.")
    count = int(params.get("count") or 5)

    ctx.log(f"Searching the web for: {query}")
    # Coerce to a list so the search actually runs here
    results = list(DDGS().text(query, max_results=count))
    ctx.log(f"Found {len(results)} results")
    return [
        {
            "title": r.get("title", ""),
            "url": r.get("href", ""),
            "description": r.get("body", ""),
        }
        for r in results
    ]


def _tool_generate_csv(params: dict, ctx: ToolContext) -> dict[str, str]:
    rows = params.get("rows") or []
    filename = params.get("filename")
    url = ctx.generate_csv(rows, filename)
    ctx.log(f"Wrote {len(rows)} rows to {url}")
    return {"url": url, "title": params.get("title") or url.rsplit("/", 1)[-1]}


def _tool_save_file(params: dict, ctx: ToolContext) -> dict[str, str]:
    filename = str(params.get("filename", "")).strip()
    if not filename:
        raise SkillRunnerError("No filename provided.")
    url = ctx.save_file(str(params.get("content", "")), filename)
    return {"url": url, "title": filename}


def _tool_generate_pdf(params: dict, ctx: ToolContext) -> dict[str, str]:
    content = str(params.get("content", ""))
    if not content.strip():
        raise SkillRunnerError("No content provided.")
    title = params.get("title")
    url = ctx.save_pdf(content, title, params.get("filename"))
    ctx.log(f"Rendered PDF {url}")
    return {"url": url, "title": title or url.rsplit("/", 1)[-1]}


TOOLS: dict[str, Any] = {
    "web-search":   _tool_web_search,
    "generate-csv": _tool_generate_csv,
    "save-file":    _tool_save_file,
    "generate-pdf": _tool_generate_pdf,
}


BUILTIN_TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        id="builtin-web-search",
        name="web-search",
        description="Search the web with DuckDuckGo. Returns titles, URLs, and descriptions.",
        parameters=(
            ToolParam(name="query", type="string", description="The search query", required=True),
            ToolParam(name="count", type="number", description="Number of results (default 5)"),
        ),
    ),
    ToolDefinition(
        id="builtin-generate-csv",
        name="generate-csv",
        description="Export a list of row objects as a downloadable CSV file.",
        parameters=(
            ToolParam(name="rows", type="array", description="Array of objects, one per row", required=True),
            ToolParam(name="filename", type="string", description="Output filename, e.g. report.csv"),
            ToolParam(name="title", type="string", description="Display title for the file"),
        ),
    ),
    ToolDefinition(
        id="builtin-save-file",
        name="save-file",
        description="Save text content (markdown, JSON, plain text) as a downloadable file.",
        parameters=(
            ToolParam(name="filename", type="string", description="Filename with extension", required=True),
            ToolParam(name="content", type="string", description="Full file content", required=True),
        ),
    ),
    ToolDefinition(
        id="builtin-generate-pdf",
        name="generate-pdf",
        description="Render markdown content as a downloadable PDF document.",
        parameters=(
            ToolParam(name="content", type="string", description="Full markdown content to render", required=True),
            ToolParam(name="title", type="string", description="Document title shown at the top"),
            ToolParam(name="filename", type="string", description="Output filename, e.g. report.pdf"),
        ),
    ),
]
