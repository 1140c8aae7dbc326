# capabilities.py
# Static capability catalog. A capability is the planning unit: it names a
# phase, an instruction block under prompts/, and the tools it needs.
# Tools are referenced by name only, never copied.

from skill_runner.models import CapabilityDef

PHASE_ORDER = ("input", "process", "output")

# Process-phase capability inserted when a tool-inferred plan gathers input
# but never composes anything from it.
COMPOSE_CAPABILITY = "write-article"


def _cap(file: str, tools: list[str], description: str, phase: str) -> CapabilityDef:
    return CapabilityDef(file=file, tools=tuple(tools), description=description, phase=phase)


CAPABILITY_REGISTRY: dict[str, CapabilityDef] = {
    # ── input ────────────────────────────────────────────────────────
    "research": _cap(
        "research.md", ["brave-search", "web-search"],
        "Search the web and gather information on a topic", "input",
    ),
    "deep-research": _cap(
        "deep-research.md", ["brave-search", "web-search", "apify-scraper"],
        "In-depth research using search and webpage scraping", "input",
    ),
    "content-ideation": _cap(
        "content-ideation.md", ["brave-search", "apify-scraper"],
        "Generate content ideas and topics based on research", "input",
    ),
    "enrich": _cap(
        "enrich.md", ["brave-search", "apify-scraper"],
        "Research and compile a structured profile for a company, person, or domain", "input",
    ),
    "transcribe-audio": _cap(
        "transcribe-audio.md", ["transcribe-audio"],
        "Transcribe audio/video files to text", "input",
    ),
    # ── process ──────────────────────────────────────────────────────
    "write-article": _cap(
        "write-article.md", [],
        "Write a structured long-form article from research notes", "process",
    ),
    "summarise": _cap("summarise.md", [], "Produce a concise summary of content", "process"),
    "translate": _cap("translate.md", [], "Translate content into another language", "process"),
    "analyse": _cap(
        "analyse.md", [],
        "Analyse text for sentiment, classification, or insights", "process",
    ),
    "repurpose": _cap(
        "repurpose.md", [],
        "Adapt content for different platforms (Twitter, LinkedIn, etc.)", "process",
    ),
    "calculate": _cap(
        "calculate.md", ["generate-csv"],
        "Perform mathematical, statistical, or financial calculations", "process",
    ),
    "compliance": _cap(
        "compliance.md", ["brave-search"],
        "Check content against compliance regulations or policy rules", "process",
    ),
    "validate": _cap(
        "validate.md", ["generate-csv", "generate-json"],
        "Validate, clean, and format structured data", "process",
    ),
    "compare": _cap(
        "compare.md", [],
        "Compare two document versions and produce a diff/redline", "process",
    ),
    "template": _cap(
        "template.md", [],
        "Fill templates with data: mail merge and variable substitution", "process",
    ),
    "deduplicate": _cap(
        "deduplicate.md", ["generate-csv", "generate-json"],
        "Find and merge duplicate records in a dataset", "process",
    ),
    "edit-image": _cap(
        "edit-image.md", ["edit-image"],
        "Edit/process images: resize, rotate, watermark, convert, effects", "process",
    ),
    # ── output ───────────────────────────────────────────────────────
    "generate-image": _cap(
        "generate-image.md", ["generate-image"],
        "Generate ONE AI image that complements the content", "output",
    ),
    "render-pdf": _cap(
        "render-pdf.md", ["generate-pdf"],
        "Export the finished content as a downloadable PDF", "output",
    ),
    "render-csv": _cap(
        "generate-csv.md", ["generate-csv"],
        "Export structured data as a downloadable CSV file", "output",
    ),
    "render-html": _cap(
        "generate-html.md", ["generate-html"],
        "Generate a complete styled HTML page", "output",
    ),
    "render-qr": _cap("generate-qr.md", ["generate-qrcode"], "Generate a QR code image", "output"),
    "send-email": _cap("send-email.md", ["send-email"], "Compose and send an email", "output"),
    "render-excel": _cap(
        "generate-excel.md", ["generate-excel"],
        "Export data as a downloadable Excel (.xlsx) spreadsheet", "output",
    ),
    "render-docx": _cap(
        "generate-docx.md", ["generate-docx"],
        "Generate a Word document (.docx) with formatted content", "output",
    ),
    "render-zip": _cap(
        "generate-zip.md", ["create-zip"],
        "Bundle multiple files into a downloadable ZIP archive", "output",
    ),
    "render-vcard": _cap(
        "generate-vcard.md", ["generate-vcard"],
        "Generate a downloadable vCard (.vcf) contact file", "output",
    ),
    "generate-ics": _cap(
        "generate-ics.md", ["generate-ics"],
        "Create downloadable iCalendar (.ics) event files", "output",
    ),
    "send-webhook": _cap(
        "send-webhook.md", ["send-webhook"],
        "Send data to external APIs and webhooks via HTTP", "output",
    ),
    "send-chat-message": _cap(
        "send-chat-message.md", ["send-chat-message"],
        "Send messages to Slack, Teams, or Discord", "output",
    ),
    "save-file": _cap(
        "save-file.md", ["save-file"],
        "Save generated text content as a downloadable file", "output",
    ),
}

# Tool name -> owning capability, used when inferring a plan from a skill's
# declared tools. Tools missing here fall back to the first capability in
# CAPABILITY_REGISTRY that lists them.
TOOL_TO_CAPABILITY: dict[str, str] = {
    "brave-search": "research",
    "web-search": "research",
    "apify-scraper": "deep-research",
    "generate-image": "generate-image",
    "generate-pdf": "render-pdf",
    "merge-pdfs": "render-pdf",
    "generate-csv": "render-csv",
    "generate-json": "validate",
    "generate-html": "render-html",
    "generate-html-page": "render-html",
    "generate-qrcode": "render-qr",
    "generate-qr": "render-qr",
    "send-email": "send-email",
    "generate-excel": "render-excel",
    "generate-docx": "render-docx",
    "create-zip": "render-zip",
    "generate-vcard": "render-vcard",
    "generate-ics": "generate-ics",
    "send-webhook": "send-webhook",
    "send-chat-message": "send-chat-message",
    "transcribe-audio": "transcribe-audio",
    "edit-image": "edit-image",
    "save-file": "save-file",
}

# Known skill names -> default capability pipelines. Used verbatim when the
# planner model is unavailable.
SKILL_ARCHETYPE: dict[str, list[str]] = {
    "web-research": ["research", "write-article", "render-pdf"],
    "content-writer": ["research", "write-article", "generate-image", "render-pdf"],
    "deep-research": ["deep-research", "write-article", "render-pdf"],
    "content-ideator": ["deep-research", "content-ideation", "render-pdf"],
    "image-creator": ["generate-image"],
    "text-summariser": ["summarise", "render-pdf"],
    "sentiment-analyser": ["analyse", "render-pdf"],
    "translator": ["translate", "render-pdf"],
    "content-repurposer": ["research", "repurpose", "render-pdf"],
    "data-enrichment": ["enrich", "render-pdf"],
    "template-filler": ["template", "render-pdf"],
    "calculator": ["calculate", "render-csv"],
    "compliance-checker": ["research", "compliance", "render-pdf"],
    "data-validator": ["validate", "render-csv"],
    "document-comparator": ["compare", "render-pdf"],
    "knowledge-qa": ["deep-research", "write-article"],
    "proposal-generator": ["write-article", "render-pdf", "render-excel"],
    "html-page-generator": ["render-html"],
    "qr-code-generator": ["render-qr", "render-vcard"],
    "email-composer": ["research", "send-email"],
    "deduplicator": ["deduplicate", "render-csv"],
    "contact-card-generator": ["render-vcard", "render-qr", "render-zip"],
    "calendar-event-creator": ["generate-ics"],
    "webhook-pusher": ["send-webhook"],
    "audio-transcriber": ["transcribe-audio", "render-pdf", "render-docx"],
    "word-doc-generator": ["research", "write-article", "render-docx"],
    "image-editor": ["edit-image"],
    "invoice-generator": ["calculate", "render-pdf", "render-excel"],
    "meeting-notes": ["transcribe-audio", "summarise", "render-pdf", "send-email"],
    "seo-auditor": ["deep-research", "analyse", "render-pdf", "render-html"],
    "competitor-analyzer": ["deep-research", "analyse", "render-pdf", "render-excel"],
}


def owning_capability(tool_name: str) -> str | None:
    """Capability that owns `tool_name`, or None. First match wins."""
    if tool_name in TOOL_TO_CAPABILITY:
        return TOOL_TO_CAPABILITY[tool_name]
    for name, cap in CAPABILITY_REGISTRY.items():
        if tool_name in cap.tools:
            return name
    return None


def humanize(name: str) -> str:
    """'render-pdf' -> 'Render Pdf'."""
    spaced = name.replace("-", " ")
    return " ".join(word[:1].upper() + word[1:] for word in spaced.split(" "))
