# artifacts.py
# Deterministic tracking and rendering of tool-produced files.
#
# The model is never trusted to reference files correctly. Instead:
#   1. Every tool output is inspected and local file URLs are recorded.
#   2. assemble_output() repairs references the model mangled, then appends
#      every artifact the model never mentioned.
#
# Only site-relative URLs ("/skill-pdfs/x.pdf") are tracked. External links
# returned by search tools are ignored.

import re
import time
import uuid
from typing import Any

from skill_runner.models import Artifact

IMAGE_EXT = re.compile(r"\.(png|jpg|jpeg|gif|webp|svg|bmp|ico)$", re.IGNORECASE)
PDF_EXT = re.compile(r"\.pdf$", re.IGNORECASE)
DOC_EXT = re.compile(r"\.(doc|docx|txt|md|csv|xlsx|xls|pptx)$", re.IGNORECASE)

NESTED_KEYS = ("files", "images", "documents", "artifacts", "results")

DOWNLOAD_ICON = "\U0001F4E5"
ATTACHMENT_ICON = "\U0001F4CE"

# Any URI scheme followed by optional slashes: https://, http://, sandbox:, file://
_SCHEME = r"[a-zA-Z][a-zA-Z0-9+.-]*:/?/?"


def _is_local(url: Any) -> bool:
    return isinstance(url, str) and url.startswith("/") and not url.startswith("//")


def _humanize(filename: str) -> str:
    stem = re.sub(r"\.[^.]+$", "", filename)
    spaced = re.sub(r"\s+", " ", re.sub(r"[_-]", " ", stem)).strip()
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced)


def _classify(url: str) -> str:
    if IMAGE_EXT.search(url):
        return "image"
    if PDF_EXT.search(url):
        return "pdf"
    if DOC_EXT.search(url):
        return "document"
    return "file"


def to_markdown(artifact: Artifact) -> str:
    """Correct markdown for one artifact: images inline, everything else a link."""
    if artifact.type == "image":
        return f"![{artifact.title}]({artifact.url})"
    if artifact.type == "pdf":
        return f"[{DOWNLOAD_ICON} Download {artifact.title}]({artifact.url})"
    return f"[{ATTACHMENT_ICON} {artifact.title}]({artifact.url})"


class ArtifactRegistry:
    """Per-run record of files produced by tools."""

    def __init__(self) -> None:
        self._artifacts: list[Artifact] = []

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_tool_output(self, tool_name: str, output: Any) -> None:
        """
        Inspect a tool result and record every local file it references.

        Shapes handled (non-exclusively): {url}, [{url}, ...], and lists
        under files/images/documents/artifacts/results.
        """
        if isinstance(output, dict):
            self._consider(tool_name, output)
            for key in NESTED_KEYS:
                nested = output.get(key)
                if isinstance(nested, list):
                    for item in nested:
                        self._consider(tool_name, item)
        elif isinstance(output, list):
            for item in output:
                self._consider(tool_name, item)

    def _consider(self, tool_name: str, item: Any) -> None:
        if isinstance(item, dict) and _is_local(item.get("url")):
            title = item.get("title") or item.get("filename")
            self._add(tool_name, item["url"], title if isinstance(title, str) else None)

    def _add(self, tool_name: str, url: str, title: str | None = None) -> None:
        if any(a.url == url for a in self._artifacts):
            return

        filename = url.rstrip("/").split("/")[-1] or url
        self._artifacts.append(
            Artifact(
                id=f"art_{uuid.uuid4().hex[:10]}",
                tool_name=tool_name,
                type=_classify(url),
                url=url,
                title=title or _humanize(filename),
                filename=filename,
                created_at=time.time(),
            )
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def all(self) -> list[Artifact]:
        return list(self._artifacts)

    def by_type(self, artifact_type: str) -> list[Artifact]:
        return [a for a in self._artifacts if a.type == artifact_type]

    def __len__(self) -> int:
        return len(self._artifacts)

    # ------------------------------------------------------------------
    # Output assembly
    # ------------------------------------------------------------------

    def assemble_output(self, text: str) -> str:
        """
        Repair mangled references, then append every artifact still missing.

        Repair runs first so a referenced-but-malformed artifact is not also
        appended by the completion pass.
        """
        if not self._artifacts:
            return text

        output = self._repair_references(text)
        missing = [a for a in self._artifacts if a.url not in output]
        if missing:
            output += "\n\n---\n" + "\n".join(to_markdown(a) for a in missing)
        return output

    def _repair_references(self, text: str) -> str:
        fixed = text
        for artifact in self._artifacts:
            name = re.escape(artifact.filename)
            url = artifact.url

            # Wrong scheme/host, right filename: ![alt](https://cdn.fake/x.png)
            fixed = re.sub(
                r"(!\[[^\]]*\])\(" + _SCHEME + r"(?:[^)]*?/)?" + name + r"\)",
                lambda m: f"{m.group(1)}({url})",
                fixed,
            )
            # Same for link syntax: [label](sandbox:/skill-pdfs/x.pdf)
            fixed = re.sub(
                r"(?<!!)\[([^\]]*)\]\(" + _SCHEME + r"(?:[^)]*?/)?" + name + r"\)",
                lambda m: f"[{m.group(1)}]({url})",
                fixed,
            )

            if artifact.type != "image":
                continue

            escaped_url = re.escape(url)
            title = artifact.title
            # Download-styled link to an image -> inline image
            fixed = re.sub(
                r"\[" + DOWNLOAD_ICON + r"[^\]]*\]\(" + escaped_url + r"\)",
                lambda m: f"![{title}]({url})",
                fixed,
            )
            # Plain link to an image -> inline image
            fixed = re.sub(
                r"(?<!!)\[([^\]]*)\]\(" + escaped_url + r"\)",
                lambda m: f"![{m.group(1)}]({url})",
                fixed,
            )
        return fixed
