# context.py
# The only surface tool logic can reach: credentials, outbound HTTP, a log
# sink, and file-producing helpers. Tools never see the run, other tools,
# or the model loop.

import csv
import io
from typing import Any, Callable

import httpx

from skill_runner.errors import SkillRunnerError
from skill_runner.files import PublicFiles, safe_filename
from skill_runner.models import FetchResponse
from skill_runner.pdf import render_pdf

CredentialLookup = Callable[[str], "str | None"]


class ToolContext:
    """
    Capability object handed to a tool as `ctx`.

    Every file helper returns a site-relative URL ("/skill-files/x.csv").
    Tools should return it under a `url` key so the run tracks the file.
    """

    def __init__(
        self,
        credentials: CredentialLookup,
        log_sink: Callable[[str], None],
        files: PublicFiles,
        timeout: float = 30.0,
    ) -> None:
        self._credentials = credentials
        self._log_sink = log_sink
        self._files = files
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Credentials / logging
    # ------------------------------------------------------------------

    def get_credential(self, name: str) -> str | None:
        """Credential value by name, or None. Never raises."""
        try:
            return self._credentials(name) or None
        except (OSError, ValueError, KeyError):
            return None

    def log(self, message: str) -> None:
        self._log_sink(str(message))

    # ------------------------------------------------------------------
    # Outbound HTTP
    # ------------------------------------------------------------------

    def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: Any = None,
    ) -> FetchResponse:
        """
        Make an HTTP request. Non-2xx statuses are returned, not raised;
        inspect `.status`. Transport failures raise SkillRunnerError.
        """
        try:
            response = httpx.request(
                method.upper(),
                url,
                headers=headers,
                params=params,
                json=json,
                data=data,
                timeout=self._timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            raise SkillRunnerError(f"Fetch failed: {exc}") from exc

        content_type = response.headers.get("content-type", "")
        body: Any = response.text
        if "json" in content_type and body:
            try:
                body = response.json()
            except ValueError:
                body = response.text
        return FetchResponse(status=response.status_code, body=body, headers=dict(response.headers))

    # ------------------------------------------------------------------
    # File producers
    # ------------------------------------------------------------------

    def save_file(self, content: str, filename: str, sub_dir: str = "skill-files") -> str:
        """Save text content and return its URL."""
        return self._files.write_text(content, filename, sub_dir)

    def save_image(self, remote_url: str, filename: str | None = None) -> str:
        """Download a remote image into local storage and return its URL."""
        name = safe_filename(filename, ".png") if filename else self._files.unique_name("img", ".png")
        try:
            response = httpx.get(remote_url, timeout=self._timeout * 2, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SkillRunnerError(f"Failed to save image: {exc}") from exc
        return self._files.write_bytes(response.content, name, "skill-images")

    def save_pdf(self, content: str, title: str | None = None, filename: str | None = None) -> str:
        """Render markdown content as a PDF under /skill-pdfs and return its URL."""
        name = safe_filename(filename, ".pdf") if filename else self._files.unique_name("pdf", ".pdf")
        return self._files.write_bytes(render_pdf(str(content), title), name, "skill-pdfs")

    def generate_csv(self, rows: list[dict[str, Any]], filename: str | None = None) -> str:
        """Write a list of row dicts as CSV. Columns follow first-seen key order."""
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise SkillRunnerError("generate_csv expects a list of objects.")

        columns: list[str] = []
        for row in rows:
            for key in row:
                if key not in columns:
                    columns.append(key)

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)

        name = safe_filename(filename, ".csv") if filename else self._files.unique_name("data", ".csv")
        return self._files.write_text(buffer.getvalue(), name, "skill-files")
