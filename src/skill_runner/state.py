# state.py
# Ephemeral per-run state: logs, tool ledger, artifacts, progress channel.
# Created when a run starts, frozen into a SkillRunResult when it ends.

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from skill_runner import display
from skill_runner.artifacts import ArtifactRegistry
from skill_runner.models import ProgressEvent, SkillRunResult, ToolCallLog

ProgressCallback = Callable[[ProgressEvent], None]


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:12]}"


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]


class RunState:
    def __init__(self, skill_id: str, on_progress: ProgressCallback | None = None) -> None:
        self.id = new_run_id()
        self.skill_id = skill_id
        self.started_at = datetime.now(timezone.utc).isoformat()
        self.logs: list[str] = []
        self.tool_calls: list[ToolCallLog] = []
        self.artifacts = ArtifactRegistry()
        self._t0 = time.monotonic()
        self._on_progress = on_progress

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._t0) * 1000)

    def log(self, message: str) -> None:
        self.logs.append(f"[{_timestamp()}] {message}")

    def tool_log(self, message: str) -> None:
        """Log line emitted by tool code through ctx.log()."""
        self.log(f"🔧 {message}")

    def progress(
        self,
        type: str,
        message: str,
        phase: str | None = None,
        tool: str | None = None,
        result: SkillRunResult | None = None,
    ) -> None:
        """
        Emit a side-channel event. Observers cannot affect the run: a
        failing callback is reported and otherwise ignored.
        """
        event = ProgressEvent(
            type=type, message=message, phase=phase, tool=tool,
            elapsed=self.elapsed_ms, result=result,
        )
        display.progress(event)
        if self._on_progress is None:
            return
        try:
            self._on_progress(event)
        except Exception as exc:  # observers must not break the run
            display.warning(f"Progress callback failed: {exc}")

    def result(self, status: str, output: str = "", error: str | None = None) -> SkillRunResult:
        return SkillRunResult(
            id=self.id,
            skill_id=self.skill_id,
            status=status,
            output=output,
            logs=list(self.logs),
            tool_calls=list(self.tool_calls),
            duration=self.elapsed_ms,
            started_at=self.started_at,
            error=error,
        )
