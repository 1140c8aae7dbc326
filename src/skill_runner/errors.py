# errors.py
# Exception types shared across the runner. Boundaries (sandbox, harness)
# convert these into structured values; nothing here escapes a run.


class SkillRunnerError(Exception):
    """Base class for every error raised by the runner."""


class ProviderError(SkillRunnerError):
    """No model provider is configured, or a provider returned an unusable reply."""


class ToolNotFoundError(SkillRunnerError):
    """Raised when the model requests a tool absent from the live tool set."""


class ToolQuotaExceeded(SkillRunnerError):
    """Raised when a tool has used up its per-run call allowance."""


class ToolParameterError(SkillRunnerError):
    """Raised when tool arguments fail validation against declared parameters."""
