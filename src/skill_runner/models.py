# models.py
# Data contracts for the skill runner.
# No business logic lives here, only schema and validation.

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ParamType = Literal["string", "number", "boolean", "array", "object"]
Phase = Literal["input", "process", "output"]
ArtifactType = Literal["image", "pdf", "document", "file"]


class _CamelModel(BaseModel):
    """Serializes with camelCase keys, accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Tools and skills
# ---------------------------------------------------------------------------


class ToolParam(BaseModel):
    name: str
    type: ParamType = "string"
    description: str = ""
    required: bool = False


class ToolDefinition(BaseModel):
    """A named action the model may call. Frozen once loaded into a run."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = Field(..., description="kebab-case identifier, e.g. 'brave-search'.")
    description: str = Field(default="", description="Shown to the model.")
    parameters: tuple[ToolParam, ...] = ()
    code: str = Field(default="", description="Python body of run_tool(params, ctx).")


class SkillParam(BaseModel):
    name: str
    type: ParamType = "string"
    description: str = ""
    required: bool = False
    default: Any = None


class SkillDefinition(BaseModel):
    id: str = ""
    name: str
    description: str = ""
    prompt: str = ""
    tools: list[str] = Field(default_factory=list)
    inputs: list[SkillParam] = Field(default_factory=list)
    credentials: list[str] = Field(default_factory=list)
    enabled: bool = True


class CapabilityDef(BaseModel):
    """A planning unit: one phase, one instruction block, some tools."""

    model_config = ConfigDict(frozen=True)

    file: str
    tools: tuple[str, ...] = ()
    description: str
    phase: Phase


class ToolSelection(BaseModel):
    flat_tools: list[ToolDefinition] = Field(default_factory=list)
    tools_by_capability: dict[str, list[ToolDefinition]] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Run records
# ---------------------------------------------------------------------------


class Artifact(_CamelModel):
    id: str
    tool_name: str
    type: ArtifactType
    url: str = Field(..., description="Always a site-relative path beginning with '/'.")
    title: str
    filename: str
    created_at: float


class ToolCallLog(_CamelModel):
    tool_name: str
    input: Any = None
    output: Any = None
    duration_ms: int = 0


class SkillRunResult(_CamelModel):
    id: str
    skill_id: str
    status: Literal["success", "error"]
    output: str = ""
    logs: list[str] = Field(default_factory=list)
    tool_calls: list[ToolCallLog] = Field(default_factory=list)
    duration: int = Field(default=0, description="Wall time in milliseconds.")
    started_at: str
    error: str | None = None


class ProgressEvent(BaseModel):
    """Side-channel notification. Never affects control flow."""

    type: Literal["phase", "step", "tool-start", "tool-done", "info", "done", "error"]
    message: str
    phase: str | None = None
    tool: str | None = None
    elapsed: int | None = Field(default=None, description="Milliseconds since run start.")
    result: SkillRunResult | None = None


# ---------------------------------------------------------------------------
# Provider / tool context wire shapes
# ---------------------------------------------------------------------------


class FetchResponse(BaseModel):
    status: int
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: Any = Field(default_factory=dict)


class ChatTurn(BaseModel):
    """One assistant turn: optional text plus zero or more tool calls."""

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    raw_arguments: dict[str, str] = Field(default_factory=dict)

    def as_message(self) -> dict[str, Any]:
        """Render as an assistant message for the next request."""
        message: dict[str, Any] = {"role": "assistant", "content": self.content or None}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": self.raw_arguments.get(call.id, "{}"),
                    },
                }
                for call in self.tool_calls
            ]
        return message
