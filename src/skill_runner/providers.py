# providers.py
# Chat-completion providers. OpenRouter is primary, OpenAI is the fallback;
# both speak the OpenAI wire format, so one client class covers both.

import json
from typing import Any, Callable

from openai import OpenAI

from skill_runner.config import Settings
from skill_runner.errors import ProviderError
from skill_runner.models import ChatTurn, ToolCall, ToolDefinition, ToolParam


def _param_schema(param: ToolParam) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": param.type, "description": param.description}
    # array schemas must declare items
    if param.type == "array":
        schema["items"] = {}
    return schema


def to_openai_tool(tool: ToolDefinition) -> dict[str, Any]:
    """Function-calling schema for one tool."""
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": {
                "type": "object",
                "properties": {
                    p.name: _param_schema(p) for p in tool.parameters
                },
                "required": [p.name for p in tool.parameters if p.required],
            },
        },
    }


def _parse_arguments(raw: str | None) -> Any:
    """Arguments arrive as a JSON string; keep the raw string if it isn't JSON."""
    if not raw:
        return {}
    try:
        return json.loads(raw, strict=False)
    except json.JSONDecodeError:
        return raw


class ChatProvider:
    """One OpenAI-compatible endpoint with a fixed model."""

    def __init__(
        self,
        name: str,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float = 120.0,
        max_retries: int = 2,
    ) -> None:
        self.name = name
        self.model = model
        self._client = OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
        )

    def __repr__(self) -> str:
        return f"ChatProvider({self.name}, {self.model})"

    def complete(
        self,
        messages: list[dict],
        tools: list[dict] | None = None,
        max_tokens: int = 4000,
        temperature: float = 0.7,
    ) -> ChatTurn:
        """One model turn. Raises openai.OpenAIError or ProviderError."""
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if tools:
            kwargs["tools"] = tools

        response = self._client.chat.completions.create(**kwargs)
        if not response.choices:
            raise ProviderError(f"{self.name} returned no choices.")

        message = response.choices[0].message
        calls: list[ToolCall] = []
        raw_arguments: dict[str, str] = {}
        for call in message.tool_calls or []:
            raw_arguments[call.id] = call.function.arguments or "{}"
            calls.append(
                ToolCall(
                    id=call.id,
                    name=call.function.name,
                    arguments=_parse_arguments(call.function.arguments),
                )
            )
        return ChatTurn(content=message.content or "", tool_calls=calls, raw_arguments=raw_arguments)

    def complete_text(
        self,
        messages: list[dict],
        max_tokens: int = 256,
        temperature: float = 0.0,
        timeout: float | None = None,
    ) -> str:
        """Plain text completion, used for cheap planning calls."""
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if timeout is not None:
            kwargs["timeout"] = timeout
        response = self._client.chat.completions.create(**kwargs)
        if not response.choices:
            raise ProviderError(f"{self.name} returned no choices.")
        return (response.choices[0].message.content or "").strip()


def build_providers(
    credentials: Callable[[str], "str | None"],
    settings: Settings,
) -> list[ChatProvider]:
    """Configured providers in fallback order. Empty if no key is set."""
    providers: list[ChatProvider] = []

    openrouter_key = credentials("openrouter")
    if openrouter_key:
        providers.append(
            ChatProvider(
                "openrouter",
                openrouter_key,
                settings.openrouter_base_url,
                settings.primary_model,
                timeout=settings.provider_timeout,
                max_retries=settings.provider_max_retries,
            )
        )

    openai_key = credentials("openai")
    if openai_key:
        providers.append(
            ChatProvider(
                "openai",
                openai_key,
                settings.openai_base_url,
                settings.fallback_model,
                timeout=settings.provider_timeout,
                max_retries=settings.provider_max_retries,
            )
        )
    return providers
