# router/openai_compat.py
import json
import logging
from typing import Optional

import openai

from harvester.router.base import BaseProvider
from harvester.router.models import (
    ChatMessage,
    ModelResponse,
    ProviderConfig,
    ToolCall,
    ToolSpec,
)

logger = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.InternalServerError,
)

MISTRAL_BASE_URL = "https://api.mistral.ai/v1"


class OpenAIProvider(BaseProvider):
    """Cualquier endpoint chat-completions compatible con OpenAI."""

    _RETRYABLE_ERRORS = _RETRYABLE_ERRORS

    def __init__(self, config: ProviderConfig, client=None, **kwargs):
        super().__init__(config, **kwargs)
        self._client = client or self._build_client()

    def _build_client(self):
        return openai.AsyncOpenAI(
            api_key     = self._config.api_key,
            base_url    = self._config.base_url or None,
            timeout     = self._config.timeout_seconds,
            max_retries = 0,   # los reintentos los lleva BaseProvider
        )

    def _model_name(self) -> str:
        return self._config.model

    async def _complete(
        self,
        messages:    list[ChatMessage],
        tools:       list[ToolSpec],
        tool_choice: Optional[str],
    ) -> ModelResponse:
        kwargs = {
            "model":    self._model_name(),
            "messages": to_openai_messages(messages),
        }
        if tools:
            kwargs["tools"] = to_openai_tools(tools)
            if tool_choice:
                kwargs["tool_choice"] = to_openai_tool_choice(tool_choice)

        response = await self._client.chat.completions.create(**kwargs)

        message = from_openai_message(response.choices[0].message.model_dump()) \
            if response.choices else ChatMessage(role="assistant")
        usage = response.usage
        return ModelResponse(
            message       = message,
            model_used    = self.model,
            tokens_input  = getattr(usage, "prompt_tokens", 0) or 0,
            tokens_output = getattr(usage, "completion_tokens", 0) or 0,
        )


class MistralProvider(OpenAIProvider):
    """Mistral expone un endpoint compatible; solo cambia la base_url."""

    def _build_client(self):
        return openai.AsyncOpenAI(
            api_key     = self._config.api_key,
            base_url    = self._config.base_url or MISTRAL_BASE_URL,
            timeout     = self._config.timeout_seconds,
            max_retries = 0,
        )


class AzureProvider(OpenAIProvider):
    """Azure OpenAI: recurso + deployment + key. El deployment hace de modelo."""

    def _build_client(self):
        return openai.AsyncAzureOpenAI(
            api_key        = self._config.api_key,
            api_version    = self._config.azure_api_version,
            azure_endpoint = f"https://{self._config.azure_resource_name}.openai.azure.com",
            timeout        = self._config.timeout_seconds,
            max_retries    = 0,
        )

    def _model_name(self) -> str:
        return self._config.azure_deployment_name or self._config.model


# ------------------------------------------------------------------
# Conversión al formato OpenAI: compartida con el proxy de Crowdin
# ------------------------------------------------------------------

def to_openai_messages(messages: list[ChatMessage]) -> list[dict]:
    converted = []
    for m in messages:
        if m.role == "tool":
            converted.append({
                "role":         "tool",
                "tool_call_id": m.tool_call_id,
                "content":      m.content,
            })
        elif m.role == "assistant" and m.tool_calls:
            converted.append({
                "role":       "assistant",
                "content":    m.content or None,
                "tool_calls": [
                    {
                        "id":       call.id,
                        "type":     "function",
                        "function": {
                            "name":      call.name,
                            "arguments": call.arguments if isinstance(call.arguments, str)
                                         else json.dumps(call.arguments, ensure_ascii=False),
                        },
                    }
                    for call in m.tool_calls
                ],
            })
        else:
            converted.append({"role": m.role, "content": m.content})
    return converted


def to_openai_tools(tools: list[ToolSpec]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name":        t.name,
                "description": t.description,
                "parameters":  t.parameters,
            },
        }
        for t in tools
    ]


def to_openai_tool_choice(tool_choice: str):
    if tool_choice in ("auto", "required", "none"):
        return tool_choice
    return {"type": "function", "function": {"name": tool_choice}}


def from_openai_message(data: dict) -> ChatMessage:
    """Mensaje assistant en dict (SDK model_dump() o JSON del proxy) → ChatMessage."""
    calls = []
    for i, raw in enumerate(data.get("tool_calls") or []):
        function = raw.get("function") or {}
        calls.append(ToolCall(
            id        = raw.get("id") or f"call_{i}",
            name      = function.get("name", ""),
            arguments = function.get("arguments", ""),
        ))
    return ChatMessage(role="assistant", content=data.get("content") or "", tool_calls=calls)
