# router/claude.py
import logging
from typing import Optional

import anthropic

from harvester.router.base import BaseProvider
from harvester.router.models import (
    ChatMessage,
    ModelResponse,
    ProviderConfig,
    ToolCall,
    ToolSpec,
)
from harvester.router.response_parser import decode_arguments

logger = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
    anthropic.InternalServerError,
)


class ClaudeProvider(BaseProvider):

    _RETRYABLE_ERRORS = _RETRYABLE_ERRORS

    def __init__(self, config: ProviderConfig, client=None, **kwargs):
        super().__init__(config, **kwargs)
        self._client = client or anthropic.AsyncAnthropic(
            api_key     = config.api_key,
            timeout     = config.timeout_seconds,
            max_retries = 0,
        )

    def _is_retryable(self, error: Exception) -> bool:
        # 529 (overloaded) no hereda de InternalServerError
        if isinstance(error, anthropic.APIStatusError) and error.status_code >= 500:
            return True
        return super()._is_retryable(error)

    async def _complete(
        self,
        messages:    list[ChatMessage],
        tools:       list[ToolSpec],
        tool_choice: Optional[str],
    ) -> ModelResponse:
        system, converted = to_anthropic_messages(messages)

        kwargs = {
            "model":      self._config.model,
            "max_tokens": self._config.max_output_tokens,
            "messages":   converted,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.parameters}
                for t in tools
            ]
            if tool_choice == "required":
                kwargs["tool_choice"] = {"type": "any"}
            elif tool_choice and tool_choice not in ("auto", "none"):
                kwargs["tool_choice"] = {"type": "tool", "name": tool_choice}

        response = await self._client.messages.create(**kwargs)

        text  = []
        calls = []
        for block in response.content:
            if block.type == "text":
                text.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(id=block.id, name=block.name, arguments=block.input))

        return ModelResponse(
            message       = ChatMessage(role="assistant", content="".join(text), tool_calls=calls),
            model_used    = self.model,
            tokens_input  = response.usage.input_tokens,
            tokens_output = response.usage.output_tokens,
        )


def to_anthropic_messages(messages: list[ChatMessage]) -> tuple[str, list[dict]]:
    """
    El system va aparte; los resultados de tools viajan como bloques
    tool_result dentro de un mensaje user (consecutivos se agrupan).
    """
    system    = []
    converted = []

    for m in messages:
        if m.role == "system":
            system.append(m.content)

        elif m.role == "tool":
            block = {"type": "tool_result", "tool_use_id": m.tool_call_id, "content": m.content}
            last  = converted[-1] if converted else None
            if last and last["role"] == "user" and isinstance(last["content"], list) \
                    and all(b.get("type") == "tool_result" for b in last["content"]):
                last["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})

        elif m.role == "assistant":
            blocks = []
            if m.content:
                blocks.append({"type": "text", "text": m.content})
            for call in m.tool_calls:
                args = decode_arguments(call, "anthropic")
                blocks.append({
                    "type":  "tool_use",
                    "id":    call.id,
                    "name":  call.name,
                    "input": args if isinstance(args, dict) else {},
                })
            converted.append({"role": "assistant", "content": blocks or m.content})

        else:
            converted.append({"role": "user", "content": m.content})

    return "\n\n".join(system), converted
