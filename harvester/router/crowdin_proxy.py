# router/crowdin_proxy.py
import asyncio
import logging
from typing import Optional

import requests

from harvester.errors import ConfigurationError, CrowdinApiError
from harvester.router.base import BaseProvider
from harvester.router.models import ChatMessage, ModelResponse, ProviderConfig, ToolSpec
from harvester.router.openai_compat import (
    from_openai_message,
    to_openai_messages,
    to_openai_tool_choice,
    to_openai_tools,
)
from harvester.storage.crowdin import CrowdinClient

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (requests.Timeout, requests.ConnectionError)


class CrowdinProxyProvider(BaseProvider):
    """
    Usa un proveedor de IA configurado dentro de Crowdin (passthrough
    chat/completions). El cuerpo sigue el formato de OpenAI.
    """

    def __init__(self, config: ProviderConfig, client: CrowdinClient, **kwargs):
        super().__init__(config, **kwargs)
        if not config.crowdin_ai_id:
            raise ConfigurationError("Falta --crowdin-ai-id para usar el proveedor crowdin.")
        self._client = client

    def _is_retryable(self, error: Exception) -> bool:
        if isinstance(error, CrowdinApiError):
            if error.status is None:
                # fallo de red envuelto por el cliente: se mira la causa
                return isinstance(error.__cause__, _TRANSPORT_ERRORS)
            return error.status == 429 or error.status >= 500
        return isinstance(error, _TRANSPORT_ERRORS)

    async def _complete(
        self,
        messages:    list[ChatMessage],
        tools:       list[ToolSpec],
        tool_choice: Optional[str],
    ) -> ModelResponse:
        payload = {
            "model":    self._config.model,
            "messages": to_openai_messages(messages),
        }
        if tools:
            payload["tools"] = to_openai_tools(tools)
            if tool_choice:
                payload["tool_choice"] = to_openai_tool_choice(tool_choice)

        # El cliente es síncrono (requests); no bloquea el event loop
        data = await asyncio.to_thread(
            self._client.create_proxy_chat_completion,
            int(self._config.crowdin_ai_id),
            payload,
            self._config.timeout_seconds,
        )

        choices = data.get("choices") or []
        message = from_openai_message(choices[0].get("message") or {}) \
            if choices else ChatMessage(role="assistant")
        usage = data.get("usage") or {}
        return ModelResponse(
            message       = message,
            model_used    = self.model,
            tokens_input  = usage.get("prompt_tokens", 0) or 0,
            tokens_output = usage.get("completion_tokens", 0) or 0,
        )
