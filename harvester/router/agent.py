# router/agent.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from harvester.router.base import BaseProvider
from harvester.router.models import ChatMessage, ToolSpec
from harvester.router.response_parser import decode_arguments, extract_single_text
from harvester.workspace.tools import WorkspaceTools

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 50

# Campo de texto de cada tool terminal
_FINAL_FIELDS = {
    "return_context":     "context",
    "return_description": "description",
}


@dataclass
class AgentOutcome:
    text:        Optional[str]
    tokens_used: int = 0
    steps:       int = 0

    @property
    def found(self) -> bool:
        return bool(self.text)


class AgentRunner:
    """
    Bucle de tool calling: el modelo inspecciona el repo con las
    herramientas del workspace hasta llamar a la tool terminal.

    Sin tool call, texto vacío o superar max_steps → sin resultado.
    Los ProviderError del adaptador se propagan al scheduler.
    """

    def __init__(
        self,
        provider:  BaseProvider,
        tools:     WorkspaceTools,
        max_steps: int = DEFAULT_MAX_STEPS,
    ):
        self._provider  = provider
        self._tools     = tools
        self._max_steps = max(1, max_steps)

    async def run(self, messages: Sequence[ChatMessage], final_tool: ToolSpec) -> AgentOutcome:
        conversation = list(messages)
        specs        = self._tools.specs() + [final_tool]
        field        = _FINAL_FIELDS.get(final_tool.name, "text")
        tokens       = 0

        for step in range(1, self._max_steps + 1):
            response = await self._provider.execute(conversation, specs, tool_choice="required")
            tokens  += response.tokens_total
            conversation.append(response.message)

            if not response.tool_calls:
                logger.debug("Agente terminó sin tool call en el paso %d", step)
                return AgentOutcome(text=None, tokens_used=tokens, steps=step)

            for call in response.tool_calls:
                if call.name == final_tool.name:
                    text = extract_single_text(call, field, self._provider.name)
                    return AgentOutcome(text=text or None, tokens_used=tokens, steps=step)

            for call in response.tool_calls:
                output = await self._run_tool(call)
                conversation.append(ChatMessage.tool_result(call, output))

        logger.info("Agente alcanzó el límite de %d pasos sin resultado", self._max_steps)
        return AgentOutcome(text=None, tokens_used=tokens, steps=self._max_steps)

    async def _run_tool(self, call) -> str:
        if call.name not in self._tools.names:
            return f"Unknown tool '{call.name}'"
        args = decode_arguments(call, self._provider.name)
        logger.debug("Tool %s(%s)", call.name, args)
        # Lectura de disco bloqueante: fuera del event loop
        return await asyncio.to_thread(self._tools.call, call.name, args)
