import asyncio
from unittest.mock import MagicMock

import pytest

from harvester.errors import ProviderError
from harvester.router.agent import AgentRunner
from harvester.router.base import BaseProvider
from harvester.router.models import ChatMessage, ModelResponse, ProviderConfig, ProviderKind, ToolCall
from harvester.router.tools import return_context_tool, return_description_tool
from harvester.workspace.tools import WorkspaceTools


class ScriptedProvider(BaseProvider):
    """Devuelve respuestas en orden y guarda cada conversación recibida."""

    def __init__(self, responses):
        super().__init__(ProviderConfig(provider=ProviderKind.OPENAI))
        self._responses = list(responses)
        self.seen       = []

    async def _complete(self, messages, tools, tool_choice):
        self.seen.append((list(messages), [t.name for t in tools], tool_choice))
        return self._responses.pop(0)


def reply(*calls, tokens=10) -> ModelResponse:
    return ModelResponse(
        message      = ChatMessage(role="assistant", tool_calls=list(calls)),
        model_used   = "m",
        tokens_input = tokens,
    )


def start() -> list[ChatMessage]:
    return [ChatMessage.system("persona"), ChatMessage.user("string")]


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "app.js").write_text("t('btn.save')\n", encoding="utf-8")
    return WorkspaceTools(str(tmp_path))


class TestAgentRunner:

    def test_usa_herramientas_y_devuelve_el_contexto_final(self, workspace):
        provider = ScriptedProvider([
            reply(ToolCall(id="g1", name="grep", arguments={"pattern": "btn.save"})),
            reply(ToolCall(id="f1", name="return_context", arguments='{"context": "Used as a save button"}')),
        ])
        runner = AgentRunner(provider, workspace)

        outcome = asyncio.run(runner.run(start(), return_context_tool()))

        assert outcome.text        == "Used as a save button"
        assert outcome.steps       == 2
        assert outcome.tokens_used == 20
        second_turn, tool_names, choice = provider.seen[1]
        assert second_turn[-1].role == "tool"
        assert "app.js" in second_turn[-1].content
        assert "return_context" in tool_names and "grep" in tool_names
        assert choice == "required"

    def test_sin_tool_call_es_sin_resultado(self, workspace):
        provider = ScriptedProvider([reply()])

        outcome = asyncio.run(AgentRunner(provider, workspace).run(start(), return_context_tool()))

        assert outcome.text is None
        assert outcome.found is False

    def test_limite_de_pasos_es_sin_resultado_no_error(self, workspace):
        looping = [reply(ToolCall(id=f"l{i}", name="ls", arguments={"path": "."})) for i in range(3)]
        provider = ScriptedProvider(looping)

        outcome = asyncio.run(AgentRunner(provider, workspace, max_steps=3).run(start(), return_context_tool()))

        assert outcome.text is None
        assert outcome.steps == 3

    def test_texto_final_vacio_es_sin_resultado(self, workspace):
        provider = ScriptedProvider([reply(ToolCall(id="f", name="return_context", arguments={"context": "   "}))])

        outcome = asyncio.run(AgentRunner(provider, workspace).run(start(), return_context_tool()))

        assert outcome.text is None

    def test_tool_desconocida_se_informa_al_modelo(self, workspace):
        provider = ScriptedProvider([
            reply(ToolCall(id="x", name="delete_everything", arguments={})),
            reply(ToolCall(id="f", name="return_description", arguments={"description": "A todo app."})),
        ])

        outcome = asyncio.run(AgentRunner(provider, workspace).run(start(), return_description_tool()))

        assert outcome.text == "A todo app."
        assert "Unknown tool" in provider.seen[1][0][-1].content

    def test_argumentos_malformados_propagan_provider_error(self, workspace):
        provider = ScriptedProvider([reply(ToolCall(id="f", name="return_context", arguments="{roto"))])

        with pytest.raises(ProviderError):
            asyncio.run(AgentRunner(provider, workspace).run(start(), return_context_tool()))
