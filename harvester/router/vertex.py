# router/vertex.py
import logging
from typing import Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from google.oauth2 import service_account

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

_SCOPES    = ["https://www.googleapis.com/auth/cloud-platform"]
_TOKEN_URI = "https://oauth2.googleapis.com/token"


class VertexProvider(BaseProvider):
    """Gemini en Vertex AI con credencial de service account (proyecto + región + clave)."""

    def __init__(self, config: ProviderConfig, client=None, **kwargs):
        super().__init__(config, **kwargs)
        self._client = client or genai.Client(
            vertexai     = True,
            project      = config.vertex_project,
            location     = config.vertex_location,
            credentials  = build_credentials(config),
            http_options = types.HttpOptions(timeout=config.timeout_seconds * 1000),
        )

    def _is_retryable(self, error: Exception) -> bool:
        if isinstance(error, genai_errors.ServerError):
            return True
        return isinstance(error, genai_errors.ClientError) and error.code == 429

    async def _complete(
        self,
        messages:    list[ChatMessage],
        tools:       list[ToolSpec],
        tool_choice: Optional[str],
    ) -> ModelResponse:
        system, contents = to_vertex_contents(messages)

        config = types.GenerateContentConfig(
            system_instruction        = system or None,
            max_output_tokens         = self._config.max_output_tokens,
            automatic_function_calling = types.AutomaticFunctionCallingConfig(disable=True),
        )
        if tools:
            config.tools = [types.Tool(function_declarations=[
                types.FunctionDeclaration(
                    name                  = t.name,
                    description           = t.description,
                    parameters_json_schema = t.parameters,
                )
                for t in tools
            ])]
            if tool_choice and tool_choice not in ("auto", "none"):
                config.tool_config = types.ToolConfig(
                    function_calling_config=types.FunctionCallingConfig(
                        mode                   = "ANY",
                        allowed_function_names = None if tool_choice == "required" else [tool_choice],
                    )
                )

        response = await self._client.aio.models.generate_content(
            model    = self._config.model,
            contents = contents,
            config   = config,
        )

        text  = []
        calls = []
        candidates = response.candidates or []
        parts = (candidates[0].content.parts or []) if candidates and candidates[0].content else []
        for i, part in enumerate(parts):
            if part.function_call is not None:
                fc = part.function_call
                calls.append(ToolCall(id=fc.id or f"call_{i}", name=fc.name, arguments=dict(fc.args or {})))
            elif part.text:
                text.append(part.text)

        usage = response.usage_metadata
        return ModelResponse(
            message       = ChatMessage(role="assistant", content="".join(text), tool_calls=calls),
            model_used    = self.model,
            tokens_input  = (usage.prompt_token_count or 0) if usage else 0,
            tokens_output = (usage.candidates_token_count or 0) if usage else 0,
        )


def build_credentials(config: ProviderConfig):
    # La clave suele llegar por variable de entorno con "\n" literales
    private_key = (config.vertex_private_key or "").replace("\\n", "\n")
    return service_account.Credentials.from_service_account_info(
        {
            "type":         "service_account",
            "project_id":   config.vertex_project,
            "client_email": config.vertex_client_email,
            "private_key":  private_key,
            "token_uri":    _TOKEN_URI,
        },
        scopes=_SCOPES,
    )


def to_vertex_contents(messages: list[ChatMessage]) -> tuple[str, list]:
    system   = []
    contents = []

    for m in messages:
        if m.role == "system":
            system.append(m.content)

        elif m.role == "tool":
            part = types.Part.from_function_response(name=m.name or "", response={"result": m.content})
            last = contents[-1] if contents else None
            if last is not None and last.role == "user" and all(p.function_response for p in last.parts):
                last.parts.append(part)
            else:
                contents.append(types.Content(role="user", parts=[part]))

        elif m.role == "assistant":
            parts = []
            if m.content:
                parts.append(types.Part.from_text(text=m.content))
            for call in m.tool_calls:
                args = decode_arguments(call, "google-vertex")
                # Vertex no acepta el id de la llamada; se empareja por nombre y orden
                parts.append(types.Part(function_call=types.FunctionCall(
                    name = call.name,
                    args = args if isinstance(args, dict) else {},
                )))
            contents.append(types.Content(role="model", parts=parts))

        else:
            contents.append(types.Content(role="user", parts=[types.Part.from_text(text=m.content)]))

    return "\n\n".join(system), contents
