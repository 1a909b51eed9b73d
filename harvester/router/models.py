# router/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from harvester.processor.models import StringId


class ProviderKind(str, Enum):
    CROWDIN   = "crowdin"
    OPENAI    = "openai"
    ANTHROPIC = "anthropic"
    MISTRAL   = "mistral"
    AZURE     = "azure"
    VERTEX    = "google-vertex"


@dataclass
class ProviderConfig:
    """
    Configuración del proveedor de IA.
    Se arma desde opciones del CLI, entorno y ~/.harvester/config.yaml.
    """
    provider:                ProviderKind
    model:                   str            = "gpt-4o"
    api_key:                 Optional[str]  = None
    base_url:                Optional[str]  = None
    crowdin_ai_id:           Optional[int]  = None
    azure_resource_name:     Optional[str]  = None
    azure_deployment_name:   Optional[str]  = None
    azure_api_version:       str            = "2024-10-21"
    vertex_project:          Optional[str]  = None
    vertex_location:         Optional[str]  = None
    vertex_client_email:     Optional[str]  = None
    vertex_private_key:      Optional[str]  = None
    timeout_seconds:         int            = 120
    max_retries:             int            = 3
    context_window:          int            = 128_000
    max_output_tokens:       int            = 16_384


# ------------------------------------------------------------------
# Mensajes neutrales: cada adaptador los traduce a su SDK
# ------------------------------------------------------------------

@dataclass
class ToolCall:
    id:        str
    name:      str
    arguments: Any   # dict ya decodificado o str JSON crudo, según el SDK


@dataclass
class ChatMessage:
    role:         str                        # system | user | assistant | tool
    content:      str                        = ""
    tool_calls:   list[ToolCall]             = field(default_factory=list)
    tool_call_id: Optional[str]              = None
    name:         Optional[str]              = None

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content)

    @classmethod
    def tool_result(cls, call: ToolCall, content: str) -> "ChatMessage":
        return cls(role="tool", content=content, tool_call_id=call.id, name=call.name)


@dataclass
class ToolSpec:
    name:        str
    description: str
    parameters:  dict   # JSON schema del objeto de argumentos


@dataclass
class ModelResponse:
    message:       ChatMessage
    model_used:    str
    tokens_input:  int = 0
    tokens_output: int = 0

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self.message.tool_calls

    @property
    def tokens_total(self) -> int:
        return self.tokens_input + self.tokens_output


@dataclass
class ExtractionResult:
    string_id:    StringId
    context_text: Optional[str] = None
    error_text:   Optional[str] = None
