# router/response_parser.py
import json
import logging
import re
from typing import Any

from harvester.errors import ProviderError
from harvester.router.models import ExtractionResult, ModelResponse, ToolCall
from harvester.router.tools import GET_MORE_CONTEXT, SET_CONTEXT

logger = logging.getLogger(__name__)

# Algunos modelos envuelven los argumentos en ```json ... ```
_MARKDOWN_JSON_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def decode_arguments(call: ToolCall, provider: str = "") -> Any:
    """
    Decodifica los argumentos de una tool call una sola vez.
    Los SDKs de Anthropic/Vertex ya entregan dict; OpenAI entrega str JSON.
    """
    raw = call.arguments
    if not isinstance(raw, str):
        return raw

    text = raw.strip()
    if not text:
        return {}

    try:
        return json.loads(text)
    except json.JSONDecodeError as first_error:
        match = _MARKDOWN_JSON_RE.search(text)
        if match:
            try:
                logger.warning("%s envolvió los argumentos de %s en markdown", provider, call.name)
                return json.loads(match.group(1))
            except json.JSONDecodeError:
                pass
        raise ProviderError(
            f"Argumentos de {call.name} no son JSON válido: {first_error}",
            provider=provider,
        ) from first_error


def extract_contexts(
    response:  ModelResponse,
    tool_name: str = SET_CONTEXT,
) -> list[ExtractionResult]:
    """
    [{id, context}] de todas las llamadas a la tool de extracción.
    Sin tool call → lista vacía, nunca excepción.
    """
    results = []
    for args in _calls_for(response, tool_name):
        for item in _items(args, "contexts", tool_name, response.model_used):
            results.append(ExtractionResult(
                string_id    = _require(item, "id", tool_name, response.model_used),
                context_text = _text(item, "context", tool_name, response.model_used),
            ))
    return results


def extract_errors(
    response:  ModelResponse,
    tool_name: str = GET_MORE_CONTEXT,
) -> list[ExtractionResult]:
    """Variante de validación: [{id, error}]."""
    results = []
    for args in _calls_for(response, tool_name):
        for item in _items(args, "strings", tool_name, response.model_used):
            results.append(ExtractionResult(
                string_id  = _require(item, "id", tool_name, response.model_used),
                error_text = _text(item, "error", tool_name, response.model_used),
            ))
    return results


def extract_single_text(call: ToolCall, field: str, provider: str = "") -> str:
    """Argumento de texto único de una tool terminal (return_context, return_description)."""
    args = decode_arguments(call, provider)
    if not isinstance(args, dict):
        raise ProviderError(f"{call.name} esperaba un objeto, recibió {type(args).__name__}", provider)
    return _text(args, field, call.name, provider).strip()


def id_key(value: Any) -> str:
    """
    Normaliza un id para compararlo: 1, 1.0 y "1" son el mismo string.
    Los modelos devuelven a veces floats donde el schema pide number.
    """
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


# ------------------------------------------------------------------
# Internos
# ------------------------------------------------------------------

def _calls_for(response: ModelResponse, tool_name: str):
    for call in response.tool_calls:
        if call.name != tool_name:
            logger.debug("Ignorando tool call inesperada %s de %s", call.name, response.model_used)
            continue
        yield decode_arguments(call, response.model_used)


def _items(args: Any, key: str, tool_name: str, provider: str) -> list[dict]:
    # Se tolera el array desnudo además de {key: [...]}
    items = args.get(key, []) if isinstance(args, dict) else args
    if items is None:
        return []
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise ProviderError(
            f"{tool_name}: se esperaba una lista de objetos en '{key}', recibido {args!r:.200}",
            provider,
        )
    return items


def _require(item: dict, field: str, tool_name: str, provider: str) -> Any:
    value = item.get(field)
    if value is None or isinstance(value, (dict, list, bool)):
        raise ProviderError(f"{tool_name}: '{field}' ausente o inválido en {item!r:.200}", provider)
    return value


def _text(item: dict, field: str, tool_name: str, provider: str) -> str:
    value = item.get(field, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ProviderError(f"{tool_name}: '{field}' debe ser texto, recibido {type(value).__name__}", provider)
    return value
