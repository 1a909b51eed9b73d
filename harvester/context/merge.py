# context/merge.py
import logging
from enum import Enum
from typing import Iterable, Optional, Sequence

from harvester.errors import MergeError
from harvester.processor.models import TranslatableString
from harvester.router.models import ExtractionResult
from harvester.router.response_parser import id_key

logger = logging.getLogger(__name__)

SECTION_START = "✨ AI Context"
SECTION_END   = "✨ 🔚"

_OPEN  = f"\n\n{SECTION_START}\n"
_CLOSE = f"\n{SECTION_END}"


class ResultKind(str, Enum):
    CONTEXT = "context"
    ERROR   = "error"


def _section_bounds(context: str) -> Optional[tuple[int, int]]:
    """(inicio, fin) de la sección IA con sus marcadores, o None si no está completa."""
    start = context.find(_OPEN)
    if start == -1:
        return None
    end = context.find(_CLOSE, start + len(_OPEN))
    if end == -1:
        return None
    return start, end + len(_CLOSE)


def has_ai_context(context: Optional[str]) -> bool:
    return bool(context) and _section_bounds(context) is not None


def append_ai_context(context: Optional[str], fragments: Sequence[str]) -> str:
    """
    Sustituye la sección IA si ya existe; si no, la añade al final.
    Aplicarlo dos veces con los mismos fragmentos da el mismo resultado.
    """
    context = context or ""
    section = _OPEN + "\n".join(fragments) + _CLOSE

    bounds = _section_bounds(context)
    if bounds is None:
        return context + section
    start, end = bounds
    return context[:start] + section + context[end:]


def remove_ai_context(context: Optional[str]) -> Optional[str]:
    """Quita la sección IA (marcadores y línea en blanco previa incluidos)."""
    if not context:
        return context
    bounds = _section_bounds(context)
    if bounds is None:
        return context
    start, end = bounds
    return context[:start] + context[end:]


def apply_results(
    strings: Iterable[TranslatableString],
    results: Iterable[ExtractionResult],
    kind:    ResultKind = ResultKind.CONTEXT,
) -> int:
    """
    Vuelca los resultados normalizados en los strings de esta ejecución.
    Ids desconocidos se descartan. Devuelve cuántos fragmentos se añadieron.
    """
    by_id = {id_key(s.id): s for s in strings}
    added = 0

    for result in results:
        if not isinstance(result, ExtractionResult):
            raise MergeError(f"Resultado con forma inesperada: {result!r:.200}")

        target = by_id.get(id_key(result.string_id))
        if target is None:
            logger.debug("Resultado para id desconocido %r descartado", result.string_id)
            continue

        text = result.context_text if kind is ResultKind.CONTEXT else result.error_text
        if text is not None and not isinstance(text, str):
            raise MergeError(f"Texto no válido para el string {target.id}: {text!r:.200}")

        if kind is ResultKind.CONTEXT:
            added += target.add_context(text)
        else:
            added += target.add_error(text)

    return added


def build_context_patch(
    strings:    Iterable[TranslatableString],
    upload_all: bool = False,
) -> list[dict]:
    """
    Operaciones JSON-Patch para el batch del proyecto.
    En upload_all se escribe `context` tal cual, sin marcadores.
    """
    operations = []
    for s in strings:
        if upload_all:
            value = s.context or ""
        elif s.extracted_context:
            value = append_ai_context(s.context, s.extracted_context)
        else:
            continue
        operations.append({"op": "replace", "path": f"/{s.id}/context", "value": value})
    return operations


def build_reset_patch(strings: Iterable[TranslatableString]) -> list[dict]:
    """Strings con sección IA → su contexto sin ella."""
    return [
        {"op": "replace", "path": f"/{s.id}/context", "value": remove_ai_context(s.context) or ""}
        for s in strings
        if s.context and SECTION_END in s.context
    ]
