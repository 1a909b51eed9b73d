# output/csv_file.py
import csv
import logging
from pathlib import Path
from typing import Sequence

from harvester.errors import ConfigurationError, OutputError
from harvester.processor.models import TranslatableString

logger = logging.getLogger(__name__)

CONTEXT_FIELDS = ["id", "key", "text", "context", "aiContext"]
ERROR_FIELDS   = ["id", "key", "text", "context", "errors"]


def write_context_csv(strings: Sequence[TranslatableString], path: str) -> int:
    """Una fila por string con contexto nuevo. Sin filas no se escribe nada."""
    rows = [
        {
            "id":        s.id,
            "key":       s.key or "",
            "text":      s.text,
            "context":   s.context or "",
            "aiContext": "\n".join(s.extracted_context),
        }
        for s in strings if s.extracted_context
    ]
    return _write(path, CONTEXT_FIELDS, rows)


def write_errors_csv(strings: Sequence[TranslatableString], path: str) -> int:
    rows = [
        {
            "id":      s.id,
            "key":     s.key or "",
            "text":    s.text,
            "context": s.context or "",
            "errors":  "\n".join(s.errors),
        }
        for s in strings if s.errors
    ]
    return _write(path, ERROR_FIELDS, rows)


def read_strings_csv(path: str) -> tuple[list[TranslatableString], bool]:
    """
    Lee un CSV exportado/revisado. Devuelve los strings y si traía
    columna aiContext (si no, el upload es de contexto completo).
    Cada línea no vacía de aiContext es un fragmento.
    """
    try:
        with Path(path).open(encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            fields = reader.fieldnames or []
            rows   = list(reader)
    except (OSError, csv.Error, UnicodeDecodeError) as e:
        raise ConfigurationError(f"No se pudo leer el CSV {path}: {e}") from e

    if "id" not in fields:
        raise ConfigurationError(f"El CSV {path} no tiene columna 'id'")

    has_ai_column = "aiContext" in fields
    strings       = []
    for row in rows:
        string = TranslatableString(
            id      = _parse_id(row["id"]),
            text    = row.get("text") or "",
            key     = row.get("key") or None,
            context = row.get("context") or "",
        )
        if has_ai_column:
            for line in (row.get("aiContext") or "").split("\n"):
                string.add_context(line)
        strings.append(string)
    return strings, has_ai_column


def _write(path: str, fields: list[str], rows: list[dict]) -> int:
    if not rows:
        return 0
    try:
        with Path(path).open("w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fields)
            writer.writeheader()
            writer.writerows(rows)
    except OSError as e:
        raise OutputError(f"No se pudo escribir {path}: {e}") from e
    logger.info("%d filas escritas en %s", len(rows), path)
    return len(rows)


def _parse_id(value: str):
    value = (value or "").strip()
    return int(value) if value.isdigit() else value
