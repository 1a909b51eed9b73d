# output/table.py
from typing import Optional, Sequence

from rich.console import Console
from rich.table import Table

from harvester.processor.models import TranslatableString

NOTICE = (
    "Se actualizarían {count} strings. Ten en cuenta que un modelo LLM puede "
    "devolver resultados distintos para la misma entrada en la próxima ejecución."
)
NO_CONTEXT_MESSAGE = "No se encontró contexto para ningún string."
NO_ERRORS_MESSAGE  = "No se encontraron problemas en ningún string."


def render_context_table(
    strings: Sequence[TranslatableString],
    console: Optional[Console] = None,
) -> int:
    """
    Dry run: key / texto / contexto nuevo de cada string con contexto extraído.
    Devuelve cuántas filas se mostraron.
    """
    console = console or Console()
    rows    = [s for s in strings if s.extracted_context]
    if not rows:
        console.print(NO_CONTEXT_MESSAGE)
        return 0

    table = Table(title="Strings con contexto IA", expand=True, show_lines=True)
    table.add_column("Key",         ratio=15, overflow="fold")
    table.add_column("Texto",       ratio=35, overflow="fold")
    table.add_column("Contexto IA", ratio=45, overflow="fold", style="green")
    for s in rows:
        table.add_row(s.key or "", s.text, "\n".join(s.extracted_context))

    console.print(table)
    console.print(f"\n{NOTICE.format(count=len(rows))}\n")
    return len(rows)


def render_errors_table(
    strings: Sequence[TranslatableString],
    console: Optional[Console] = None,
) -> int:
    """Variante check: muestra también el contexto actual junto a los problemas."""
    console = console or Console()
    rows    = [s for s in strings if s.errors]
    if not rows:
        console.print(NO_ERRORS_MESSAGE)
        return 0

    table = Table(title="Strings con errores", expand=True, show_lines=True)
    table.add_column("Key",      ratio=13, overflow="fold")
    table.add_column("Texto",    ratio=26, overflow="fold")
    table.add_column("Contexto", ratio=26, overflow="fold")
    table.add_column("Errores",  ratio=26, overflow="fold", style="yellow")
    for s in rows:
        table.add_row(s.key or "", s.text, s.context or "", "\n".join(s.errors))

    console.print(table)
    return len(rows)
