# harvester/progress.py
import time
from typing import Optional, Protocol

import click


class ProgressReporter(Protocol):
    """Puerto de progreso que recibe el pipeline; no escribe en la terminal por sí mismo."""

    def start(self, label: str, total: Optional[int] = None) -> None: ...

    def increment(self, n: int = 1, meta: Optional[dict] = None) -> None: ...

    def warn(self, message: str) -> None: ...

    def stop(self) -> None: ...


class NullProgress:
    """No-op. Valor por defecto del scheduler y de los tests."""

    def start(self, label: str, total: Optional[int] = None) -> None:
        pass

    def increment(self, n: int = 1, meta: Optional[dict] = None) -> None:
        pass

    def warn(self, message: str) -> None:
        pass

    def stop(self) -> None:
        pass


class ClickProgress:
    """
    Progreso en terminal con click.echo, una línea por avance:
    [harvester] Extrayendo contexto... 3/10 (30%) · 12.40k tokens · 5s
    """

    def __init__(self, prefix: str = "[harvester]", err: bool = False):
        self._prefix  = prefix
        self._err     = err
        self._label   = ""
        self._total   = None
        self._current = 0
        self._tokens  = 0
        self._started = None

    def start(self, label: str, total: Optional[int] = None) -> None:
        self._label   = label
        self._total   = total
        self._current = 0
        self._tokens  = 0
        self._started = time.monotonic()
        if total is None:
            self._echo(label)

    def increment(self, n: int = 1, meta: Optional[dict] = None) -> None:
        self._current += n
        self._tokens  += (meta or {}).get("tokens", 0)

        parts = [f"{self._label} {self._current}"]
        if self._total:
            percent   = int(self._current / self._total * 100)
            parts[0] += f"/{self._total} ({percent}%)"
        if self._tokens:
            parts.append(f"{format_tokens(self._tokens)} tokens")
        parts.append(format_duration(self.elapsed))
        self._echo(" · ".join(parts))

    def warn(self, message: str) -> None:
        click.echo(click.style(f"{self._prefix} ⚠ {message}", fg="yellow"), err=True)

    def stop(self) -> None:
        self._label = ""

    @property
    def elapsed(self) -> float:
        return 0.0 if self._started is None else time.monotonic() - self._started

    def _echo(self, message: str) -> None:
        click.echo(f"{self._prefix} {message}", err=self._err)


def format_tokens(count) -> str:
    n = int(count or 0)
    if n >= 1_000_000:
        return f"{n / 1_000_000:.2f}M"
    if n >= 1_000:
        return f"{n / 1_000:.2f}k"
    return str(n)


def format_duration(seconds: float) -> str:
    total   = round(seconds)
    hours   = total // 3600
    minutes = (total % 3600) // 60
    parts   = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{total % 60}s")
    return " ".join(parts)
