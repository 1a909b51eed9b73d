from dataclasses import dataclass, field
from itertools import product
from typing import Any, Iterator


@dataclass
class ChunkConfig:
    """Configuración del planner. Centralizada y explícita."""
    context_window:    int   = 128_000
    max_output_tokens: int   = 16_384
    strings_ratio:     float = 0.25   # fracción del output reservada a strings
    max_splits:        int   = 10     # 2**10 = 1024 fragmentos como máximo por archivo


@dataclass
class Budget:
    effective: int
    strings:   int
    files:     int


@dataclass
class Chunk:
    """
    Agrupación transitoria que cabe en una sola llamada al proveedor.
    `members` conserva el orden de inserción (id → payload).
    """
    members:          dict[Any, Any] = field(default_factory=dict)
    estimated_tokens: int            = 0
    oversized:        bool           = False   # un único miembro que ya excede el límite

    def __len__(self) -> int:
        return len(self.members)

    def payloads(self) -> list:
        return list(self.members.values())


@dataclass
class DroppedFragment:
    path:   str
    tokens: int


@dataclass
class ChunkPlan:
    string_chunks: list[Chunk]           = field(default_factory=list)
    file_chunks:   list[Chunk]           = field(default_factory=list)
    dropped:       list[DroppedFragment] = field(default_factory=list)

    def requests(self) -> Iterator[tuple[Chunk, Chunk]]:
        """Cada combinación strings × archivos es una petición al proveedor."""
        return product(self.string_chunks, self.file_chunks)

    @property
    def request_count(self) -> int:
        return len(self.string_chunks) * len(self.file_chunks)
