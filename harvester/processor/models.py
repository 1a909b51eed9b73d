# processor/models.py
from dataclasses import dataclass, field
from typing import Optional, Union

StringId = Union[int, str]


@dataclass
class TranslatableString:
    """
    Una unidad localizable tal como la devuelve el proyecto.
    `context` solo lo modifica el motor de merge; `extracted_context`
    acumula lo encontrado durante esta ejecución.
    """
    id:                StringId
    text:              str
    key:               Optional[str] = None
    context:           Optional[str] = None
    created_at:        Optional[str] = None
    extracted_context: list[str]     = field(default_factory=list)
    errors:            list[str]     = field(default_factory=list)

    def add_context(self, fragment: Optional[str]) -> bool:
        """Añade un fragmento no vacío. Devuelve False si se descartó."""
        if not isinstance(fragment, str) or not fragment.strip():
            return False
        self.extracted_context.append(fragment.strip())
        return True

    def add_error(self, error: Optional[str]) -> bool:
        if not isinstance(error, str) or not error.strip():
            return False
        self.errors.append(error.strip())
        return True

    @classmethod
    def from_api(cls, data: dict) -> "TranslatableString":
        """Construye desde el payload `data` de la API (identifier → key)."""
        text = data.get("text")
        if isinstance(text, dict):
            # strings plurales: la API devuelve un dict por forma
            text = text.get("other") or next(iter(text.values()), "")
        return cls(
            id         = data["id"],
            text       = text or "",
            key        = data.get("identifier"),
            context    = data.get("context"),
            created_at = data.get("createdAt"),
        )


@dataclass
class FileContent:
    """
    Un archivo local leído para extracción.
    `part`/`parts` solo difieren de 1/1 cuando el planner lo bisecó.
    """
    path:    str
    content: str
    part:    int = 1
    parts:   int = 1

    @property
    def is_fragment(self) -> bool:
        return self.parts > 1


@dataclass
class Container:
    """Archivo (proyecto normal) o branch (proyecto de strings)."""
    id:      int
    label:   str
    strings: list[TranslatableString] = field(default_factory=list)
