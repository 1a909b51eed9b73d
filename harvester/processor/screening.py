# processor/screening.py
import re
from enum import Enum

from harvester.processor.models import TranslatableString

# Saltos reales y las secuencias de escape literales \r y \n
_NEWLINES = re.compile(r"[\r\n]|\\r|\\n")


class ScreenMode(str, Enum):
    KEYS  = "keys"
    TEXTS = "texts"
    NONE  = "none"


def screen_strings(
    strings: list[TranslatableString],
    content: str,
    mode:    ScreenMode | str = ScreenMode.KEYS,
) -> list[TranslatableString]:
    """
    Deja solo los strings cuya key (o texto normalizado) aparece
    literalmente en el contenido. Conserva el orden de entrada.
    """
    mode = ScreenMode(mode)

    if mode is ScreenMode.NONE:
        return list(strings)

    if mode is ScreenMode.KEYS:
        return [s for s in strings if s.key and s.key in content]

    haystack = normalize_newlines(content)
    selected = []
    for s in strings:
        needle = normalize_newlines(s.text)
        if needle and needle in haystack:
            selected.append(s)
    return selected


def normalize_newlines(text: str) -> str:
    return _NEWLINES.sub("", text or "")
