# processor/files.py
import fnmatch
import glob
import logging
import os
from typing import Optional

from harvester.processor.models import FileContent

logger = logging.getLogger(__name__)

PATTERN_SEPARATOR = ";"


def split_patterns(value: Optional[str]) -> list[str]:
    return [p.strip() for p in (value or "").split(PATTERN_SEPARATOR) if p.strip()]


def discover_files(
    include: str,
    ignore:  Optional[str] = None,
    root:    str           = ".",
) -> list[str]:
    """
    Resuelve los globs de inclusión (recursivos con **) relativos a root
    y descarta los que casan con algún patrón de ignore.
    Devuelve rutas únicas en orden alfabético.
    """
    ignores = split_patterns(ignore)
    found   = set()

    for pattern in split_patterns(include):
        for path in glob.glob(pattern, root_dir=root, recursive=True):
            if not os.path.isfile(os.path.join(root, path)):
                continue
            normalized = path.replace(os.sep, "/")
            if any(_ignored(normalized, p) for p in ignores):
                continue
            found.add(normalized)

    return sorted(found)


def read_files(paths: list[str], root: str = ".") -> tuple[list[FileContent], list[str]]:
    """
    Lee cada archivo como UTF-8. Un archivo ilegible se salta con aviso
    y se devuelve en la lista de saltados.
    """
    files   = []
    skipped = []
    for path in paths:
        try:
            with open(os.path.join(root, path), encoding="utf-8") as f:
                files.append(FileContent(path=path, content=f.read()))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("No se pudo leer %s: %s", path, e)
            skipped.append(path)
    return files, skipped


def _ignored(path: str, pattern: str) -> bool:
    if fnmatch.fnmatch(path, pattern):
        return True
    # "**/node_modules/**" debe casar también en la raíz
    if pattern.startswith("**/") and fnmatch.fnmatch(path, pattern[3:]):
        return True
    return False
