# workspace/tools.py
import fnmatch
import glob as globlib
import logging
import os
import re
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Optional

from harvester.router.models import ToolSpec

logger = logging.getLogger(__name__)

GLOB_DISPLAY_LIMIT  = 100
GLOB_SEARCH_LIMIT   = 10_000
GREP_HEAD_LIMIT     = 250
LS_MAX_TYPES        = 5
LS_MAX_FILES        = 10_000
READ_DEFAULT_LIMIT  = 250
READ_MAX_LIMIT      = 750

# Directorios que grep no recorre (equivalente a lo que ignora un .gitignore típico)
_GREP_SKIP_DIRS = {".git", "node_modules", ".venv", "__pycache__", ".hg", ".svn"}


class WorkspaceTools:
    """
    Herramientas de solo lectura que el agente usa para inspeccionar
    el repositorio local: glob, grep, ls y read.
    Los errores se devuelven como texto al modelo, nunca se lanzan.
    """

    def __init__(self, root: str = "."):
        self._root = Path(root).resolve()
        self._handlers: dict[str, Callable[..., str]] = {
            "glob": self.glob,
            "grep": self.grep,
            "ls":   self.ls,
            "read": self.read,
        }

    @property
    def root(self) -> Path:
        return self._root

    @property
    def names(self) -> set[str]:
        return set(self._handlers)

    def call(self, name: str, arguments: Any) -> str:
        handler = self._handlers.get(name)
        if handler is None:
            return f"Unknown tool '{name}'"
        if not isinstance(arguments, dict):
            return f"Invalid arguments for '{name}': expected an object"
        try:
            return handler(**arguments)
        except TypeError as e:
            return f"Invalid arguments for '{name}': {e}"
        except (OSError, ValueError, re.error) as e:
            logger.debug("Tool %s falló: %s", name, e)
            return f"Error: {e}"

    # ------------------------------------------------------------------
    # glob
    # ------------------------------------------------------------------

    def glob(self, glob_pattern: str, target_directory: Optional[str] = None) -> str:
        base    = self._resolve(target_directory or ".")
        matches = []
        for path in globlib.iglob(glob_pattern, root_dir=base, recursive=True, include_hidden=True):
            matches.append(path.replace(os.sep, "/"))
            if len(matches) >= GLOB_SEARCH_LIMIT:
                break

        matches.sort()
        visible = matches[:GLOB_DISPLAY_LIMIT]
        rel     = self._relative(base)
        label   = f"./{rel}" if rel else "."

        lines = [f"Result of search in '{label}':"]
        lines.extend(f"- {rel}/{p}" if rel else f"- {p}" for p in visible)
        hidden = len(matches) - len(visible)
        if hidden > 0:
            lines.append(f"... at least {hidden} more files ... (Do a more specific search if needed)")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # grep
    # ------------------------------------------------------------------

    def grep(
        self,
        pattern:     str,
        path:        Optional[str]  = None,
        glob:        Optional[str]  = None,
        output_mode: str            = "content",
        head_limit:  Optional[int]  = None,
        multiline:   bool           = False,
        **flags,
    ) -> str:
        re_flags = re.IGNORECASE if flags.get("-i") else 0
        if multiline:
            re_flags |= re.MULTILINE | re.DOTALL
        regex = re.compile(pattern, re_flags)

        context = flags.get("-C")
        before  = flags.get("-B", context) or 0
        after   = flags.get("-A", context) or 0

        output = []
        for file in self._grep_candidates(self._resolve(path or "."), glob):
            try:
                text = file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue

            hits = _matching_lines(regex, text, multiline)
            if not hits:
                continue

            shown = self._relative(file)
            if output_mode == "files_with_matches":
                output.append(shown)
            elif output_mode == "count":
                output.append(f"{shown}:{len(hits)}")
            else:
                if output:
                    output.append("")
                output.append(shown)
                output.extend(_format_hits(text.splitlines(), hits, before, after))

        limit     = min(head_limit or GREP_HEAD_LIMIT, GREP_HEAD_LIMIT)
        truncated = len(output) - limit
        if truncated > 0:
            output = output[:limit] + ["", f"... [{truncated} lines truncated] ..."]
        return "\n".join(output) if output else "No matches found"

    def _grep_candidates(self, base: Path, include: Optional[str]):
        if base.is_file():
            yield base
            return
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = sorted(d for d in dirnames if d not in _GREP_SKIP_DIRS)
            for name in sorted(filenames):
                full = Path(dirpath) / name
                if include and not (
                    fnmatch.fnmatch(name, include)
                    or fnmatch.fnmatch(self._relative(full), include)
                ):
                    continue
                yield full

    # ------------------------------------------------------------------
    # ls
    # ------------------------------------------------------------------

    def ls(self, path: str = ".", ignore: Optional[list[str]] = None) -> str:
        ignore = ignore or []
        base   = self._resolve(path)
        if not base.is_dir():
            return f"Unable to read directory: {path}"

        entries = sorted(
            (e for e in base.iterdir() if not _ignored(e, ignore)),
            key=lambda e: e.name,
        )
        lines = [str(base) + os.sep]
        for entry in entries:
            if entry.is_dir():
                lines.append(f"  - {entry.name}/")
                total, counts = _directory_stats(entry, ignore)
                lines.append(f"    {_format_ext_summary(total, counts)}")
            else:
                lines.append(f"  - {entry.name}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # read
    # ------------------------------------------------------------------

    def read(self, path: str, offset: Optional[int] = None, limit: Optional[int] = None) -> str:
        lines = self._resolve(path).read_text(encoding="utf-8").splitlines()
        total = len(lines)
        limit = max(1, min(limit or READ_DEFAULT_LIMIT, READ_MAX_LIMIT))
        start = max(1, offset or 1)
        end   = min(total, start + limit - 1)
        width = max(6, len(str(total)))

        result = []
        if start > 1:
            result.append(f"... {start - 1} lines not shown ...")
        for number in range(start, end + 1):
            result.append(f"{str(number).rjust(width)}|{lines[number - 1]}")
        if end < total:
            result.append(f"... {total - end} lines not shown ...")
        return "\n".join(result)

    # ------------------------------------------------------------------
    # Esquemas
    # ------------------------------------------------------------------

    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(
                name        = "glob",
                description = "Find files by glob pattern",
                parameters  = _object({
                    "target_directory": {"type": "string", "description": "Directory to search (defaults to workspace root)"},
                    "glob_pattern":     {"type": "string", "description": 'Glob pattern (e.g., "**/*.js")'},
                }, required=["glob_pattern"]),
            ),
            ToolSpec(
                name        = "grep",
                description = "Search file contents with a regular expression",
                parameters  = _object({
                    "pattern":     {"type": "string", "description": "Regex pattern"},
                    "path":        {"type": "string", "description": "File or directory to search"},
                    "glob":        {"type": "string", "description": "Glob to include files"},
                    "output_mode": {"type": "string", "enum": ["content", "files_with_matches", "count"]},
                    "-B":          {"type": "number", "description": "Lines before match"},
                    "-A":          {"type": "number", "description": "Lines after match"},
                    "-C":          {"type": "number", "description": "Lines before/after match"},
                    "-i":          {"type": "boolean", "description": "Case-insensitive"},
                    "head_limit":  {
                        "type": "number", "minimum": 1, "maximum": GREP_HEAD_LIMIT,
                        "description": f"Limit number of results (default {GREP_HEAD_LIMIT}, maximum {GREP_HEAD_LIMIT})",
                    },
                    "multiline":   {"type": "boolean", "description": "Enable multiline dotall mode"},
                }, required=["pattern"]),
            ),
            ToolSpec(
                name        = "ls",
                description = "List directory entries",
                parameters  = _object({
                    "path":   {"type": "string", "description": "Directory to list"},
                    "ignore": {"type": "array", "items": {"type": "string"}, "description": "Glob patterns to ignore"},
                }, required=["path"]),
            ),
            ToolSpec(
                name        = "read",
                description = "Read file contents",
                parameters  = _object({
                    "path":   {"type": "string", "description": "File path to read"},
                    "offset": {"type": "number", "minimum": 1, "description": "Line number to start from"},
                    "limit":  {
                        "type": "number", "minimum": 1, "maximum": READ_MAX_LIMIT,
                        "description": f"Number of lines to read (default {READ_DEFAULT_LIMIT}, maximum {READ_MAX_LIMIT})",
                    },
                }, required=["path"]),
            ),
        ]

    # ------------------------------------------------------------------
    # Rutas
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self._root / candidate
        return candidate.resolve()

    def _relative(self, path: Path) -> str:
        try:
            rel = path.resolve().relative_to(self._root)
        except ValueError:
            return str(path)
        rel = rel.as_posix()
        return "" if rel == "." else rel


def _object(properties: dict, required: list[str]) -> dict:
    return {"type": "object", "properties": properties, "required": required}


def _matching_lines(regex: re.Pattern, text: str, multiline: bool) -> list[int]:
    """Índices (base 0) de las líneas donde empieza cada coincidencia."""
    if multiline:
        starts = sorted({text.count("\n", 0, m.start()) for m in regex.finditer(text)})
        return starts
    return [i for i, line in enumerate(text.splitlines()) if regex.search(line)]


def _format_hits(lines: list[str], hits: list[int], before: int, after: int) -> list[str]:
    hit_set = set(hits)
    shown   = []
    last    = -1
    for hit in hits:
        start = max(0, hit - int(before), last + 1)
        end   = min(len(lines) - 1, hit + int(after))
        if last >= 0 and start > last + 1:
            shown.append("--")
        for i in range(start, end + 1):
            sep = ":" if i in hit_set else "-"
            shown.append(f"{i + 1}{sep}{lines[i]}")
        last = max(last, end)
    return shown


def _ignored(path: Path, patterns: list[str]) -> bool:
    return any(fnmatch.fnmatch(str(path), p) or fnmatch.fnmatch(path.name, p) for p in patterns)


def _directory_stats(directory: Path, ignore: list[str]) -> tuple[int, Counter]:
    total  = 0
    counts = Counter()
    stack  = [directory]
    while stack and total < LS_MAX_FILES:
        current = stack.pop()
        try:
            entries = list(current.iterdir())
        except OSError:
            continue
        for entry in entries:
            if _ignored(entry, ignore):
                continue
            if entry.is_dir():
                stack.append(entry)
            elif entry.is_file():
                total += 1
                counts[f"*{entry.suffix}" if entry.suffix else "*no-ext"] += 1
                if total >= LS_MAX_FILES:
                    break
    return total, counts


def _format_ext_summary(total: int, counts: Counter) -> str:
    if total == 0:
        return "[0 files in subtree]"
    items   = [f"{count} {ext}" for ext, count in counts.most_common()]
    visible = items[:LS_MAX_TYPES]
    suffix  = ", ..." if len(items) > len(visible) else ""
    return f"[{total} files in subtree: {', '.join(visible)}{suffix}]"
