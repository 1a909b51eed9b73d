# router/prompt_builder.py
import json
import re
import sys
from pathlib import Path
from typing import Optional, Sequence, TextIO

from harvester.errors import ConfigurationError
from harvester.processor.models import FileContent, TranslatableString
from harvester.router.models import ChatMessage

STRINGS_PLACEHOLDER   = "%strings%"
CODE_PLACEHOLDER      = "%code%"
LANGUAGES_PLACEHOLDER = "%targetLanguages%"
STRING_PLACEHOLDER    = "%string%"
WORKDIR_PLACEHOLDER   = "%working_dir%"

STDIN_SENTINEL = "-"


EXTRACT_SYSTEM = "You are a helpful assistant who extracts context from code for UI labels."

DEFAULT_EXTRACT_PROMPT = """\
Extract the context for the following UI labels.

 - Context is useful information for linguists or an AI translating these texts about how the text is used in the project they are localizing or when it appears in the UI.
 - Only provide context if exact matches of the strings or keys are found in the code.
 - If no matches are found, do not provide context.
 - Only return context if you find a key or text usage in the code.
 - Any context provided should start with 'Used as...' or 'Appears as...'.
 - Always call the setContext tool to return the context.

Strings:
%strings%

Code:
%code%"""

AGENT_SYSTEM = """\
You are a code-reading assistant that helps translators. You can inspect the \
local project with the glob, grep, ls and read tools. Work in %working_dir%. \
Search efficiently: prefer grep for keys and texts, read only the lines you need."""

DEFAULT_AGENT_PROMPT = """\
Find how the following UI string is used in the local project and describe its context for translators.

 - Search the code for the string key first, then for its text.
 - Context is useful information for linguists about where and how the text appears in the UI \
(button, title, tooltip, error message…), what the placeholders stand for and any length constraints.
 - Only describe usages you actually found in the code. If you find nothing relevant, call return_context with an empty text.
 - The context should start with 'Used as...' or 'Appears as...'.
 - When done, call the return_context tool with the final text.

String (serialised as JSON):
%string%"""

CHECK_SYSTEM = "You are helpful translator's assistant."

DEFAULT_CHECK_PROMPT = """\
You are working on a list of strings. Each strings has text and context. Context is useful information that should be used to provide high-quality translation.

Check if each string has enough information to provide unequivocal high-quality translation for each project target language. Use getMoreContext function to get more information about string if needed for unequivocal high-quality translation. Describe what information can be useful for translation and what problems can emerge with translation.

Project target languages: %targetLanguages%.

Strings (serialised as JSON):
%strings%
"""

DEFAULT_DESCRIBE_PROMPT = """\
You are generating a translator-oriented description by analyzing the local project in %working_dir%.

Goals:
- Help translators quickly understand what this project is about and how to translate it safely and consistently.
- Prefer concrete facts found in code, configurations, and scripts; if uncertain, omit.
- Do not reference specific string keys/texts or file paths; keep the description general and product-level.

Deliverable:
- One cohesive description in plain prose (6-12 sentences, 1-2 short paragraphs). No lists, no headings, no bullet points.

Cover, when evident from the project, in natural prose:
- What the project does, who uses it, and its main features/workflows at a high level.
- Tech stack and any i18n-relevant libraries/frameworks (e.g., ICU, i18next, formatjs), only if clearly present.
- Placeholders/formatting that translators must preserve: variable tokens (e.g., {{name}}, %s), HTML/Markdown, ICU MessageFormat, dates/numbers.
- Plurals/gender, capitalization, punctuation, length/space constraints, or RTL/localization specifics if applicable.
- Tone/voice and terminology cues; mention product/brand names and items that must not be translated.

When ready, call the return_description tool with the final text."""


# ------------------------------------------------------------------
# Plantillas
# ------------------------------------------------------------------

def load_prompt(prompt_file: Optional[str], default: str, stdin: Optional[TextIO] = None) -> str:
    """
    Devuelve la plantilla del usuario o la por defecto.
    "-" lee la plantilla de la entrada estándar.
    """
    if not prompt_file:
        return default
    try:
        if prompt_file == STDIN_SENTINEL:
            return (stdin or sys.stdin).read()
        return Path(prompt_file).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"No se pudo leer el prompt {prompt_file}: {e}") from e


def render(template: str, values: dict[str, str]) -> str:
    """
    Sustituye todos los placeholders en una sola pasada, de modo que un
    payload que contenga "%code%" literal nunca se vuelve a sustituir.
    """
    if not values:
        return template
    pattern = re.compile("|".join(re.escape(k) for k in values))
    return pattern.sub(lambda m: values[m.group(0)], template)


# ------------------------------------------------------------------
# Serialización
# ------------------------------------------------------------------

def serialize_string(string: TranslatableString) -> dict:
    # Solo lo que le sirve al modelo; fechas y bookkeeping fuera
    return {
        "id":      string.id,
        "text":    string.text,
        "key":     string.key,
        "context": string.context,
    }


def serialize_strings(strings: Sequence[TranslatableString]) -> str:
    return json.dumps([serialize_string(s) for s in strings], ensure_ascii=False, indent=2)


def serialize_files(files: Sequence[FileContent]) -> str:
    blocks = []
    for f in files:
        header = f"File: {f.path}"
        if f.is_fragment:
            header += f" (part {f.part}/{f.parts})"
        blocks.append(f"{header}\n```\n{f.content}\n```")
    return "\n\n".join(blocks)


# ------------------------------------------------------------------
# Mensajes
# ------------------------------------------------------------------

def build_extract_messages(
    template: str,
    strings:  Sequence[TranslatableString],
    files:    Sequence[FileContent],
    system:   str = EXTRACT_SYSTEM,
) -> list[ChatMessage]:
    user = render(template, {
        STRINGS_PLACEHOLDER: serialize_strings(strings),
        CODE_PLACEHOLDER:    serialize_files(files),
    })
    return [ChatMessage.system(system), ChatMessage.user(user)]


def build_check_messages(
    template:         str,
    strings:          Sequence[TranslatableString],
    target_languages: Sequence[str],
    system:           str = CHECK_SYSTEM,
) -> list[ChatMessage]:
    user = render(template, {
        STRINGS_PLACEHOLDER:   serialize_strings(strings),
        LANGUAGES_PLACEHOLDER: ", ".join(target_languages),
    })
    return [ChatMessage.system(system), ChatMessage.user(user)]


def build_agent_messages(
    template:    str,
    string:      Optional[TranslatableString],
    working_dir: str,
    system:      str = AGENT_SYSTEM,
) -> list[ChatMessage]:
    """Mensajes del modo agente: un string por tarea (o ninguno para describe)."""
    values = {WORKDIR_PLACEHOLDER: working_dir}
    if string is not None:
        values[STRING_PLACEHOLDER] = json.dumps(serialize_string(string), ensure_ascii=False, indent=2)
    return [
        ChatMessage.system(render(system, {WORKDIR_PLACEHOLDER: working_dir})),
        ChatMessage.user(render(template, values)),
    ]


def template_tokens(template: str, system: str, estimate) -> int:
    """Tokens fijos de la plantilla sin payloads (lo que el planner reserva)."""
    bare = render(template, {
        STRINGS_PLACEHOLDER:   "",
        CODE_PLACEHOLDER:      "",
        LANGUAGES_PLACEHOLDER: "",
    })
    return estimate(system + "\n\n" + bare)
