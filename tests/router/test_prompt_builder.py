import io
import json

import pytest

from harvester.errors import ConfigurationError
from harvester.processor.models import FileContent, TranslatableString
from harvester.router.prompt_builder import (
    DEFAULT_EXTRACT_PROMPT,
    EXTRACT_SYSTEM,
    build_agent_messages,
    build_check_messages,
    build_extract_messages,
    load_prompt,
    render,
    serialize_files,
    serialize_string,
    serialize_strings,
    template_tokens,
)


def sample_string(**kwargs) -> TranslatableString:
    values = dict(id=1, text="Save", key="btn.save", context="Toolbar", created_at="2024-01-01T00:00:00+00:00")
    values.update(kwargs)
    return TranslatableString(**values)


class TestRender:

    def test_sustituye_todos_los_placeholders(self):
        out = render("S: %strings%\nC: %code%", {"%strings%": "uno", "%code%": "dos"})
        assert out == "S: uno\nC: dos"

    def test_payload_con_placeholder_no_se_resustituye(self):
        out = render("%strings% | %code%", {"%strings%": "%code%", "%code%": "X"})
        assert out == "%code% | X"

    def test_sin_valores_devuelve_la_plantilla(self):
        assert render("hola %code%", {}) == "hola %code%"


class TestSerializacion:

    def test_string_solo_lleva_campos_utiles(self):
        s = sample_string()
        s.add_context("Used as a button")

        assert serialize_string(s) == {"id": 1, "text": "Save", "key": "btn.save", "context": "Toolbar"}

    def test_strings_conserva_orden_y_unicode(self):
        strings = [sample_string(id=2, text="Guardar ñ"), sample_string(id=1)]

        data = json.loads(serialize_strings(strings))

        assert [d["id"] for d in data] == [2, 1]
        assert "Guardar ñ" in serialize_strings(strings)

    def test_archivos_llevan_cabecera_con_ruta(self):
        out = serialize_files([FileContent("src/a.js", "let a;"), FileContent("src/b.js", "let b;", part=2, parts=3)])

        assert "File: src/a.js\n```\nlet a;\n```" in out
        assert "File: src/b.js (part 2/3)" in out
        assert out.index("src/a.js") < out.index("src/b.js")


class TestLoadPrompt:

    def test_sin_archivo_usa_el_default(self):
        assert load_prompt(None, "DEFAULT") == "DEFAULT"

    def test_guion_lee_stdin(self):
        assert load_prompt("-", "DEFAULT", stdin=io.StringIO("desde stdin")) == "desde stdin"

    def test_lee_archivo(self, tmp_path):
        path = tmp_path / "prompt.txt"
        path.write_text("mi prompt %strings%", encoding="utf-8")

        assert load_prompt(str(path), "DEFAULT") == "mi prompt %strings%"

    def test_archivo_inexistente_es_error_de_configuracion(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_prompt(str(tmp_path / "no-existe.txt"), "DEFAULT")


class TestMensajes:

    def test_extract_produce_system_y_user(self):
        messages = build_extract_messages(
            DEFAULT_EXTRACT_PROMPT, [sample_string()], [FileContent("a.js", "t('btn.save')")],
        )

        assert [m.role for m in messages] == ["system", "user"]
        assert messages[0].content == EXTRACT_SYSTEM
        assert '"btn.save"' in messages[1].content
        assert "t('btn.save')" in messages[1].content
        assert "%strings%" not in messages[1].content
        assert "%code%" not in messages[1].content

    def test_check_incluye_idiomas(self):
        messages = build_check_messages("Langs: %targetLanguages%\n%strings%", [sample_string()], ["German", "French"])

        assert messages[1].content.startswith("Langs: German, French")

    def test_agente_sustituye_string_y_directorio(self):
        messages = build_agent_messages("Dir %working_dir%\n%string%", sample_string(), "/repo", system="En %working_dir%")

        assert messages[0].content == "En /repo"
        assert messages[1].content.startswith("Dir /repo")
        assert json.loads(messages[1].content.split("\n", 1)[1])["key"] == "btn.save"

    def test_tokens_de_plantilla_excluyen_payloads(self):
        tokens = template_tokens("abc%strings%def%code%", "sys", lambda text: len(text))

        assert tokens == len("sys\n\nabcdef")
