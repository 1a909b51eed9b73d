import pytest

from harvester.context.merge import (
    SECTION_END,
    SECTION_START,
    ResultKind,
    append_ai_context,
    apply_results,
    build_context_patch,
    build_reset_patch,
    has_ai_context,
    remove_ai_context,
)
from harvester.errors import MergeError
from harvester.processor.models import TranslatableString
from harvester.router.models import ExtractionResult


class TestAppend:

    def test_anade_seccion_al_final(self):
        out = append_ai_context("Some notes.", ["Used in header."])

        assert out == f"Some notes.\n\n{SECTION_START}\nUsed in header.\n{SECTION_END}"

    def test_idempotente(self):
        once  = append_ai_context("Some notes.", ["a", "b"])
        twice = append_ai_context(once, ["a", "b"])

        assert twice == once
        assert twice.count(SECTION_START) == 1

    def test_reemplaza_la_seccion_existente(self):
        first  = append_ai_context("Notes", ["old"])
        second = append_ai_context(first + "\nTrailing", ["new"])

        assert "old" not in second
        assert second.endswith(f"new\n{SECTION_END}\nTrailing")
        assert second.startswith("Notes\n\n")

    @pytest.mark.parametrize("context", [None, ""])
    def test_contexto_vacio(self, context):
        assert append_ai_context(context, ["x"]) == f"\n\n{SECTION_START}\nx\n{SECTION_END}"


class TestRemove:

    @pytest.mark.parametrize("context", ["Some notes.", "", "Line 1\nLine 2", "✨ suelto"])
    def test_round_trip(self, context):
        assert remove_ai_context(append_ai_context(context, ["Used in header.", "Second"])) == context

    def test_sin_marcadores_no_cambia(self):
        assert remove_ai_context("plain") == "plain"

    @pytest.mark.parametrize("context", [None, ""])
    def test_vacio_no_es_error(self, context):
        assert remove_ai_context(context) == context

    def test_conserva_texto_posterior(self):
        merged = append_ai_context("Before", ["x"]) + "\nAfter"
        assert remove_ai_context(merged) == "Before\nAfter"

    def test_solo_marcador_de_inicio_no_cambia(self):
        broken = f"Notes\n\n{SECTION_START}\nhalf"
        assert remove_ai_context(broken) == broken
        assert has_ai_context(broken) is False


class TestApplyResults:

    def test_agrega_fragmentos_por_id(self):
        strings = [TranslatableString(id=1, text="Save"), TranslatableString(id=2, text="Cancel")]

        added = apply_results(strings, [ExtractionResult(string_id=1, context_text="Used as a save button label")])

        assert added == 1
        assert strings[0].extracted_context == ["Used as a save button label"]
        assert strings[1].extracted_context == []

    def test_id_desconocido_se_descarta_sin_afectar_a_otros(self):
        strings = [TranslatableString(id=1, text="Save")]

        apply_results(strings, [
            ExtractionResult(string_id=99, context_text="ghost"),
            ExtractionResult(string_id=1.0, context_text="real"),
        ])

        assert strings[0].extracted_context == ["real"]

    def test_fragmentos_vacios_se_ignoran(self):
        strings = [TranslatableString(id="a", text="x")]

        added = apply_results(strings, [ExtractionResult(string_id="a", context_text="  ")])

        assert added == 0
        assert strings[0].extracted_context == []

    def test_modo_error(self):
        strings = [TranslatableString(id=1, text="Save")]

        apply_results(strings, [ExtractionResult(string_id="1", error_text="Gender unclear")], ResultKind.ERROR)

        assert strings[0].errors == ["Gender unclear"]
        assert strings[0].extracted_context == []

    def test_forma_inesperada_es_merge_error(self):
        with pytest.raises(MergeError):
            apply_results([TranslatableString(id=1, text="x")], [{"id": 1, "context": "x"}])


class TestPatches:

    def test_solo_strings_con_fragmentos(self):
        a = TranslatableString(id=1, text="Save", context="Notes")
        b = TranslatableString(id=2, text="Cancel")
        a.add_context("Used as button")

        ops = build_context_patch([a, b])

        assert ops == [{"op": "replace", "path": "/1/context", "value": append_ai_context("Notes", ["Used as button"])}]

    def test_upload_all_escribe_el_contexto_tal_cual(self):
        strings = [TranslatableString(id=1, text="a", context="Reviewed"), TranslatableString(id=2, text="b")]

        ops = build_context_patch(strings, upload_all=True)

        assert [o["value"] for o in ops] == ["Reviewed", ""]

    def test_reset_solo_los_que_tienen_seccion(self):
        with_ai = TranslatableString(id=1, text="a", context=append_ai_context("Human", ["AI"]))
        plain   = TranslatableString(id=2, text="b", context="Human only")

        ops = build_reset_patch([with_ai, plain])

        assert ops == [{"op": "replace", "path": "/1/context", "value": "Human"}]
