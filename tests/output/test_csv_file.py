import csv

import pytest

from harvester.errors import ConfigurationError
from harvester.output.csv_file import read_strings_csv, write_context_csv, write_errors_csv
from harvester.processor.models import TranslatableString


def strings_with_context():
    a = TranslatableString(id=1, text="Save", key="btn.save", context="Notes")
    b = TranslatableString(id=2, text="Cancel", key="btn.cancel")
    a.add_context("Used as button")
    a.add_context("Shown in the footer")
    return [a, b]


class TestWrite:

    def test_solo_filas_con_contexto(self, tmp_path):
        path = tmp_path / "out.csv"

        count = write_context_csv(strings_with_context(), str(path))

        with path.open(encoding="utf-8", newline="") as f:
            rows = list(csv.DictReader(f))
        assert count == 1
        assert rows == [{
            "id": "1", "key": "btn.save", "text": "Save", "context": "Notes",
            "aiContext": "Used as button\nShown in the footer",
        }]

    def test_sin_filas_no_crea_archivo(self, tmp_path):
        path = tmp_path / "out.csv"

        assert write_context_csv([TranslatableString(id=1, text="x")], str(path)) == 0
        assert not path.exists()

    def test_errores(self, tmp_path):
        s = TranslatableString(id="abc", text="Guardar")
        s.add_error("Too long for a button")
        path = tmp_path / "errors.csv"

        assert write_errors_csv([s], str(path)) == 1
        assert "Too long for a button" in path.read_text(encoding="utf-8")


class TestRead:

    def test_lee_lo_que_escribe(self, tmp_path):
        path = tmp_path / "out.csv"
        write_context_csv(strings_with_context(), str(path))

        strings, has_ai = read_strings_csv(str(path))

        assert has_ai is True
        assert strings[0].id == 1
        assert strings[0].extracted_context == ["Used as button", "Shown in the footer"]

    def test_sin_columna_ai(self, tmp_path):
        path = tmp_path / "reviewed.csv"
        path.write_text("id,key,text,context\nk-1,a,Save,Reviewed by hand\n", encoding="utf-8")

        strings, has_ai = read_strings_csv(str(path))

        assert has_ai is False
        assert strings[0].id == "k-1"
        assert strings[0].context == "Reviewed by hand"

    def test_sin_columna_id(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("key,text\na,b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            read_strings_csv(str(path))

    def test_archivo_inexistente(self, tmp_path):
        with pytest.raises(ConfigurationError):
            read_strings_csv(str(tmp_path / "missing.csv"))
