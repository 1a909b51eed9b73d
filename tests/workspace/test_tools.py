import pytest

from harvester.workspace.tools import WorkspaceTools


@pytest.fixture
def repo(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.js").write_text(
        "import t from 'i18n';\nconst a = t('btn.save');\nconst b = t('btn.cancel');\n", encoding="utf-8",
    )
    (tmp_path / "src" / "view.html").write_text("<button>{{ 'btn.save' | t }}</button>\n", encoding="utf-8")
    (tmp_path / "README.md").write_text("# Demo\n", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.js").write_text("btn.save\n", encoding="utf-8")
    return WorkspaceTools(str(tmp_path))


class TestGlob:

    def test_lista_ordenado_con_cabecera(self, repo):
        out = repo.glob("src/**/*.*")

        assert out.splitlines() == ["Result of search in '.':", "- src/app.js", "- src/view.html"]

    def test_directorio_objetivo(self, repo):
        out = repo.glob("*.js", target_directory="src")

        assert out.splitlines() == ["Result of search in './src':", "- src/app.js"]


class TestGrep:

    def test_contenido_con_numero_de_linea(self, repo):
        out = repo.grep("btn\\.save", glob="*.js")

        assert "src/app.js" in out
        assert "2:const a = t('btn.save');" in out
        assert "node_modules" not in out

    def test_solo_archivos(self, repo):
        out = repo.grep("btn\\.save", output_mode="files_with_matches")

        assert out.splitlines() == ["src/app.js", "src/view.html"]

    def test_conteo_ignorando_mayusculas(self, repo):
        out = repo.grep("BTN", output_mode="count", **{"-i": True})

        assert "src/app.js:2" in out.splitlines()

    def test_contexto_alrededor(self, repo):
        out = repo.grep("btn\\.cancel", path="src/app.js", **{"-B": 1})

        assert "2-const a = t('btn.save');" in out
        assert "3:const b = t('btn.cancel');" in out

    def test_sin_coincidencias(self, repo):
        assert repo.grep("no-existe-en-el-repo") == "No matches found"


class TestLs:

    def test_resume_extensiones_de_subdirectorios(self, repo):
        out = repo.ls(".", ignore=["node_modules"])

        assert "  - src/" in out
        assert "[2 files in subtree:" in out
        assert "  - README.md" in out
        assert "node_modules" not in out


class TestRead:

    def test_numera_lineas(self, repo):
        out = repo.read("src/app.js")

        assert out.splitlines()[1] == "     2|const a = t('btn.save');"

    def test_offset_y_limite_marcan_lo_omitido(self, repo):
        out = repo.read("src/app.js", offset=2, limit=1).splitlines()

        assert out == ["... 1 lines not shown ...", "     2|const a = t('btn.save');", "... 1 lines not shown ..."]


class TestCall:

    def test_error_se_devuelve_como_texto(self, repo):
        assert repo.call("read", {"path": "no-existe.js"}).startswith("Error:")

    def test_regex_invalida_se_devuelve_como_texto(self, repo):
        assert repo.call("grep", {"pattern": "("}).startswith("Error:")

    def test_argumentos_desconocidos(self, repo):
        assert "Invalid arguments" in repo.call("ls", {"foo": 1})

    def test_specs_cubren_las_cuatro_herramientas(self, repo):
        assert {s.name for s in repo.specs()} == {"glob", "grep", "ls", "read"}
