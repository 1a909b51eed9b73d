from unittest.mock import MagicMock

import pytest

from harvester.errors import ConfigurationError, CrowdinApiError, ProjectLoadError
from harvester.storage.loader import filter_files, load_containers, parse_since


def file_project(files, strings_by_file):
    client = MagicMock()
    client.get_project.return_value = {"id": 1, "type": 0}
    client.list_files.return_value  = files

    def list_strings(project_id, file_id=None, branch_id=None, croql=None):
        value = strings_by_file[file_id]
        if isinstance(value, Exception):
            raise value
        return value

    client.list_strings.side_effect = list_strings
    return client


class TestLoad:

    def test_archivos_filtrados_por_patron(self):
        client = file_project(
            [{"id": 1, "path": "/src/en.json"}, {"id": 2, "path": "/docs/readme.md"}],
            {1: [{"id": 10, "text": "Save", "identifier": "btn.save"}], 2: []},
        )

        result = load_containers(client, 1, crowdin_files="*.json")

        assert [c.label for c in result.containers] == ["/src/en.json"]
        assert [s.key for s in result.strings] == ["btn.save"]

    def test_contenedor_que_falla_se_salta(self):
        client = file_project(
            [{"id": 1, "path": "/a.json"}, {"id": 2, "path": "/b.json"}],
            {1: CrowdinApiError("boom", status=500), 2: [{"id": 20, "text": "Ok"}]},
        )
        progress = MagicMock()

        result = load_containers(client, 1, progress=progress)

        assert result.skipped_containers == ["/a.json"]
        assert [s.id for s in result.strings] == [20]
        progress.warn.assert_called_once()

    def test_proyecto_de_strings_usa_branches(self):
        client = MagicMock()
        client.get_project.return_value   = {"id": 1, "type": 1}
        client.list_branches.return_value = [{"id": 4, "name": "main"}]
        client.list_strings.return_value  = [{"id": 1, "text": "Hi"}]

        result = load_containers(client, 1)

        assert result.is_strings_project
        assert [c.label for c in result.containers] == ["main"]
        client.list_strings.assert_called_once_with(1, branch_id=4)

    def test_croql_un_solo_contenedor(self):
        client = MagicMock()
        client.get_project.return_value  = {"id": 1, "type": 0}
        client.list_strings.return_value = []

        result = load_containers(client, 1, croql="added since 2024")

        assert [c.label for c in result.containers] == ["croql"]
        client.list_files.assert_not_called()

    def test_croql_y_archivos_es_error(self):
        with pytest.raises(ConfigurationError):
            load_containers(MagicMock(), 1, crowdin_files="*.json", croql="x")

    def test_proyecto_inaccesible(self):
        client = MagicMock()
        client.get_project.side_effect = CrowdinApiError("nope", status=404)

        with pytest.raises(ProjectLoadError):
            load_containers(client, 1)

    def test_since_filtra_por_fecha_de_creacion(self):
        client = file_project(
            [{"id": 1, "path": "/a.json"}],
            {1: [
                {"id": 1, "text": "old", "createdAt": "2023-12-31T23:59:59+00:00"},
                {"id": 2, "text": "new", "createdAt": "2024-02-01T00:00:00+00:00"},
                {"id": 3, "text": "unknown"},
            ]},
        )

        result = load_containers(client, 1, since="2024-01-01")

        assert [s.id for s in result.strings] == [2]


class TestHelpers:

    def test_filter_files_por_nombre(self):
        files = [{"id": 1, "path": "/deep/dir/messages.po"}]
        assert filter_files(files, "messages.*") == files

    def test_parse_since_z(self):
        assert parse_since("2024-05-01T10:00:00Z").utcoffset().total_seconds() == 0

    def test_parse_since_invalida(self):
        with pytest.raises(ConfigurationError):
            parse_since("ayer")
