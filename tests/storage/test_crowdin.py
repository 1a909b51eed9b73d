from unittest.mock import MagicMock

import pytest
import requests

from harvester.errors import CrowdinApiError
from harvester.storage.crowdin import CrowdinClient, resolve_base_url


def response(status=200, body=None):
    r = MagicMock()
    r.status_code = status
    r.content     = b"x" if body is not None else b""
    r.json.return_value = body
    r.text = str(body)
    return r


def make_client(*responses, organization=None):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return CrowdinClient("tok", organization=organization, session=session), session


class TestBaseUrl:

    def test_por_defecto(self):
        assert resolve_base_url() == "https://api.crowdin.com/api/v2"

    def test_nombre_de_organizacion(self):
        assert resolve_base_url("acme") == "https://acme.api.crowdin.com/api/v2"

    def test_organizacion_como_url(self):
        assert resolve_base_url("https://acme.api.crowdin.com/") == "https://acme.api.crowdin.com/api/v2"

    def test_url_gana(self):
        assert resolve_base_url("acme", "https://crowdin.local") == "https://crowdin.local/api/v2"


class TestRequests:

    def test_cabecera_de_autorizacion(self):
        _, session = make_client()
        assert session.headers["Authorization"] == "Bearer tok"

    def test_paginacion_hasta_pagina_incompleta(self):
        full = {"data": [{"data": {"id": i}} for i in range(500)]}
        last = {"data": [{"data": {"id": 500}}]}
        client, session = make_client(response(body=full), response(body=last))

        items = client.list_strings(7, file_id=3)

        assert len(items) == 501
        offsets = [c.kwargs["params"]["offset"] for c in session.request.call_args_list]
        assert offsets == [0, 500]
        assert session.request.call_args_list[0].kwargs["params"]["fileId"] == 3

    def test_croql_excluye_file_id(self):
        client, session = make_client(response(body={"data": []}))

        client.list_strings(7, file_id=3, croql="count of translations = 0")

        params = session.request.call_args.kwargs["params"]
        assert params["croql"] == "count of translations = 0"
        assert "fileId" not in params

    def test_error_de_api_con_mensaje(self):
        client, _ = make_client(response(404, {"error": {"code": 404, "message": "Project Not Found"}}))

        with pytest.raises(CrowdinApiError) as exc:
            client.get_project(1)

        assert exc.value.status == 404
        assert "Project Not Found" in str(exc.value)

    def test_error_de_validacion(self):
        body = {"errors": [{"error": {"key": "0", "errors": [{"code": "stringNotExists", "message": "String 9 not found"}]}}]}
        client, _ = make_client(response(400, body))

        with pytest.raises(CrowdinApiError) as exc:
            client.batch_patch_strings(1, [])

        assert "stringNotExists" in str(exc.value)

    def test_fallo_de_red(self):
        client, session = make_client()
        session.request.side_effect = requests.ConnectionError("down")

        with pytest.raises(CrowdinApiError):
            client.get_project(1)

    def test_respuesta_vacia(self):
        client, _ = make_client(response(204))
        assert client.edit_project(1, []) == {}


class TestAiPassthrough:

    def test_usuario_resuelve_id_una_vez(self):
        client, session = make_client(
            response(body={"data": {"id": 42}}),
            response(body={"data": {"choices": []}}),
            response(body={"data": {"choices": []}}),
        )

        client.create_proxy_chat_completion(5, {"messages": []})
        client.create_proxy_chat_completion(5, {"messages": []})

        urls = [c.args[1] for c in session.request.call_args_list]
        assert urls[0].endswith("/user")
        assert urls[1].endswith("/users/42/ai/providers/5/chat/completions")
        assert len(urls) == 3

    def test_organizacion_usa_prefijo_ai(self):
        client, session = make_client(response(body={"data": {}}), organization="acme")

        client.create_proxy_chat_completion(5, {})

        assert session.request.call_args.args[1] == "https://acme.api.crowdin.com/api/v2/ai/providers/5/chat/completions"
