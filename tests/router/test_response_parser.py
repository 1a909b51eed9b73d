import json

import pytest

from harvester.errors import ProviderError
from harvester.router.models import ChatMessage, ModelResponse, ToolCall
from harvester.router.response_parser import (
    decode_arguments,
    extract_contexts,
    extract_errors,
    extract_single_text,
    id_key,
)


def response_with(*calls: ToolCall) -> ModelResponse:
    return ModelResponse(
        message    = ChatMessage(role="assistant", tool_calls=list(calls)),
        model_used = "test_model",
    )


def set_context(arguments) -> ToolCall:
    return ToolCall(id="call_1", name="setContext", arguments=arguments)


class TestDecodeArguments:

    def test_dict_se_devuelve_tal_cual(self):
        assert decode_arguments(set_context({"contexts": []})) == {"contexts": []}

    def test_json_en_bloque_markdown(self):
        raw = '```json\n{"contexts": [{"id": 1, "context": "x"}]}\n```'
        assert decode_arguments(set_context(raw))["contexts"][0]["id"] == 1

    def test_cadena_vacia_es_objeto_vacio(self):
        assert decode_arguments(set_context("  ")) == {}

    def test_json_invalido_es_provider_error(self):
        with pytest.raises(ProviderError):
            decode_arguments(set_context("{not json"))


class TestExtractContexts:

    def test_json_valido_directo(self):
        raw = json.dumps({"contexts": [{"id": 1, "context": "Used as a save button label"}]})

        results = extract_contexts(response_with(set_context(raw)))

        assert len(results) == 1
        assert results[0].string_id    == 1
        assert results[0].context_text == "Used as a save button label"

    def test_argumentos_ya_decodificados(self):
        results = extract_contexts(response_with(set_context({"contexts": [{"id": "a", "context": "x"}]})))
        assert results[0].string_id == "a"

    def test_array_desnudo_se_tolera(self):
        results = extract_contexts(response_with(set_context('[{"id": 2, "context": "y"}]')))
        assert [r.string_id for r in results] == [2]

    def test_sin_tool_call_devuelve_lista_vacia(self):
        response = ModelResponse(message=ChatMessage(role="assistant", content="No encontré nada"), model_used="m")
        assert extract_contexts(response) == []

    def test_varias_llamadas_se_acumulan(self):
        results = extract_contexts(response_with(
            set_context({"contexts": [{"id": 1, "context": "a"}]}),
            set_context({"contexts": [{"id": 2, "context": "b"}]}),
        ))
        assert [r.string_id for r in results] == [1, 2]

    def test_otra_tool_se_ignora(self):
        other = ToolCall(id="c", name="grep", arguments={"pattern": "x"})
        assert extract_contexts(response_with(other)) == []

    def test_contexts_no_lista_es_provider_error(self):
        with pytest.raises(ProviderError):
            extract_contexts(response_with(set_context({"contexts": "texto"})))

    def test_item_sin_id_es_provider_error(self):
        with pytest.raises(ProviderError):
            extract_contexts(response_with(set_context({"contexts": [{"context": "x"}]})))

    def test_context_no_texto_es_provider_error(self):
        with pytest.raises(ProviderError):
            extract_contexts(response_with(set_context({"contexts": [{"id": 1, "context": 5}]})))


class TestExtractErrors:

    def test_lee_strings_con_error(self):
        call = ToolCall(id="c", name="getMoreContext",
                        arguments={"strings": [{"id": 3, "error": "Ambiguous gender"}]})

        results = extract_errors(response_with(call))

        assert results[0].string_id  == 3
        assert results[0].error_text == "Ambiguous gender"
        assert results[0].context_text is None


class TestExtractSingleText:

    def test_devuelve_texto_recortado(self):
        call = ToolCall(id="c", name="return_context", arguments='{"context": "  Used as title  "}')
        assert extract_single_text(call, "context") == "Used as title"

    def test_argumento_no_objeto_es_provider_error(self):
        call = ToolCall(id="c", name="return_context", arguments="[1, 2]")
        with pytest.raises(ProviderError):
            extract_single_text(call, "context")


class TestIdKey:

    @pytest.mark.parametrize("value", [1, 1.0, "1", " 1 "])
    def test_normaliza_ids_equivalentes(self, value):
        assert id_key(value) == "1"

    def test_float_no_entero_se_conserva(self):
        assert id_key(1.5) == "1.5"
