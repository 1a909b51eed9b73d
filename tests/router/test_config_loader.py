import pytest

from harvester.errors import ConfigurationError
from harvester.router.config_loader import (
    apply_env_aliases,
    build_provider_config,
    harvest_defaults,
    load_config_file,
)
from harvester.router.models import ProviderKind


class TestEnvAliases:

    def test_alias_rellena_la_canonica(self):
        env = {"OPENAI_API_KEY": "sk-1", "CROWDIN_PERSONAL_TOKEN": "tok"}

        apply_env_aliases(env)

        assert env["OPENAI_KEY"] == "sk-1"
        assert env["CROWDIN_TOKEN"] == "tok"

    def test_la_canonica_gana(self):
        env = {"OPENAI_KEY": "canonical", "OPENAI_API_KEY": "alias"}

        apply_env_aliases(env)

        assert env["OPENAI_KEY"] == "canonical"


class TestConfigFile:

    def test_default_inexistente_es_vacio(self, tmp_path, monkeypatch):
        monkeypatch.delenv("HARVESTER_CONFIG_PATH", raising=False)
        monkeypatch.setattr("harvester.router.config_loader._DEFAULT_CONFIG_PATH", tmp_path / "none.yaml")

        assert load_config_file() == {}

    def test_explicita_inexistente_es_error(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config_file(str(tmp_path / "missing.yaml"))

    def test_resuelve_variables_de_entorno(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MY_KEY", "sk-test")
        monkeypatch.delenv("MISSING", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(
            "provider:\n  api_key: ${MY_KEY}\n  base_url: https://${MISSING}/v1\n"
            "harvest:\n  concurrency: 4\n",
            encoding="utf-8",
        )

        cfg = load_config_file(str(path))

        assert cfg["provider"]["api_key"] == "sk-test"
        assert cfg["provider"]["base_url"] == "https:///v1"
        assert harvest_defaults(cfg) == {"concurrency": 4}

    def test_variable_de_entorno_para_la_ruta(self, tmp_path, monkeypatch):
        path = tmp_path / "alt.yaml"
        path.write_text("harvest:\n  screen: texts\n", encoding="utf-8")
        monkeypatch.setenv("HARVESTER_CONFIG_PATH", str(path))

        assert harvest_defaults(load_config_file()) == {"screen": "texts"}

    def test_yaml_que_no_es_mapeo(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_config_file(str(path))


class TestProviderConfig:

    def test_cli_gana_sobre_yaml(self):
        file_cfg = {"provider": {"model": "gpt-4o-mini", "api_key": "from-yaml"}}

        config = build_provider_config("openai", {"api_key": "from-cli", "model": None}, file_cfg)

        assert config.provider is ProviderKind.OPENAI
        assert config.api_key == "from-cli"
        assert config.model == "gpt-4o-mini"

    def test_campos_desconocidos_se_ignoran(self):
        config = build_provider_config("anthropic", {"api_key": "k", "concurrency": 3})
        assert config.api_key == "k"

    def test_proveedor_desconocido(self):
        with pytest.raises(ConfigurationError, match="Opciones"):
            build_provider_config("llama", {})

    @pytest.mark.parametrize("provider, overrides, missing", [
        ("openai",        {},                                               "--openai-key"),
        ("azure",         {"azure_resource_name": "r", "api_key": "k"},     "--azure-deployment-name"),
        ("google-vertex", {"vertex_project": "p", "vertex_location": "eu"}, "--google-vertex-client-email"),
        ("crowdin",       {},                                               "--crowdin-ai-id"),
    ])
    def test_credenciales_obligatorias(self, provider, overrides, missing):
        with pytest.raises(ConfigurationError, match=missing):
            build_provider_config(provider, overrides)
