# router/config_loader.py
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from harvester.errors import ConfigurationError
from harvester.router.models import ProviderConfig, ProviderKind

_DEFAULT_CONFIG_PATH = Path.home() / ".harvester" / "config.yaml"
_ENV_REF             = re.compile(r"\$\{([^}]+)\}")

# Variable canónica → alias aceptados (el primero no vacío gana)
ENV_ALIASES = {
    "OPENAI_KEY":    ["OPENAI_API_KEY"],
    "CROWDIN_TOKEN": ["CROWDIN_PERSONAL_TOKEN"],
    "CROWDIN_ORG":   ["CROWDIN_ORGANIZATION"],
    "CROWDIN_URL":   ["CROWDIN_BASE_URL"],
}

# Campos obligatorios por proveedor: (atributo, opción del CLI)
_REQUIRED_FIELDS = {
    ProviderKind.OPENAI:    [("api_key", "--openai-key")],
    ProviderKind.ANTHROPIC: [("api_key", "--anthropic-api-key")],
    ProviderKind.MISTRAL:   [("api_key", "--mistral-api-key")],
    ProviderKind.AZURE:     [
        ("azure_resource_name",   "--azure-resource-name"),
        ("api_key",               "--azure-api-key"),
        ("azure_deployment_name", "--azure-deployment-name"),
    ],
    ProviderKind.VERTEX:    [
        ("vertex_project",      "--google-vertex-project"),
        ("vertex_location",     "--google-vertex-location"),
        ("vertex_client_email", "--google-vertex-client-email"),
        ("vertex_private_key",  "--google-vertex-private-key"),
    ],
    ProviderKind.CROWDIN:   [("crowdin_ai_id", "--crowdin-ai-id")],
}


def apply_env_aliases(environ: Optional[dict] = None) -> None:
    """Rellena las variables canónicas vacías con su primer alias definido."""
    environ = os.environ if environ is None else environ
    for canonical, aliases in ENV_ALIASES.items():
        if environ.get(canonical):
            continue
        for alias in aliases:
            if environ.get(alias):
                environ[canonical] = environ[alias]
                break


def load_config_file(config_path: Optional[str] = None) -> dict:
    """
    Carga ~/.harvester/config.yaml (o HARVESTER_CONFIG_PATH / --config).
    Resuelve ${VAR} desde el entorno en todos los valores string.
    Si el archivo por defecto no existe devuelve {}; si el nombrado
    explícitamente no existe es un error de configuración.
    """
    explicit = config_path or os.environ.get("HARVESTER_CONFIG_PATH")
    path     = Path(explicit) if explicit else _DEFAULT_CONFIG_PATH

    if not path.exists():
        if explicit:
            raise ConfigurationError(f"Config no encontrada en {path}")
        return {}

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"No se pudo leer la config {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"La config {path} debe ser un mapeo YAML")
    return _resolve_tree(raw)


def build_provider_config(
    provider:  str,
    overrides: Optional[dict] = None,
    file_cfg:  Optional[dict] = None,
) -> ProviderConfig:
    """
    Mezcla la sección provider: del YAML con las opciones del CLI
    (las que no son None ganan) y valida las credenciales requeridas.
    """
    try:
        kind = ProviderKind(provider)
    except ValueError as e:
        valid = ", ".join(k.value for k in ProviderKind)
        raise ConfigurationError(f"Proveedor desconocido '{provider}'. Opciones: {valid}") from e

    values: dict[str, Any] = {}
    values.update((file_cfg or {}).get("provider") or {})
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})
    values.pop("provider", None)

    known  = set(ProviderConfig.__dataclass_fields__) - {"provider"}
    config = ProviderConfig(provider=kind, **{k: v for k, v in values.items() if k in known})

    validate_provider_fields(config)
    return config


def validate_provider_fields(config: ProviderConfig) -> None:
    for attr, option in _REQUIRED_FIELDS.get(config.provider, []):
        if not getattr(config, attr):
            raise ConfigurationError(
                f"{option} es obligatorio para el proveedor {config.provider.value}"
            )


def harvest_defaults(file_cfg: Optional[dict]) -> dict:
    """Sección harvest: del YAML (concurrency, screen, strings_ratio...)."""
    section = (file_cfg or {}).get("harvest") or {}
    return section if isinstance(section, dict) else {}


def _resolve_tree(value):
    if isinstance(value, dict):
        return {k: _resolve_tree(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_tree(v) for v in value]
    if isinstance(value, str):
        return _resolve_env(value)
    return value


def _resolve_env(value: Optional[str]) -> Optional[str]:
    """Expande ${VAR_NAME} desde el entorno. Una referencia completa sin valor → None."""
    if not value or "${" not in value:
        return value
    whole = _ENV_REF.fullmatch(value.strip())
    if whole:
        return os.environ.get(whole.group(1).strip())
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1).strip(), ""), value)
