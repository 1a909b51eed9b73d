# harvester/cli.py
import asyncio
import logging
import shlex
import sys

import click
from click.core import ParameterSource
from dotenv import load_dotenv

from harvester.context.merge import build_context_patch, build_reset_patch
from harvester.errors import (
    ConfigurationError,
    CrowdinApiError,
    HarvesterError,
    OutputError,
    ProjectLoadError,
)
from harvester.factory import build_scheduler
from harvester.orchestrator import HarvestReport
from harvester.output.csv_file import read_strings_csv, write_context_csv, write_errors_csv
from harvester.output.table import (
    NO_CONTEXT_MESSAGE,
    NO_ERRORS_MESSAGE,
    render_context_table,
    render_errors_table,
)
from harvester.processor.files import discover_files, read_files
from harvester.processor.models import Container
from harvester.processor.screening import ScreenMode, screen_strings
from harvester.progress import ClickProgress, format_tokens
from harvester.router.config_loader import (
    apply_env_aliases,
    build_provider_config,
    harvest_defaults,
    load_config_file,
)
from harvester.router.models import ProviderKind
from harvester.router.prompt_builder import (
    DEFAULT_AGENT_PROMPT,
    DEFAULT_CHECK_PROMPT,
    DEFAULT_DESCRIBE_PROMPT,
    DEFAULT_EXTRACT_PROMPT,
    load_prompt,
)
from harvester.storage.crowdin import CrowdinClient
from harvester.storage.loader import load_containers


# Carga .env una sola vez, antes que cualquier otra cosa
load_dotenv()
apply_env_aliases()

_PROVIDERS = [k.value for k in ProviderKind]

# Opción del CLI que aporta la api_key según el proveedor
_API_KEY_OPTION = {
    ProviderKind.OPENAI:    "openai_key",
    ProviderKind.ANTHROPIC: "anthropic_api_key",
    ProviderKind.MISTRAL:   "mistral_api_key",
    ProviderKind.AZURE:     "azure_api_key",
}

# Claves de harvest: en el YAML que pueden sustituir un default del CLI
_YAML_TUNABLES = ("concurrency", "screen", "strategy", "strings_ratio", "max_steps", "local_files", "local_ignore")


def _options(options):
    """Aplica una lista de click.option en orden de lectura."""
    def decorator(f):
        for option in reversed(options):
            f = option(f)
        return f
    return decorator


_CROWDIN_OPTIONS = [
    click.option("--token", "-t", envvar="CROWDIN_TOKEN", required=True,
                 help="Token personal de la API de Crowdin (scopes Project y AI)"),
    click.option("--org", "-o", envvar="CROWDIN_ORG", default=None,
                 help="Organización de Crowdin Enterprise (p. ej. acme)"),
    click.option("--url", envvar="CROWDIN_URL", default=None,
                 help="URL base alternativa de la API de Crowdin"),
    click.option("--project", "-p", type=int, required=True,
                 help="ID del proyecto de Crowdin (p. ej. 123456)"),
]

_AI_OPTIONS = [
    click.option("--ai", "-a", type=click.Choice(_PROVIDERS), default="openai", show_default=True,
                 help="Proveedor de IA"),
    click.option("--model", "-m", default=None,
                 help="Modelo de IA (por defecto gpt-4o). Debe tener ventana de contexto amplia y soportar tool calls"),
    click.option("--crowdin-ai-id", type=int, default=None,
                 help="ID del proveedor de IA en Crowdin (obligatorio con --ai crowdin)"),
    click.option("--openai-key", envvar="OPENAI_KEY", default=None, help="Clave de la API de OpenAI"),
    click.option("--openai-base-url", envvar="OPENAI_BASE_URL", default=None,
                 help="URL base de un endpoint compatible con OpenAI"),
    click.option("--anthropic-api-key", envvar="ANTHROPIC_API_KEY", default=None, help="Clave de la API de Anthropic"),
    click.option("--mistral-api-key", envvar="MISTRAL_API_KEY", default=None, help="Clave de la API de Mistral"),
    click.option("--azure-api-key", envvar="AZURE_API_KEY", default=None, help="Clave de Azure OpenAI"),
    click.option("--azure-resource-name", envvar="AZURE_RESOURCE_NAME", default=None,
                 help="Nombre del recurso de Azure OpenAI"),
    click.option("--azure-deployment-name", envvar="AZURE_DEPLOYMENT_NAME", default=None,
                 help="Nombre del deployment de Azure OpenAI"),
    click.option("--google-vertex-project", envvar="GOOGLE_VERTEX_PROJECT", default=None,
                 help="Proyecto de Google Cloud para Vertex AI"),
    click.option("--google-vertex-location", envvar="GOOGLE_VERTEX_LOCATION", default=None,
                 help="Región de Vertex AI (p. ej. us-central1)"),
    click.option("--google-vertex-client-email", envvar="GOOGLE_VERTEX_CLIENT_EMAIL", default=None,
                 help="Email del service account"),
    click.option("--google-vertex-private-key", envvar="GOOGLE_VERTEX_PRIVATE_KEY", default=None,
                 help="Clave privada del service account"),
    click.option("--context-window", type=int, default=None, help="Ventana de contexto del modelo en tokens"),
    click.option("--max-output-tokens", type=int, default=None, help="Máximo de tokens de salida del modelo"),
    click.option("--timeout", "timeout_seconds", type=int, default=None, help="Timeout por llamada en segundos"),
    click.option("--max-retries", type=int, default=None, help="Reintentos ante rate limit / 5xx"),
    click.option("--prompt-file", default=None,
                 help='Archivo con un prompt propio. "-" lo lee de STDIN'),
    click.option("--config", "config_path", default=None, type=click.Path(),
                 help="Config YAML (por defecto ~/.harvester/config.yaml)"),
]


# ------------------------------------------------------------------
# Grupo raíz
# ------------------------------------------------------------------

@click.group()
@click.version_option(package_name="context-harvester")
@click.option("--verbose", "-v", is_flag=True, help="Log de depuración")
def main(verbose: bool):
    """
    context-harvester: extrae contexto de uso de los strings
    de un proyecto de traducción leyendo el código local con un LLM.
    """
    logging.basicConfig(
        level  = logging.DEBUG if verbose else logging.WARNING,
        format = "%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ------------------------------------------------------------------
# harvest
# ------------------------------------------------------------------

@main.command()
@_options(_CROWDIN_OPTIONS)
@_options(_AI_OPTIONS)
@click.option("--local-files", "-l", default="**/*.*", show_default=True,
              help='Glob de archivos locales. Varios patrones separados por ";"')
@click.option("--local-ignore", "-i", default="node_modules/**", show_default=True,
              help='Archivos locales a ignorar. Varios patrones separados por ";"')
@click.option("--crowdin-files", "-c", default="",
              help="Glob de rutas de archivos en Crowdin. Incompatible con --croql")
@click.option("--croql", "-q", default="", help="Consulta CroQL que selecciona los strings a procesar")
@click.option("--since", default=None, help="Solo strings creados en esta fecha ISO o después")
@click.option("--screen", "-s", type=click.Choice([m.value for m in ScreenMode]), default="keys",
              show_default=True, help="Enviar solo los strings cuya key/texto aparece en el código")
@click.option("--strategy", type=click.Choice(["agent", "batch"]), default="agent", show_default=True,
              help="Agente por string o extracción por chunks")
@click.option("--concurrency", type=int, default=10, show_default=True,
              help="Workers concurrentes del agente")
@click.option("--strings-ratio", type=float, default=0.25, show_default=True,
              help="Fracción del presupuesto de salida reservada a strings")
@click.option("--max-steps", type=int, default=50, show_default=True,
              help="Máximo de turnos del agente por string")
@click.option("--output", "-w", type=click.Choice(["terminal", "csv", "crowdin"]), default="csv",
              show_default=True, help='"terminal" es una prueba en seco; "crowdin" escribe en el proyecto')
@click.option("--csv-file", "-f", default="crowdin-context.csv", show_default=True,
              help="CSV donde guardar (o desde el que --append) el contexto extraído")
@click.option("--append", is_flag=True, help="Usar los strings de --csv-file en vez de cargar el proyecto")
@click.pass_context
def harvest(ctx, **opts):
    """Extrae contexto para los strings del proyecto desde el código local."""
    file_cfg = _load_file_config(opts["config_path"])
    _apply_yaml_defaults(ctx, opts, harvest_defaults(file_cfg))

    client          = _build_client(opts)
    provider_config = _provider_config(opts, file_cfg)
    default_prompt  = DEFAULT_AGENT_PROMPT if opts["strategy"] == "agent" else DEFAULT_EXTRACT_PROMPT
    prompt          = _guard(lambda: load_prompt(opts["prompt_file"], default_prompt))
    progress        = ClickProgress()

    # ── Strings ───────────────────────────────────────────────────
    skipped_containers = []
    if opts["append"]:
        strings, _ = _guard(lambda: read_strings_csv(opts["csv_file"]))
        containers = [Container(id=0, label=opts["csv_file"], strings=strings)]
    else:
        loaded = _guard(lambda: load_containers(
            client, opts["project"],
            crowdin_files = opts["crowdin_files"],
            croql         = opts["croql"],
            since         = opts["since"],
            progress      = progress,
        ))
        containers         = loaded.containers
        skipped_containers = loaded.skipped_containers
    strings = [s for c in containers for s in c.strings]
    click.echo(f"[harvester] {len(strings)} strings cargados de {len(containers)} contenedores")

    # ── Archivos locales ──────────────────────────────────────────
    paths = discover_files(opts["local_files"], opts["local_ignore"])
    files, skipped_files = read_files(paths)
    click.echo(f"[harvester] {len(files)} archivos locales")

    scheduler = _guard(lambda: build_scheduler(
        provider_config,
        crowdin       = client,
        progress      = progress,
        screen        = opts["screen"],
        concurrency   = opts["concurrency"],
        strings_ratio = opts["strings_ratio"],
        max_steps     = opts["max_steps"],
        prompt        = prompt,
    ))

    # ── Ejecutar ──────────────────────────────────────────────────
    if opts["strategy"] == "batch":
        report = _run(scheduler.run_batch(containers, files))
    else:
        candidates = strings
        if opts["screen"] != ScreenMode.NONE.value:
            corpus     = "\n".join(f.content for f in files)
            candidates = screen_strings(strings, corpus, opts["screen"])
            click.echo(f"[harvester] {len(candidates)} strings aparecen en el código")
        report = _run(scheduler.run_agent(candidates))
        report.total_strings = len(strings)

    report.skipped_containers.extend(skipped_containers)
    report.skipped_files.extend(skipped_files)

    # ── Salida ────────────────────────────────────────────────────
    if opts["output"] == "terminal":
        render_context_table(strings)
    elif opts["output"] == "csv":
        written = _guard(lambda: write_context_csv(strings, opts["csv_file"]))
        if written:
            click.echo(f"\n[harvester] {written} strings guardados en {opts['csv_file']}")
        else:
            click.echo(NO_CONTEXT_MESSAGE)
    else:
        _patch_strings(client, opts["project"], build_context_patch(strings))

    _print_summary(report)


# ------------------------------------------------------------------
# check
# ------------------------------------------------------------------

@main.command()
@_options(_CROWDIN_OPTIONS)
@_options(_AI_OPTIONS)
@click.option("--crowdin-files", "-c", default="", help="Glob de rutas de archivos en Crowdin")
@click.option("--croql", "-q", default="", help="Consulta CroQL que selecciona los strings a validar")
@click.option("--strings-ratio", type=float, default=0.25, show_default=True,
              help="Fracción del presupuesto de salida reservada a strings")
@click.option("--output", "-w", type=click.Choice(["terminal", "csv"]), default="terminal", show_default=True)
@click.option("--csv-file", "-f", default="crowdin-context-errors.csv", show_default=True)
def check(**opts):
    """Comprueba si cada string tiene contexto suficiente para traducirlo sin ambigüedad."""
    file_cfg        = _load_file_config(opts["config_path"])
    client          = _build_client(opts)
    provider_config = _provider_config(opts, file_cfg)
    prompt          = _guard(lambda: load_prompt(opts["prompt_file"], DEFAULT_CHECK_PROMPT))
    progress        = ClickProgress()

    loaded = _guard(lambda: load_containers(
        client, opts["project"],
        crowdin_files = opts["crowdin_files"],
        croql         = opts["croql"],
        progress      = progress,
    ))
    languages = _guard(lambda: _target_language_names(client, loaded.project))

    scheduler = _guard(lambda: build_scheduler(
        provider_config,
        crowdin       = client,
        progress      = progress,
        strings_ratio = opts["strings_ratio"],
        prompt        = prompt,
    ))
    report = _run(scheduler.run_check(loaded.strings, languages))
    report.skipped_containers.extend(loaded.skipped_containers)

    if opts["output"] == "terminal":
        render_errors_table(loaded.strings)
    else:
        written = _guard(lambda: write_errors_csv(loaded.strings, opts["csv_file"]))
        if written:
            click.echo(f"\n[harvester] {written} strings guardados en {opts['csv_file']}")
        else:
            click.echo(NO_ERRORS_MESSAGE)

    _print_summary(report, updated_label="Con errores")


# ------------------------------------------------------------------
# describe
# ------------------------------------------------------------------

@main.command()
@click.option("--token", "-t", envvar="CROWDIN_TOKEN", default=None, help="Token personal de la API de Crowdin")
@click.option("--org", "-o", envvar="CROWDIN_ORG", default=None, help="Organización de Crowdin")
@click.option("--url", envvar="CROWDIN_URL", default=None, help="URL base alternativa de la API de Crowdin")
@click.option("--project", "-p", type=int, default=None, help="ID del proyecto de Crowdin (para --output crowdin)")
@_options(_AI_OPTIONS)
@click.option("--max-steps", type=int, default=50, show_default=True, help="Máximo de turnos del agente")
@click.option("--output", "-w", type=click.Choice(["terminal", "crowdin"]), default="terminal", show_default=True)
def describe(**opts):
    """Genera una descripción del proyecto orientada a traductores."""
    if opts["output"] == "crowdin" and not (opts["token"] and opts["project"]):
        _abort("--output crowdin necesita --token y --project.")

    file_cfg        = _load_file_config(opts["config_path"])
    client          = _build_client(opts) if opts["token"] else None
    provider_config = _provider_config(opts, file_cfg)
    prompt          = _guard(lambda: load_prompt(opts["prompt_file"], DEFAULT_DESCRIBE_PROMPT))

    scheduler = _guard(lambda: build_scheduler(
        provider_config,
        crowdin   = client,
        progress  = ClickProgress(),
        max_steps = opts["max_steps"],
        prompt    = prompt,
    ))
    description, report = _run(scheduler.describe_project())

    if not description:
        _abort("No se generó ninguna descripción.")

    if opts["output"] == "terminal":
        click.echo("")
        click.echo(description)
    else:
        _guard(lambda: client.edit_project(
            opts["project"], [{"op": "replace", "path": "/description", "value": description}],
        ))
        click.echo(f"[harvester] ✓ Descripción guardada en el proyecto {opts['project']}")

    click.echo(f"[harvester]   Tokens: {format_tokens(report.tokens_used)}")


# ------------------------------------------------------------------
# upload
# ------------------------------------------------------------------

@main.command()
@_options(_CROWDIN_OPTIONS)
@click.option("--csv-file", "-f", required=True, type=click.Path(), help="CSV con el contexto revisado")
def upload(**opts):
    """Sube al proyecto el contexto revisado en un CSV."""
    client                 = _build_client(opts)
    strings, has_ai_column = _guard(lambda: read_strings_csv(opts["csv_file"]))

    # Sin columna aiContext se sube el contexto completo tal cual
    operations = build_context_patch(strings, upload_all=not has_ai_column)
    try:
        updated = _patch_strings(client, opts["project"], operations, reraise=True)
    except CrowdinApiError as e:
        if "stringNotExists" in str(e):
            _abort("Algunos strings no existen en el proyecto. Revisa el CSV y elimina las filas sobrantes.")
        _abort(str(e))

    click.echo("[harvester] ✨ El contexto revisado se subió al proyecto.")
    click.echo(f"[harvester] {updated} strings actualizados.")


# ------------------------------------------------------------------
# reset
# ------------------------------------------------------------------

@main.command()
@_options(_CROWDIN_OPTIONS)
@click.option("--crowdin-files", "-c", default="**/*.*", show_default=True, help="Glob de rutas de archivos en Crowdin")
@click.option("--croql", "-q", default="", help="Consulta CroQL que selecciona los strings a limpiar")
def reset(**opts):
    """Elimina la sección de contexto IA de los strings del proyecto."""
    client = _build_client(opts)
    loaded = _guard(lambda: load_containers(
        client, opts["project"],
        crowdin_files = "" if opts["croql"] else opts["crowdin_files"],
        croql         = opts["croql"],
        progress      = ClickProgress(),
    ))

    updated = _patch_strings(client, opts["project"], build_reset_patch(loaded.strings))
    click.echo(f"[harvester] ✓ Contexto IA eliminado de {updated} strings")
    if loaded.skipped_containers:
        click.echo(click.style(
            f"[harvester]   Contenedores saltados: {len(loaded.skipped_containers)}", fg="yellow",
        ))


# ------------------------------------------------------------------
# configure
# ------------------------------------------------------------------

@main.command()
@click.option("--token", "-t", envvar="CROWDIN_TOKEN", default=None, help="Token personal de la API de Crowdin")
@click.option("--org", "-o", envvar="CROWDIN_ORG", default=None, help="Organización de Crowdin")
@click.option("--url", envvar="CROWDIN_URL", default=None, help="URL base alternativa de la API de Crowdin")
def configure(token, org, url):
    """Asistente interactivo: arma la línea de comandos de harvest."""
    token  = token or click.prompt("Token personal de la API de Crowdin", hide_input=True)
    client = CrowdinClient(token, organization=org, url=url)

    projects = _guard(client.list_projects)
    if not projects:
        _abort("No se encontraron proyectos de Crowdin.")
    for p in projects:
        click.echo(f"  {p['id']:>8}  {p.get('name', '')}")
    project = click.prompt("ID del proyecto", type=click.Choice([str(p["id"]) for p in projects]),
                           show_choices=False)

    ai      = click.prompt("Proveedor de IA", type=click.Choice(_PROVIDERS), default="openai")
    command = ["context-harvester", "harvest", "--project", project, "--ai", ai]

    if ai == ProviderKind.CROWDIN.value:
        providers = [p for p in _guard(client.list_ai_providers) if p.get("isEnabled", True)]
        if not providers:
            _abort("No hay proveedores de IA configurados y activos.")
        for p in providers:
            click.echo(f"  {p['id']:>8}  {p.get('name', '')}")
        ai_id  = click.prompt("ID del proveedor de IA en Crowdin", type=click.Choice([str(p["id"]) for p in providers]),
                              show_choices=False)
        models = [m["id"] for m in _guard(lambda: client.list_ai_provider_models(int(ai_id)))]
        model  = click.prompt("Modelo", type=click.Choice(models) if models else str,
                              default=models[0] if models else "gpt-4o")
        command += ["--crowdin-ai-id", ai_id, "--model", model]
    else:
        command += ["--model", click.prompt("Modelo", default="gpt-4o")]

    screen        = click.prompt("Screening", type=click.Choice([m.value for m in ScreenMode]), default="keys")
    local_files   = click.prompt("Archivos locales (glob)", default="**/*.*")
    local_ignore  = click.prompt("Archivos locales a ignorar (glob)", default="node_modules/**")
    crowdin_files = click.prompt("Archivos de Crowdin (glob, vacío para todos)", default="", show_default=False)
    output        = click.prompt("Salida", type=click.Choice(["terminal", "csv", "crowdin"]), default="terminal")

    command += ["--screen", screen, "--local-files", local_files, "--local-ignore", local_ignore]
    if crowdin_files:
        command += ["--crowdin-files", crowdin_files]
    command += ["--output", output]
    if org:
        command += ["--org", org]

    # El token y las claves se leen del entorno; nunca se imprimen
    click.echo("\n[harvester] Ejecuta el harvest con:\n")
    click.echo(click.style(" ".join(shlex.quote(part) for part in command), fg="green"))


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _build_client(opts: dict) -> CrowdinClient:
    return CrowdinClient(opts["token"], organization=opts["org"], url=opts["url"])


def _load_file_config(config_path) -> dict:
    return _guard(lambda: load_config_file(config_path))


def _apply_yaml_defaults(ctx: click.Context, opts: dict, defaults: dict) -> None:
    """Un valor del YAML sustituye al default del CLI, nunca a una opción explícita."""
    for name in _YAML_TUNABLES:
        if name in defaults and ctx.get_parameter_source(name) is ParameterSource.DEFAULT:
            opts[name] = defaults[name]


def _provider_config(opts: dict, file_cfg: dict):
    kind = ProviderKind(opts["ai"])
    overrides = {
        "model":                 opts["model"],
        "api_key":               opts.get(_API_KEY_OPTION.get(kind, ""), None),
        "base_url":              opts["openai_base_url"] if kind is ProviderKind.OPENAI else None,
        "crowdin_ai_id":         opts["crowdin_ai_id"],
        "azure_resource_name":   opts["azure_resource_name"],
        "azure_deployment_name": opts["azure_deployment_name"],
        "vertex_project":        opts["google_vertex_project"],
        "vertex_location":       opts["google_vertex_location"],
        "vertex_client_email":   opts["google_vertex_client_email"],
        "vertex_private_key":    opts["google_vertex_private_key"],
        "context_window":        opts["context_window"],
        "max_output_tokens":     opts["max_output_tokens"],
        "timeout_seconds":       opts["timeout_seconds"],
        "max_retries":           opts["max_retries"],
    }
    return _guard(lambda: build_provider_config(opts["ai"], overrides, file_cfg))


def _target_language_names(client: CrowdinClient, project: dict) -> list[str]:
    ids = project.get("targetLanguageIds") or []
    names = {lang["id"]: lang.get("name", lang["id"]) for lang in client.list_supported_languages()}
    return [names.get(i, i) for i in ids]


def _patch_strings(client: CrowdinClient, project_id: int, operations: list[dict], reraise: bool = False) -> int:
    if not operations:
        return 0
    click.echo(f"[harvester] Actualizando {len(operations)} strings en el proyecto...")
    try:
        client.batch_patch_strings(project_id, operations)
    except CrowdinApiError as e:
        if reraise:
            raise
        _abort(f"Error actualizando strings: {e}")
    return len(operations)


def _guard(action):
    """Ejecuta una acción de carga/configuración; los errores fatales abortan el proceso."""
    try:
        return action()
    except (ConfigurationError, ProjectLoadError, OutputError, CrowdinApiError) as e:
        _abort(str(e))


def _run(coro):
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        click.echo("\n[harvester] Proceso interrumpido.")
        sys.exit(130)
    except HarvesterError as e:
        _abort(str(e))
    except Exception as e:
        _error(f"Error inesperado: {type(e).__name__}: {e}")
        sys.exit(1)


def _print_summary(report: HarvestReport, updated_label: str = "Con contexto") -> None:
    """Imprime el resumen final de la ejecución."""
    click.echo("")
    click.echo("─" * 50)
    click.echo("[harvester] ✓ Proceso completado")
    click.echo(f"[harvester]   Strings       : {report.total_strings}")
    click.echo(f"[harvester]   {updated_label:<14}: {report.strings_updated}")
    click.echo(f"[harvester]   Llamadas IA   : {report.provider_calls}")
    click.echo(f"[harvester]   Tokens        : {format_tokens(report.tokens_used)}")

    if report.failed_units:
        click.echo(click.style(f"[harvester]   Fallidos      : {report.failed_units}", fg="yellow"))
    if report.skipped_containers:
        click.echo(click.style(f"[harvester]   Cont. saltados: {len(report.skipped_containers)}", fg="yellow"))
    if report.skipped_files:
        click.echo(click.style(f"[harvester]   Arch. saltados: {len(report.skipped_files)}", fg="yellow"))
    if report.dropped:
        click.echo(click.style(f"[harvester]   Fragmentos descartados: {len(report.dropped)}", fg="yellow"))
    click.echo("─" * 50)


def _abort(message: str) -> None:
    """Error de validación o de carga: termina con exit 1."""
    click.echo(click.style(f"[harvester] Error: {message}", fg="red"), err=True)
    sys.exit(1)


def _error(message: str) -> None:
    """Error de sistema, no atribuible al usuario."""
    click.echo(click.style(f"[harvester] {message}", fg="red"), err=True)
