# harvester/factory.py
from typing import Optional

from harvester.errors import ConfigurationError
from harvester.orchestrator import ExtractionScheduler
from harvester.processor.chunker.models import ChunkConfig
from harvester.processor.chunker.planner import ChunkPlanner
from harvester.processor.chunker.token_estimator import get_estimator
from harvester.processor.screening import ScreenMode
from harvester.progress import ProgressReporter
from harvester.router.agent import DEFAULT_MAX_STEPS, AgentRunner
from harvester.router.base import BaseProvider
from harvester.router.claude import ClaudeProvider
from harvester.router.crowdin_proxy import CrowdinProxyProvider
from harvester.router.models import ProviderConfig, ProviderKind
from harvester.router.openai_compat import AzureProvider, MistralProvider, OpenAIProvider
from harvester.router.vertex import VertexProvider
from harvester.storage.crowdin import CrowdinClient
from harvester.workspace.tools import WorkspaceTools

_ADAPTERS = {
    ProviderKind.OPENAI:    OpenAIProvider,
    ProviderKind.MISTRAL:   MistralProvider,
    ProviderKind.AZURE:     AzureProvider,
    ProviderKind.ANTHROPIC: ClaudeProvider,
    ProviderKind.VERTEX:    VertexProvider,
}


def build_provider(config: ProviderConfig, crowdin: Optional[CrowdinClient] = None) -> BaseProvider:
    """Un adaptador por proveedor; el de crowdin reutiliza el cliente del proyecto."""
    if config.provider is ProviderKind.CROWDIN:
        if crowdin is None:
            raise ConfigurationError("El proveedor crowdin necesita un token de Crowdin.")
        return CrowdinProxyProvider(config, crowdin)

    adapter_class = _ADAPTERS.get(config.provider)
    if adapter_class is None:
        raise ConfigurationError(f"Proveedor no soportado: {config.provider.value}")
    return adapter_class(config)


def build_scheduler(
    config:        ProviderConfig,
    crowdin:       Optional[CrowdinClient]    = None,
    progress:      Optional[ProgressReporter] = None,
    screen:        ScreenMode | str           = ScreenMode.KEYS,
    concurrency:   int                        = 10,
    strings_ratio: float                      = 0.25,
    max_steps:     int                        = DEFAULT_MAX_STEPS,
    prompt:        Optional[str]              = None,
    working_dir:   str                        = ".",
    provider:      Optional[BaseProvider]     = None,
) -> ExtractionScheduler:
    """
    Ensambla el ExtractionScheduler con todas sus dependencias.
    Punto de entrada único para el CLI y los tests de integración.
    """
    provider = provider or build_provider(config, crowdin)
    planner  = ChunkPlanner(
        config    = ChunkConfig(
            context_window    = config.context_window,
            max_output_tokens = config.max_output_tokens,
            strings_ratio     = strings_ratio,
        ),
        estimator = get_estimator(config.model),
    )
    agent = AgentRunner(provider, WorkspaceTools(working_dir), max_steps=max_steps)

    return ExtractionScheduler(
        provider    = provider,
        planner     = planner,
        progress    = progress,
        screen      = screen,
        concurrency = concurrency,
        agent       = agent,
        prompt      = prompt,
        working_dir = working_dir,
    )
