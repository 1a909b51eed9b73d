from harvester.router.base import BaseProvider
from harvester.router.models import ModelResponse, ProviderConfig, ProviderKind
from harvester.router.config_loader import build_provider_config, load_config_file

__all__ = [
    "BaseProvider",
    "ModelResponse",
    "ProviderConfig",
    "ProviderKind",
    "build_provider_config",
    "load_config_file",
]
