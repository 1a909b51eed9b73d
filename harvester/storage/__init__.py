from harvester.storage.crowdin import CrowdinClient
from harvester.storage.loader import load_containers

__all__ = ["CrowdinClient", "load_containers"]
