from harvester.workspace.tools import WorkspaceTools

__all__ = ["WorkspaceTools"]
