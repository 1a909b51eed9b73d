"""context-harvester: contexto de uso para strings de localización extraído con IA."""

__version__ = "0.6.0"
