# harvester/errors.py


class HarvesterError(Exception):
    """Raíz de todos los errores propios del harvester."""


# ------------------------------------------------------------------
# Fatales: el CLI aborta con exit != 0
# ------------------------------------------------------------------

class ConfigurationError(HarvesterError):
    """Credencial ausente, opción inválida o combinación de opciones incompatible."""


class ProjectLoadError(HarvesterError):
    """El proyecto no existe o no es accesible con el token dado."""


class OutputError(HarvesterError):
    """No se pudo escribir el destino de salida (CSV, etc.)."""


# ------------------------------------------------------------------
# Recuperables: se capturan en el límite de cada unidad de trabajo
# ------------------------------------------------------------------

class ContainerLoadError(HarvesterError):
    """Falló el listado de strings de un archivo o branch concreto."""


class ProviderError(HarvesterError):
    """
    Falló la llamada al proveedor de IA o su respuesta no respeta el
    contrato de la tool (argumentos malformados, JSON inválido).
    """

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class MergeError(HarvesterError):
    """Un resultado acumulado tiene una forma inesperada."""


class CrowdinApiError(HarvesterError):
    """Error HTTP de la API del proyecto de traducción."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status
