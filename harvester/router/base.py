# router/base.py
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from harvester.errors import ProviderError
from harvester.router.models import ChatMessage, ModelResponse, ProviderConfig, ToolSpec

logger = logging.getLogger(__name__)

_BACKOFF_BASE_SECONDS = 1.0
_BACKOFF_CAP_SECONDS  = 30.0


class BaseProvider(ABC):
    """
    Contrato que deben cumplir todos los adaptadores.
    El scheduler y el agente solo hablan con esta interfaz;
    nunca importan un SDK de proveedor directamente.
    """

    # Errores de disponibilidad (rate limit, timeout, red, 5xx): se reintentan
    _RETRYABLE_ERRORS: tuple = ()

    def __init__(self, config: ProviderConfig, sleep=asyncio.sleep):
        self._config = config
        self._sleep  = sleep

    @property
    def name(self) -> str:
        return self._config.provider.value

    @property
    def model(self) -> str:
        return self._config.model

    async def execute(
        self,
        messages:    Sequence[ChatMessage],
        tools:       Sequence[ToolSpec] = (),
        tool_choice: Optional[str]      = None,
    ) -> ModelResponse:
        """
        Envía la conversación y devuelve la respuesta normalizada.
        Reintenta con backoff exponencial solo los errores de disponibilidad;
        cualquier otro fallo del SDK sale como ProviderError con el mensaje del proveedor.
        """
        attempt = 0
        while True:
            try:
                return await self._complete(list(messages), list(tools), tool_choice)

            except ProviderError:
                raise

            except Exception as e:
                if not self._is_retryable(e):
                    raise ProviderError(f"{self.name}: {_vendor_message(e)}", self.name) from e

                if attempt >= self._config.max_retries:
                    raise ProviderError(
                        f"{self.name}: {_vendor_message(e)} (tras {attempt + 1} intentos)",
                        self.name,
                    ) from e

                delay = min(_BACKOFF_BASE_SECONDS * 2 ** attempt, _BACKOFF_CAP_SECONDS)
                logger.warning(
                    "%s error retryable: %s. Reintento %d/%d en %.0fs",
                    self.name, e, attempt + 1, self._config.max_retries, delay,
                )
                await self._sleep(delay)
                attempt += 1

    def _is_retryable(self, error: Exception) -> bool:
        return isinstance(error, self._RETRYABLE_ERRORS)

    @abstractmethod
    async def _complete(
        self,
        messages:    list[ChatMessage],
        tools:       list[ToolSpec],
        tool_choice: Optional[str],
    ) -> ModelResponse:
        """Una sola llamada al SDK, sin reintentos."""
        ...


def _vendor_message(error: Exception) -> str:
    """El mensaje del proveedor si el SDK lo expone, si no str(error)."""
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
    return str(error) or type(error).__name__
