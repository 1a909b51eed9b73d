# chunker/token_estimator.py
import logging
from abc import ABC, abstractmethod
from functools import lru_cache

logger = logging.getLogger(__name__)

# Encoding usado cuando tiktoken no reconoce el modelo (Claude, Mistral, Gemini…)
_FALLBACK_ENCODING = "o200k_base"


class TokenEstimator(ABC):
    @abstractmethod
    def estimate(self, text: str) -> int: ...


class SimpleTokenEstimator(TokenEstimator):
    """
    Estimación rápida sin dependencias externas.
    Útil en tests; error típico < 10% para texto en inglés.
    """
    def estimate(self, text: str) -> int:
        return int(len(text.split()) * 1.3)


class TikTokenEstimator(TokenEstimator):
    """
    Estimación con tiktoken.
    Si el modelo no es de OpenAI cae al encoding general en vez de fallar.
    """
    def __init__(self, model: str = "gpt-4o"):
        import tiktoken
        try:
            self._enc = tiktoken.encoding_for_model(model)
        except KeyError:
            logger.debug("Modelo %s sin tokenizer conocido, usando %s", model, _FALLBACK_ENCODING)
            self._enc = tiktoken.get_encoding(_FALLBACK_ENCODING)

    def estimate(self, text: str) -> int:
        # disallowed_special=(): el código fuente puede contener "<|endoftext|>"
        return len(self._enc.encode(text, disallowed_special=()))


@lru_cache(maxsize=None)
def get_estimator(model_id: str) -> TokenEstimator:
    """Un estimador por modelo, inicializado la primera vez que se pide."""
    return TikTokenEstimator(model_id or "")


def estimate_tokens(text: str, model_id: str) -> int:
    return get_estimator(model_id).estimate(text or "")
