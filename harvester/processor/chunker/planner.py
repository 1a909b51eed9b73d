# chunker/planner.py
import logging
from typing import Callable, Hashable, Sequence

from harvester.errors import ConfigurationError
from harvester.processor.chunker.models import (
    Budget,
    Chunk,
    ChunkConfig,
    ChunkPlan,
    DroppedFragment,
)
from harvester.processor.chunker.token_estimator import TokenEstimator, SimpleTokenEstimator
from harvester.processor.models import FileContent, TranslatableString
from harvester.router.prompt_builder import serialize_files, serialize_strings

logger = logging.getLogger(__name__)


class ChunkPlanner:
    """
    Reparte strings y archivos en chunks que caben en la ventana del modelo.

    Presupuesto efectivo = ventana - output máximo - tokens de la plantilla.
    Los strings se limitan a una fracción del output (cada string puede
    volver con su contexto); el resto del presupuesto es para código.
    """

    def __init__(
        self,
        config:            ChunkConfig | None = None,
        estimator:         TokenEstimator | None = None,
        serialize_strings: Callable[[Sequence[TranslatableString]], str] = serialize_strings,
        serialize_files:   Callable[[Sequence[FileContent]], str] = serialize_files,
    ):
        self._config            = config or ChunkConfig()
        self._estimator         = estimator or SimpleTokenEstimator()
        self._serialize_strings = serialize_strings
        self._serialize_files   = serialize_files

    @property
    def config(self) -> ChunkConfig:
        return self._config

    def estimate(self, text: str) -> int:
        return self._estimator.estimate(text)

    def budget(self, prompt_tokens: int) -> Budget:
        cfg       = self._config
        effective = cfg.context_window - cfg.max_output_tokens - prompt_tokens
        if effective <= 0:
            raise ConfigurationError(
                f"La plantilla del prompt ({prompt_tokens} tokens) no cabe en la ventana "
                f"del modelo ({cfg.context_window} - {cfg.max_output_tokens} de output)."
            )
        strings = min(int(cfg.max_output_tokens * cfg.strings_ratio), effective)
        return Budget(effective=effective, strings=strings, files=effective - strings)

    # ------------------------------------------------------------------
    # API pública
    # ------------------------------------------------------------------

    def plan(
        self,
        strings:       Sequence[TranslatableString],
        files:         Sequence[FileContent],
        prompt_tokens: int,
    ) -> ChunkPlan:
        budget = self.budget(prompt_tokens)
        logger.debug(
            "Presupuesto: efectivo=%d strings=%d archivos=%d",
            budget.effective, budget.strings, budget.files,
        )
        file_chunks, dropped = self.plan_files(files, budget.files)
        return ChunkPlan(
            string_chunks = self.plan_strings(strings, budget.strings),
            file_chunks   = file_chunks,
            dropped       = dropped,
        )

    def plan_strings(self, strings: Sequence[TranslatableString], limit: int) -> list[Chunk]:
        return self._greedy(
            [(s.id, s) for s in strings],
            limit,
            lambda payloads: self._serialize_strings(payloads),
        )

    def plan_files(
        self,
        files: Sequence[FileContent],
        limit: int,
    ) -> tuple[list[Chunk], list[DroppedFragment]]:
        items:   list[tuple[Hashable, FileContent]] = []
        dropped: list[DroppedFragment]               = []

        for file in files:
            fragments, too_large = self._bisect(file, limit)
            items.extend(
                (f"{f.path}#{f.part}" if f.is_fragment else f.path, f) for f in fragments
            )
            dropped.extend(too_large)

        chunks = self._greedy(items, limit, lambda payloads: self._serialize_files(payloads))
        return chunks, dropped

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------

    def _greedy(self, items, limit: int, serialize) -> list[Chunk]:
        """
        Añade miembros uno a uno midiendo el chunk serializado completo.
        Si el recién añadido desborda, se saca, se cierra el chunk y abre el siguiente.
        Un miembro que por sí solo excede el límite va solo (oversized).
        """
        chunks:  list[Chunk] = []
        current: dict        = {}
        tokens               = 0

        for member_id, payload in items:
            current[member_id] = payload
            candidate_tokens   = self.estimate(serialize(list(current.values())))

            if candidate_tokens <= limit:
                tokens = candidate_tokens
                continue

            if len(current) == 1:
                # Degenerado: no se puede partir más, va solo con aviso
                logger.warning(
                    "Miembro %s excede por sí solo el límite (%d > %d tokens)",
                    member_id, candidate_tokens, limit,
                )
                chunks.append(Chunk(dict(current), candidate_tokens, oversized=True))
                current, tokens = {}, 0
                continue

            del current[member_id]
            chunks.append(Chunk(dict(current), tokens))

            current          = {member_id: payload}
            candidate_tokens = self.estimate(serialize([payload]))
            if candidate_tokens > limit:
                logger.warning(
                    "Miembro %s excede por sí solo el límite (%d > %d tokens)",
                    member_id, candidate_tokens, limit,
                )
                chunks.append(Chunk(dict(current), candidate_tokens, oversized=True))
                current, tokens = {}, 0
            else:
                tokens = candidate_tokens

        if current:
            chunks.append(Chunk(dict(current), tokens))
        return chunks

    def _bisect(
        self,
        file:  FileContent,
        limit: int,
    ) -> tuple[list[FileContent], list[DroppedFragment]]:
        """
        Parte el contenido en mitades (por caracteres) hasta que cada fragmento
        cabe o se agota el techo de particiones. Worklist explícita, sin recursión.
        """
        max_splits = self._config.max_splits
        # (contenido, particiones restantes, posición en el árbol para ordenar)
        stack:   list[tuple[str, int, str]] = [(file.content, max_splits, "")]
        fitting: list[tuple[str, str]]      = []
        dropped: list[DroppedFragment]      = []

        while stack:
            content, remaining, position = stack.pop()
            tokens = self.estimate(self._serialize_files([FileContent(file.path, content)]))

            if tokens <= limit:
                fitting.append((position, content))
                continue

            if remaining == 0 or len(content) < 2:
                logger.warning(
                    "Fragmento de %s demasiado grande para procesar (%d tokens), descartado",
                    file.path, tokens,
                )
                dropped.append(DroppedFragment(path=file.path, tokens=tokens))
                continue

            middle = (len(content) + 1) // 2
            # derecha primero para que la izquierda salga antes de la pila
            stack.append((content[middle:], remaining - 1, position + "1"))
            stack.append((content[:middle], remaining - 1, position + "0"))

        if len(fitting) == 1 and fitting[0][0] == "":
            return [file], dropped

        fitting.sort(key=lambda entry: entry[0])
        parts = len(fitting)
        if parts > 1 or dropped:
            logger.debug("%s partido en %d fragmentos", file.path, parts)
        return (
            [FileContent(file.path, content, part=i + 1, parts=parts)
             for i, (_, content) in enumerate(fitting)],
            dropped,
        )
