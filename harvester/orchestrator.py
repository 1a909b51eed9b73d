# harvester/orchestrator.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from harvester.context.merge import ResultKind, apply_results
from harvester.errors import HarvesterError
from harvester.processor.chunker.models import DroppedFragment
from harvester.processor.chunker.planner import ChunkPlanner
from harvester.processor.models import Container, FileContent, TranslatableString
from harvester.processor.screening import ScreenMode, screen_strings
from harvester.progress import NullProgress, ProgressReporter
from harvester.router.agent import AgentRunner
from harvester.router.base import BaseProvider
from harvester.router.prompt_builder import (
    AGENT_SYSTEM,
    CHECK_SYSTEM,
    DEFAULT_AGENT_PROMPT,
    DEFAULT_CHECK_PROMPT,
    DEFAULT_DESCRIBE_PROMPT,
    DEFAULT_EXTRACT_PROMPT,
    EXTRACT_SYSTEM,
    build_agent_messages,
    build_check_messages,
    build_extract_messages,
    template_tokens,
)
from harvester.router.response_parser import extract_contexts, extract_errors
from harvester.router.tools import (
    GET_MORE_CONTEXT,
    SET_CONTEXT,
    get_more_context_tool,
    id_type_for,
    return_context_tool,
    return_description_tool,
    set_context_tool,
)

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 10


# ------------------------------------------------------------------
# Resultado de una ejecución: lo que el CLI consume
# ------------------------------------------------------------------

@dataclass
class HarvestReport:
    total_strings:      int                   = 0
    strings_updated:    int                   = 0
    skipped_containers: list[str]             = field(default_factory=list)
    skipped_files:      list[str]             = field(default_factory=list)
    failed_units:       int                   = 0
    provider_calls:     int                   = 0
    tokens_used:        int                   = 0
    dropped:            list[DroppedFragment] = field(default_factory=list)


# ------------------------------------------------------------------
# Scheduler
# ------------------------------------------------------------------

class ExtractionScheduler:
    """
    Coordina planner, prompt, proveedor y merge sobre todos los strings.
    No tiene lógica de negocio propia: coordina módulos.

    - run_batch: secuencial, una llamada por (chunk de strings × chunk de código)
    - run_agent: pool fijo de workers, un string por tarea
    - run_check / describe_project: variantes de validación y descripción

    Un fallo de una unidad (chunk o string) se registra y no detiene la ejecución.
    """

    def __init__(
        self,
        provider:    BaseProvider,
        planner:     Optional[ChunkPlanner]     = None,
        progress:    Optional[ProgressReporter] = None,
        screen:      ScreenMode | str           = ScreenMode.KEYS,
        concurrency: int                        = DEFAULT_CONCURRENCY,
        agent:       Optional[AgentRunner]      = None,
        prompt:      Optional[str]              = None,
        working_dir: str                        = ".",
    ):
        self._provider    = provider
        self._planner     = planner or ChunkPlanner()
        self._progress    = progress or NullProgress()
        self._screen      = ScreenMode(screen)
        self._concurrency = max(1, int(concurrency or 1))
        self._agent       = agent
        self._prompt      = prompt
        self._working_dir = working_dir

    @property
    def concurrency(self) -> int:
        return self._concurrency

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def run_batch(
        self,
        containers: Sequence[Container],
        files:      Sequence[FileContent],
    ) -> HarvestReport:
        strings = [s for c in containers for s in c.strings]
        report  = HarvestReport(total_strings=len(strings))

        if not files:
            logger.info("No hay archivos locales: no se consulta al proveedor")
            self._progress.warn("No se encontraron archivos locales. No hay nada que extraer.")
            return report

        template = self._prompt or DEFAULT_EXTRACT_PROMPT
        tool     = set_context_tool(id_type_for([s.id for s in strings]))
        reserved = template_tokens(template, EXTRACT_SYSTEM, self._planner.estimate)

        for container in containers:
            if not container.strings:
                logger.info("Contenedor %s sin strings: saltado", container.label)
                continue

            for file in files:
                selected = screen_strings(container.strings, file.content, self._screen)
                if not selected:
                    logger.debug("Sin strings candidatos para %s en %s", container.label, file.path)
                    continue

                plan = self._planner.plan(selected, [file], reserved)
                report.dropped.extend(plan.dropped)
                for fragment in plan.dropped:
                    self._progress.warn(f"{fragment.path} es demasiado grande para procesarlo ({fragment.tokens} tokens)")

                total = plan.request_count
                self._progress.start(f"Extrayendo contexto de {file.path}...", total)
                for string_chunk, file_chunk in plan.requests():
                    messages = build_extract_messages(
                        template, string_chunk.payloads(), file_chunk.payloads(), EXTRACT_SYSTEM,
                    )
                    tokens = await self._run_unit(
                        report,
                        f"{file.path} ({len(string_chunk)} strings)",
                        self._extract_chunk(messages, tool, string_chunk.payloads(), report),
                    )
                    self._progress.increment(1, {"tokens": tokens})
                self._progress.stop()

        report.strings_updated = sum(1 for s in strings if s.extracted_context)
        return report

    async def _extract_chunk(self, messages, tool, strings, report: HarvestReport) -> int:
        response = await self._provider.execute(messages, [tool], tool_choice=SET_CONTEXT)
        report.provider_calls += 1
        report.tokens_used    += response.tokens_total
        added = apply_results(strings, extract_contexts(response), ResultKind.CONTEXT)
        logger.debug("Chunk con %d strings → %d contextos", len(strings), added)
        return response.tokens_total

    # ------------------------------------------------------------------
    # Agente concurrente
    # ------------------------------------------------------------------

    async def run_agent(self, strings: Sequence[TranslatableString]) -> HarvestReport:
        report = HarvestReport(total_strings=len(strings))
        if not strings:
            logger.info("No hay strings que procesar")
            return report

        agent    = self._require_agent()
        template = self._prompt or DEFAULT_AGENT_PROMPT
        final    = return_context_tool()
        cursor   = 0

        async def worker(worker_id: int) -> None:
            nonlocal cursor
            while cursor < len(strings):
                # leer y avanzar sin await en medio: cada string se reclama una vez
                string  = strings[cursor]
                cursor += 1
                tokens  = await self._run_unit(
                    report,
                    f"string {string.id}",
                    self._extract_one(agent, template, final, string, report),
                )
                self._progress.increment(1, {"tokens": tokens, "worker": worker_id})

        workers = min(self._concurrency, len(strings))
        self._progress.start("Extrayendo contexto...", len(strings))
        try:
            await asyncio.gather(*(worker(i) for i in range(workers)))
        finally:
            self._progress.stop()

        report.strings_updated = sum(1 for s in strings if s.extracted_context)
        return report

    async def _extract_one(self, agent, template, final, string, report: HarvestReport) -> int:
        messages = build_agent_messages(template, string, self._working_dir, AGENT_SYSTEM)
        outcome  = await agent.run(messages, final)
        report.provider_calls += outcome.steps
        report.tokens_used    += outcome.tokens_used
        if outcome.found:
            string.add_context(outcome.text)
        return outcome.tokens_used

    # ------------------------------------------------------------------
    # Validación
    # ------------------------------------------------------------------

    async def run_check(
        self,
        strings:          Sequence[TranslatableString],
        target_languages: Sequence[str],
    ) -> HarvestReport:
        report = HarvestReport(total_strings=len(strings))
        if not strings:
            logger.info("No hay strings que validar")
            return report

        template = self._prompt or DEFAULT_CHECK_PROMPT
        tool     = get_more_context_tool(id_type_for([s.id for s in strings]))
        reserved = template_tokens(template, CHECK_SYSTEM, self._planner.estimate)
        budget   = self._planner.budget(reserved)
        chunks   = self._planner.plan_strings(strings, budget.strings)

        self._progress.start("Validando strings...", len(chunks))
        for chunk in chunks:
            messages = build_check_messages(template, chunk.payloads(), target_languages, CHECK_SYSTEM)
            tokens = await self._run_unit(
                report,
                f"chunk de {len(chunk)} strings",
                self._check_chunk(messages, tool, chunk.payloads(), report),
            )
            self._progress.increment(1, {"tokens": tokens})
        self._progress.stop()

        report.strings_updated = sum(1 for s in strings if s.errors)
        return report

    async def _check_chunk(self, messages, tool, strings, report: HarvestReport) -> int:
        response = await self._provider.execute(messages, [tool], tool_choice=GET_MORE_CONTEXT)
        report.provider_calls += 1
        report.tokens_used    += response.tokens_total
        apply_results(strings, extract_errors(response), ResultKind.ERROR)
        return response.tokens_total

    # ------------------------------------------------------------------
    # Descripción del proyecto
    # ------------------------------------------------------------------

    async def describe_project(self) -> tuple[Optional[str], HarvestReport]:
        """El agente recorre el repo y devuelve una descripción para traductores."""
        report   = HarvestReport()
        agent    = self._require_agent()
        template = self._prompt or DEFAULT_DESCRIBE_PROMPT
        messages = build_agent_messages(template, None, self._working_dir, AGENT_SYSTEM)

        self._progress.start("Analizando el proyecto...")
        try:
            outcome = await agent.run(messages, return_description_tool())
        finally:
            self._progress.stop()

        report.provider_calls = outcome.steps
        report.tokens_used    = outcome.tokens_used
        return outcome.text, report

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run_unit(self, report: HarvestReport, label: str, work) -> int:
        """Ejecuta una unidad de trabajo; un fallo cuenta como 'sin contexto' y sigue."""
        try:
            return await work
        except HarvesterError as e:
            logger.warning("Error en %s: %s", label, e)
            message = str(e)
        except Exception as e:
            logger.warning("Error inesperado en %s: %s: %s", label, type(e).__name__, e)
            message = f"{type(e).__name__}: {e}"
        report.failed_units += 1
        self._progress.warn(f"Error procesando {label}: {message}. Se continúa...")
        return 0

    def _require_agent(self) -> AgentRunner:
        if self._agent is None:
            raise HarvesterError("El modo agente necesita un AgentRunner configurado")
        return self._agent
