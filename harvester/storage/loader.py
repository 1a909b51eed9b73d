# storage/loader.py
import fnmatch
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from harvester.errors import (
    ConfigurationError,
    ContainerLoadError,
    CrowdinApiError,
    ProjectLoadError,
)
from harvester.processor.models import Container, TranslatableString
from harvester.progress import NullProgress, ProgressReporter
from harvester.storage.crowdin import STRINGS_BASED_PROJECT, CrowdinClient

logger = logging.getLogger(__name__)

# croql no se puede combinar con fileId: un único contenedor ficticio
_CROQL_CONTAINER = Container(id=0, label="croql")


@dataclass
class LoadResult:
    project:            dict
    containers:         list[Container] = field(default_factory=list)
    skipped_containers: list[str]       = field(default_factory=list)

    @property
    def is_strings_project(self) -> bool:
        return self.project.get("type") == STRINGS_BASED_PROJECT

    @property
    def strings(self) -> list[TranslatableString]:
        return [s for c in self.containers for s in c.strings]


def load_containers(
    client:        CrowdinClient,
    project_id:    int,
    crowdin_files: str                       = "",
    croql:         str                       = "",
    since:         Optional[str]             = None,
    progress:      Optional[ProgressReporter] = None,
) -> LoadResult:
    """
    Carga el proyecto, sus contenedores (archivos o branches) y los strings
    de cada uno. Un contenedor que falla se salta con aviso; un proyecto
    que no carga es fatal.
    """
    progress = progress or NullProgress()

    if croql and crowdin_files:
        raise ConfigurationError("--croql y --crowdin-files no se pueden usar juntos.")

    since_date = parse_since(since)

    progress.start("Cargando datos del proyecto...")
    try:
        project = client.get_project(project_id)
    except CrowdinApiError as e:
        progress.stop()
        raise ProjectLoadError(
            f"El proyecto {project_id} no existe o no es accesible: {e}"
        ) from e

    result = LoadResult(project=project)

    try:
        if result.is_strings_project:
            containers = [
                Container(id=b["id"], label=b.get("name") or b.get("path") or str(b["id"]))
                for b in client.list_branches(project_id)
            ]
        elif croql:
            containers = [Container(id=_CROQL_CONTAINER.id, label=_CROQL_CONTAINER.label)]
        else:
            containers = [
                Container(id=f["id"], label=f["path"])
                for f in filter_files(client.list_files(project_id), crowdin_files)
            ]
    except CrowdinApiError as e:
        progress.stop()
        raise ProjectLoadError(f"Error cargando los archivos del proyecto: {e}") from e
    progress.stop()

    for container in containers:
        progress.start(f"Cargando strings de {container.label}")
        try:
            container.strings = _load_container_strings(
                client, project_id, container, result.is_strings_project, croql, since_date,
            )
            result.containers.append(container)
        except ContainerLoadError as e:
            logger.warning("Contenedor %s saltado: %s", container.label, e)
            progress.warn(f"Error cargando strings de {container.label}: {e}. Se continúa con el resto...")
            result.skipped_containers.append(container.label)
        finally:
            progress.stop()

    return result


def _load_container_strings(
    client:             CrowdinClient,
    project_id:         int,
    container:          Container,
    is_strings_project: bool,
    croql:              str,
    since_date:         Optional[datetime],
) -> list[TranslatableString]:
    try:
        if is_strings_project:
            raw = client.list_strings(project_id, branch_id=container.id)
        elif croql:
            raw = client.list_strings(project_id, croql=croql)
        else:
            raw = client.list_strings(project_id, file_id=container.id)
    except CrowdinApiError as e:
        raise ContainerLoadError(str(e)) from e

    strings = [TranslatableString.from_api(row) for row in raw]
    if since_date:
        strings = [s for s in strings if _created_since(s, since_date)]
    return strings


def filter_files(files: list[dict], pattern: str) -> list[dict]:
    """Glob sobre la ruta completa o solo el nombre (matchBase)."""
    pattern = pattern or "*"
    return [
        f for f in files
        if fnmatch.fnmatch(f["path"], pattern)
        or fnmatch.fnmatch(f["path"].rsplit("/", 1)[-1], pattern)
    ]


def parse_since(value: Optional[str]) -> Optional[datetime]:
    """Fecha ISO-8601 (2024-05-01 o 2024-05-01T10:00:00+00:00). Sin zona → UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ConfigurationError(f"--since no es una fecha ISO válida: {value}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _created_since(string: TranslatableString, since_date: datetime) -> bool:
    if not string.created_at:
        return False
    try:
        created = parse_since(string.created_at)
    except ConfigurationError:
        return False
    return created >= since_date
