# storage/crowdin.py
import logging
import re
from typing import Any, Optional

import requests

from harvester.errors import CrowdinApiError

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.crowdin.com/api/v2"
_PAGE_LIMIT       = 500
_ORG_NAME_RE      = re.compile(r"^[a-z0-9\-]+$", re.IGNORECASE)

# project.type == 1 → proyecto de strings (branches en vez de archivos)
STRINGS_BASED_PROJECT = 1


def resolve_base_url(organization: Optional[str] = None, url: Optional[str] = None) -> str:
    """
    --url gana siempre; si no, la organización puede venir como nombre
    ("acme") o como URL completa ("https://acme.api.crowdin.com").
    """
    if url:
        return url.rstrip("/") + "/api/v2"
    if organization:
        if _ORG_NAME_RE.match(organization):
            return f"https://{organization}.api.crowdin.com/api/v2"
        return organization.rstrip("/") + "/api/v2"
    return _DEFAULT_BASE_URL


class CrowdinClient:
    """
    Cliente mínimo de la API v2: solo lo que el harvester consume.
    Todas las respuestas de listado llegan como [{"data": {...}}] paginado.
    """

    def __init__(
        self,
        token:        str,
        organization: Optional[str]              = None,
        url:          Optional[str]              = None,
        timeout:      int                        = 60,
        session:      Optional[requests.Session] = None,
    ):
        self._base_url     = resolve_base_url(organization, url)
        self._timeout      = timeout
        self._session      = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type":  "application/json",
        })
        self.is_enterprise = bool(organization)
        self._user_id: Optional[int] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # Proyectos y strings
    # ------------------------------------------------------------------

    def list_projects(self) -> list[dict]:
        return self._fetch_all("/projects")

    def get_project(self, project_id: int) -> dict:
        return self._request("GET", f"/projects/{project_id}").get("data", {})

    def edit_project(self, project_id: int, operations: list[dict]) -> dict:
        return self._request("PATCH", f"/projects/{project_id}", json=operations).get("data", {})

    def list_files(self, project_id: int) -> list[dict]:
        return self._fetch_all(f"/projects/{project_id}/files")

    def list_branches(self, project_id: int) -> list[dict]:
        return self._fetch_all(f"/projects/{project_id}/branches")

    def list_strings(
        self,
        project_id: int,
        file_id:    Optional[int] = None,
        branch_id:  Optional[int] = None,
        croql:      Optional[str] = None,
    ) -> list[dict]:
        """croql es excluyente con fileId/branchId (lo impone la API)."""
        params: dict[str, Any] = {}
        if croql:
            params["croql"] = croql
        elif branch_id is not None:
            params["branchId"] = branch_id
        elif file_id is not None:
            params["fileId"] = file_id
        return self._fetch_all(f"/projects/{project_id}/strings", params)

    def list_supported_languages(self) -> list[dict]:
        return self._fetch_all("/languages")

    def batch_patch_strings(self, project_id: int, operations: list[dict]) -> list[dict]:
        body = self._request("PATCH", f"/projects/{project_id}/strings", json=operations)
        return [row.get("data", row) for row in body.get("data", [])]

    # ------------------------------------------------------------------
    # Passthrough de IA: variante de usuario o de organización
    # ------------------------------------------------------------------

    def get_authenticated_user(self) -> dict:
        return self._request("GET", "/user").get("data", {})

    @property
    def user_id(self) -> int:
        if self._user_id is None:
            self._user_id = self.get_authenticated_user()["id"]
        return self._user_id

    def _ai_prefix(self) -> str:
        if self.is_enterprise:
            return "/ai"
        return f"/users/{self.user_id}/ai"

    def list_ai_providers(self) -> list[dict]:
        return self._fetch_all(f"{self._ai_prefix()}/providers")

    def list_ai_provider_models(self, provider_id: int) -> list[dict]:
        return self._fetch_all(f"{self._ai_prefix()}/providers/{provider_id}/models")

    def create_proxy_chat_completion(
        self,
        provider_id: int,
        payload:     dict,
        timeout:     Optional[int] = None,
    ) -> dict:
        """timeout sustituye al del cliente: una completion tarda más que un listado."""
        path = f"{self._ai_prefix()}/providers/{provider_id}/chat/completions"
        return self._request("POST", path, json=payload, timeout=timeout).get("data", {})

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _fetch_all(self, path: str, params: Optional[dict] = None) -> list[dict]:
        items  = []
        offset = 0
        while True:
            page = dict(params or {}, limit=_PAGE_LIMIT, offset=offset)
            rows = self._request("GET", path, params=page).get("data", [])
            items.extend(row.get("data", row) for row in rows)
            if len(rows) < _PAGE_LIMIT:
                return items
            offset += _PAGE_LIMIT

    def _request(self, method: str, path: str, timeout: Optional[int] = None, **kwargs) -> dict:
        url = self._base_url + path
        logger.debug("%s %s", method, url)
        try:
            response = self._session.request(method, url, timeout=timeout or self._timeout, **kwargs)
        except requests.RequestException as e:
            raise CrowdinApiError(f"{method} {path}: {e}") from e

        if response.status_code >= 400:
            raise CrowdinApiError(_error_message(response), status=response.status_code)

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()


def _error_message(response: requests.Response) -> str:
    """
    La API devuelve {"error": {code, message}} o, en validación,
    {"errors": [{"error": {"key", "errors": [{code, message}]}}]}.
    """
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:200]}"

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message") or f"HTTP {response.status_code}"

    messages = []
    for entry in (body.get("errors") if isinstance(body, dict) else None) or []:
        error = entry.get("error", {})
        for detail in error.get("errors", []):
            messages.append(f"{error.get('key')}: {detail.get('code')} ({detail.get('message')})")
    return "; ".join(messages) or f"HTTP {response.status_code}"
