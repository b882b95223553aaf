"""
Client for the Supabase Management API: organizations, projects and the
privileged database login lookup used while provisioning.
"""

import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

import httpx

from crm.config import settings
from crm.core.errors import PlatformAPIError

logger = logging.getLogger(__name__)

PROJECTS_PAGE_SIZE = 100
MAX_PROJECT_PAGES = 50
REGION_SMART_GROUPS = ("americas", "emea", "apac")

_PROJECT_HOST_RE = re.compile(r"^([a-z0-9]{20})\.supabase\.(co|in)$")


def extract_project_ref(supabase_url: str) -> Optional[str]:
    """``https://<ref>.supabase.co`` -> ``<ref>``."""
    try:
        host = (urlparse(supabase_url.strip()).hostname or "").lower()
    except ValueError:
        return None
    match = _PROJECT_HOST_RE.match(host)
    return match.group(1) if match else None


def project_url(ref: str) -> str:
    return f"https://{ref}.supabase.co"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body.get("msg") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


def _project_descriptor(raw: Dict[str, Any], organization_slug: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ref": raw.get("ref") or raw.get("id"),
        "name": raw.get("name"),
        "status": raw.get("status"),
        "region": raw.get("region"),
        "organizationSlug": raw.get("organization_slug") or raw.get("organization_id") or organization_slug,
    }


class SupabaseManagementClient:
    def __init__(self, access_token: str, http_client: Optional[httpx.Client] = None):
        self._http = http_client or httpx.Client(
            base_url=settings.supabase_management_api_url,
            timeout=settings.http_timeout_seconds,
        )
        self._headers = {
            "Authorization": f"Bearer {access_token.strip()}",
            "Accept": "application/json",
        }

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._http.request(method, path, headers=self._headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Supabase Management API %s %s timed out: %s", method, path, e)
            raise PlatformAPIError(504, f"Supabase Management API timed out: {e}") from e
        except httpx.TransportError as e:
            logger.warning("Supabase Management API %s %s unreachable: %s", method, path, e)
            raise PlatformAPIError(502, f"Supabase Management API unreachable: {e}") from e
        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning("Supabase Management API %s %s failed: %s %s", method, path, response.status_code, message)
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            raise PlatformAPIError(response.status_code, message, payload)
        if not response.content:
            return None
        return response.json()

    def list_organizations(self) -> List[Dict[str, Any]]:
        data = self._request("GET", "/v1/organizations") or []
        return [
            {"id": o.get("id"), "slug": o.get("slug") or o.get("id"), "name": o.get("name")}
            for o in data
        ]

    def get_organization(self, slug: str) -> Dict[str, Any]:
        data = self._request("GET", f"/v1/organizations/{quote(slug, safe='')}") or {}
        return {"slug": data.get("slug") or data.get("id") or slug, "name": data.get("name"), "plan": data.get("plan")}

    def list_organization_projects(
        self,
        slug: str,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        projects: List[Dict[str, Any]] = []
        offset = 0
        for _ in range(MAX_PROJECT_PAGES):
            params: Dict[str, Any] = {"offset": offset, "limit": PROJECTS_PAGE_SIZE}
            if search:
                params["search"] = search
            data = self._request("GET", f"/v1/organizations/{quote(slug, safe='')}/projects", params=params)
            items = data.get("projects", []) if isinstance(data, dict) else (data or [])
            projects.extend(_project_descriptor(p, slug) for p in items)
            if len(items) < PROJECTS_PAGE_SIZE:
                break
            offset += PROJECTS_PAGE_SIZE
        return projects

    def create_project(
        self,
        organization_slug: str,
        name: str,
        db_pass: str,
        region_smart_group: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = {
            "name": name,
            "organization_id": organization_slug,
            "db_pass": db_pass,
            "region_selection": {"type": "smartGroup", "code": region_smart_group or "americas"},
        }
        data = self._request("POST", "/v1/projects", json=body) or {}
        ref = data.get("ref") or data.get("id")
        if not ref:
            raise PlatformAPIError(502, "Project created without a ref", data)
        logger.info("Created Supabase project %s", ref)
        return {"ref": ref, "name": data.get("name") or name}

    def get_project(self, ref: str) -> Dict[str, Any]:
        data = self._request("GET", f"/v1/projects/{quote(ref, safe='')}") or {}
        return _project_descriptor(data)

    def resolve_db_url(self, ref: str) -> str:
        """Temporary login role -> direct connection URL for the project database."""
        data = self._request("POST", f"/v1/projects/{quote(ref, safe='')}/cli/login-role", json={"read_only": False}) or {}
        role = data.get("role")
        password = data.get("password")
        if not role or not password:
            raise PlatformAPIError(502, "Login role response missing credentials")
        return (
            f"postgresql://{quote(role, safe='')}:{quote(password, safe='')}"
            f"@db.{ref}.supabase.co:5432/postgres?sslmode=require"
        )
