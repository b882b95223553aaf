"""
Client for the Vercel API: project lookup, environment variables and redeploys.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from crm.config import settings
from crm.core.errors import DeploymentNotReadyError, PlatformAPIError

logger = logging.getLogger(__name__)

DEFAULT_ENV_TARGETS = ["production", "preview"]
FAILED_READY_STATES = ("ERROR", "CANCELED")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if body.get("message"):
            return str(body["message"])
    return f"HTTP {response.status_code}"


def _project_domains(project: Dict[str, Any]) -> List[str]:
    domains = []
    for alias in project.get("alias") or []:
        domain = alias.get("domain") if isinstance(alias, dict) else alias
        if domain:
            domains.append(str(domain).lower())
    production = (project.get("targets") or {}).get("production") or {}
    domains.extend(str(a).lower() for a in production.get("alias") or [])
    if project.get("name"):
        domains.append(f"{project['name']}.vercel.app".lower())
    return domains


class VercelClient:
    def __init__(self, token: str, team_id: Optional[str] = None, http_client: Optional[httpx.Client] = None):
        self.team_id = team_id or None
        self._http = http_client or httpx.Client(
            base_url=settings.vercel_api_url,
            timeout=settings.http_timeout_seconds,
        )
        self._headers = {"Authorization": f"Bearer {token.strip()}"}

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        params = dict(params or {})
        if self.team_id:
            params["teamId"] = self.team_id
        try:
            response = self._http.request(method, path, headers=self._headers, params=params, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Vercel API %s %s timed out: %s", method, path, e)
            raise PlatformAPIError(504, f"Vercel API timed out: {e}") from e
        except httpx.TransportError as e:
            logger.warning("Vercel API %s %s unreachable: %s", method, path, e)
            raise PlatformAPIError(502, f"Vercel API unreachable: {e}") from e
        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning("Vercel API %s %s failed: %s %s", method, path, response.status_code, message)
            raise PlatformAPIError(response.status_code, message)
        if not response.content:
            return None
        return response.json()

    def list_projects(self, search: Optional[str] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"limit": 100}
        if search:
            params["search"] = search
        data = self._request("GET", "/v9/projects", params=params) or {}
        return data.get("projects", []) if isinstance(data, dict) else data

    def find_project_by_domain(self, domain: Optional[str]) -> Optional[Dict[str, Any]]:
        """Project serving ``domain``; without a domain, the only project the token can see."""
        projects = self.list_projects()
        if not domain:
            return projects[0] if len(projects) == 1 else None
        domain = domain.strip().lower()
        for project in projects:
            if domain in _project_domains(project):
                return project
        return None

    def upsert_project_envs(self, project_id: str, envs: List[Dict[str, Any]]) -> None:
        body = [
            {
                "key": env["key"],
                "value": env["value"],
                "type": "encrypted",
                "target": env.get("targets") or DEFAULT_ENV_TARGETS,
            }
            for env in envs
        ]
        self._request("POST", f"/v10/projects/{quote(project_id, safe='')}/env", params={"upsert": "true"}, json=body)
        logger.info("Upserted %d env var(s) on project %s", len(body), project_id)

    def trigger_redeploy(self, project_id: str) -> str:
        data = self._request(
            "GET", "/v6/deployments",
            params={"projectId": project_id, "target": "production", "limit": 1},
        ) or {}
        deployments = data.get("deployments") or []
        if not deployments:
            raise PlatformAPIError(404, "No production deployment found to redeploy")
        latest = deployments[0]
        created = self._request(
            "POST", "/v13/deployments",
            params={"forceNew": "1"},
            json={"name": latest.get("name"), "deploymentId": latest.get("uid"), "target": "production"},
        ) or {}
        deployment_id = created.get("id")
        if not deployment_id:
            raise PlatformAPIError(502, "Redeploy response missing deployment id")
        logger.info("Triggered redeploy %s for project %s", deployment_id, project_id)
        return deployment_id

    def get_deployment(self, deployment_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/v13/deployments/{quote(deployment_id, safe='')}") or {}

    def wait_for_deployment_ready(
        self,
        deployment_id: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        timeout = settings.deploy_ready_timeout_seconds if timeout is None else timeout
        poll_interval = settings.deploy_ready_poll_seconds if poll_interval is None else poll_interval
        deadline = clock() + timeout
        last_state: Optional[str] = None

        while clock() < deadline:
            deployment = self.get_deployment(deployment_id)
            last_state = deployment.get("readyState") or deployment.get("status")
            if last_state == "READY":
                return
            if last_state in FAILED_READY_STATES:
                raise DeploymentNotReadyError(f"Deployment finished with state {last_state}", last_state)
            remaining = deadline - clock()
            if remaining <= 0:
                break
            sleep(min(poll_interval, remaining))

        raise DeploymentNotReadyError("Timed out waiting for the deployment to become ready", last_state)
