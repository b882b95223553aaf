import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from supabase import Client

from crm.core.errors import ApiError, DeploymentNotReadyError, PlatformAPIError, StorageNotReadyError
from crm.database.supabase_client import create_admin_client
from crm.modules.installer.bootstrap import BootstrapError, bootstrap_instance
from crm.modules.installer.database import run_schema_migration
from crm.modules.installer.password_policy import validate_installer_password
from crm.modules.installer.schemas import (
    CreateProjectRequest, RunRequest, UnlockRequest, VercelCredentials, WizardBootstrapRequest
)
from crm.modules.installer.supabase_management import (
    SupabaseManagementClient, extract_project_ref, project_url
)
from crm.modules.installer.vercel import VercelClient

logger = logging.getLogger(__name__)

FREE_PLAN_ACTIVE_LIMIT = 2
PREFLIGHT_MAX_WORKERS = 8


def _is_free(plan: Optional[str]) -> bool:
    return str(plan or "").lower() == "free"


def _platform_error(e: PlatformAPIError) -> ApiError:
    return ApiError(e.status_code or 500, e.message, status=e.status_code)


class InstallerService:
    def __init__(
        self,
        management_client_factory: Callable[[str], SupabaseManagementClient] = SupabaseManagementClient,
        vercel_client_factory: Callable[..., VercelClient] = VercelClient,
        admin_client_factory: Callable[[str, str], Client] = create_admin_client,
        migrate: Callable[[str], None] = run_schema_migration,
    ):
        self.management_client_factory = management_client_factory
        self.vercel_client_factory = vercel_client_factory
        self.admin_client_factory = admin_client_factory
        self.migrate = migrate

    def _vercel(self, creds: VercelCredentials) -> VercelClient:
        return self.vercel_client_factory(creds.token, creds.team_id)

    def wizard_bootstrap(self, data: WizardBootstrapRequest) -> Dict[str, Any]:
        """Validate the deployment-host token and find the project this instance runs as."""
        try:
            with self.vercel_client_factory(data.token, None) as vercel:
                project = vercel.find_project_by_domain(data.domain)
        except PlatformAPIError as e:
            raise _platform_error(e)
        if not project:
            raise ApiError(404, "Project not found for this token", "PROJECT_NOT_FOUND")
        return {
            "ok": True,
            "project": {
                "id": project.get("id"),
                "name": project.get("name"),
                "teamId": project.get("accountId"),
                "url": f"https://{data.domain}" if data.domain else None,
            },
        }

    def preflight(self, access_token: str) -> Dict[str, Any]:
        with self.management_client_factory(access_token) as client:
            try:
                organizations = client.list_organizations()
            except PlatformAPIError as e:
                raise _platform_error(e)

            enriched: List[Dict[str, Any]] = []
            if organizations:
                workers = min(PREFLIGHT_MAX_WORKERS, len(organizations) * 2)
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    futures = [
                        (
                            org,
                            pool.submit(client.get_organization, org["slug"]),
                            pool.submit(client.list_organization_projects, org["slug"]),
                        )
                        for org in organizations
                    ]
                    for org, details_future, projects_future in futures:
                        enriched.append(self._enrich_organization(org, details_future, projects_future))

        free_orgs = [o for o in enriched if _is_free(o["plan"])]
        free_active = sum(o["activeCount"] for o in free_orgs)
        suggested = next((o for o in enriched if not _is_free(o["plan"])), None) or next(
            (o for o in free_orgs if o["activeCount"] < FREE_PLAN_ACTIVE_LIMIT), None
        )
        return {
            "ok": True,
            "organizations": enriched,
            "freeGlobalActiveCount": free_active,
            "freeGlobalLimitHit": free_active >= FREE_PLAN_ACTIVE_LIMIT,
            "suggestedOrganizationSlug": suggested["slug"] if suggested else None,
        }

    @staticmethod
    def _enrich_organization(org, details_future, projects_future) -> Dict[str, Any]:
        plan = None
        try:
            plan = details_future.result().get("plan")
        except PlatformAPIError as e:
            logger.warning("Organization details failed for %s: %s", org["slug"], e.message)
        try:
            projects = projects_future.result()
        except PlatformAPIError as e:
            logger.warning("Project listing failed for %s: %s", org["slug"], e.message)
            projects = []

        active = [p for p in projects if (p.get("status") or "").upper().startswith("ACTIVE")]
        return {
            "slug": org["slug"],
            "name": org["name"],
            "id": org["id"],
            "plan": plan if isinstance(plan, str) else None,
            "activeCount": len(active),
            "activeProjects": [
                {
                    "ref": p["ref"],
                    "name": p["name"],
                    "status": p["status"],
                    "organizationSlug": p.get("organizationSlug") or org["slug"],
                    "supabaseUrl": project_url(p["ref"]),
                }
                for p in active
            ],
        }

    def create_project(self, data: CreateProjectRequest) -> Dict[str, Any]:
        access_token = data.access_token.strip()
        organization_slug = data.organization_slug.strip()
        name = data.name.strip()

        with self.management_client_factory(access_token) as client:
            try:
                created = client.create_project(organization_slug, name, data.db_pass, data.region_smart_group)
            except PlatformAPIError as e:
                # Existing projects are never reused; report the clash so the wizard can offer actions
                if e.status_code in (400, 409) and "already exists" in e.message.lower():
                    existing = self._find_project_by_name(client, organization_slug, name)
                    if existing:
                        raise ApiError(
                            409, "Project already exists", "PROJECT_EXISTS",
                            existingProject={
                                "ref": existing["ref"],
                                "name": existing["name"],
                                "status": existing["status"],
                                "region": existing["region"],
                            },
                        )
                raise ApiError(e.status_code or 500, e.message, status=e.status_code, details=e.payload)

        return {
            "ok": True,
            "projectRef": created["ref"],
            "projectName": created["name"],
            "supabaseUrl": project_url(created["ref"]),
        }

    @staticmethod
    def _find_project_by_name(client: SupabaseManagementClient, organization_slug: str, name: str):
        try:
            projects = client.list_organization_projects(organization_slug, search=name)
        except PlatformAPIError as e:
            logger.warning("Existing project lookup failed: %s", e.message)
            return None
        target = name.strip().lower()
        return next((p for p in projects if str(p.get("name") or "").strip().lower() == target), None)

    def project_status(self, access_token: str, project_ref: str) -> Dict[str, Any]:
        with self.management_client_factory(access_token.strip()) as client:
            try:
                project = client.get_project(project_ref.strip())
            except PlatformAPIError as e:
                raise ApiError(e.status_code or 500, e.message)
        return {
            "ok": True,
            "projectRef": project["ref"],
            "status": project.get("status"),
            "name": project.get("name"),
            "region": project.get("region"),
        }

    def _resolve_db_url(self, data: RunRequest) -> str:
        if data.supabase.db_url:
            return data.supabase.db_url.strip()
        ref = extract_project_ref(str(data.supabase.url))
        if not ref:
            raise ApiError(400, "Could not determine project ref")
        with self.management_client_factory(data.supabase.access_token) as client:
            try:
                return client.resolve_db_url(ref)
            except PlatformAPIError as e:
                raise _platform_error(e)

    def _redeploy_with_envs(self, creds: VercelCredentials, envs: List[Dict[str, Any]]) -> str:
        try:
            with self._vercel(creds) as vercel:
                vercel.upsert_project_envs(creds.project_id, envs)
                deployment_id = vercel.trigger_redeploy(creds.project_id)
                vercel.wait_for_deployment_ready(deployment_id)
        except DeploymentNotReadyError as e:
            raise ApiError(504, str(e), lastReadyState=e.last_ready_state)
        except PlatformAPIError as e:
            raise _platform_error(e)
        return deployment_id

    def run(self, data: RunRequest) -> Dict[str, Any]:
        password_error = validate_installer_password(data.admin.password)
        if password_error:
            raise ApiError(422, password_error, "WEAK_PASSWORD")

        supabase_url = str(data.supabase.url).rstrip("/")
        migrated = False
        if not data.skip_migrations:
            db_url = self._resolve_db_url(data)
            try:
                self.migrate(db_url)
            except StorageNotReadyError as e:
                raise ApiError(504, str(e), "STORAGE_NOT_READY")
            except Exception as e:
                cause = getattr(e, "orig", None) or e
                logger.error("Schema migration failed: %s", cause)
                raise ApiError(500, f"Migration failed: {cause}", "MIGRATION_FAILED")
            migrated = True

        admin = self.admin_client_factory(supabase_url, data.supabase.service_role_key)
        try:
            result = bootstrap_instance(admin, data.admin.company_name, data.admin.email, data.admin.password)
        except BootstrapError as e:
            raise ApiError(500, str(e), "BOOTSTRAP_FAILED")

        body: Dict[str, Any] = {
            "ok": True,
            "organizationId": result.organization_id,
            "userId": result.user_id,
            "mode": result.mode,
            "migrated": migrated,
        }
        if data.vercel:
            body["deploymentId"] = self._redeploy_with_envs(
                data.vercel,
                [
                    {"key": "SUPABASE_URL", "value": supabase_url},
                    {"key": "SUPABASE_KEY", "value": data.supabase.anon_key},
                    {"key": "SUPABASE_SERVICE_ROLE_KEY", "value": data.supabase.service_role_key},
                    {"key": "INSTALLER_ENABLED", "value": "false"},
                ],
            )
        return body

    def unlock(self, data: UnlockRequest) -> Dict[str, Any]:
        try:
            deployment_id = self._redeploy_with_envs(
                data.vercel, [{"key": "INSTALLER_ENABLED", "value": "true"}]
            )
        except ApiError:
            raise
        except Exception as e:
            logger.exception("Unlock failed")
            raise ApiError(500, str(e) or "Failed to unlock installer")
        return {"ok": True, "deploymentId": deployment_id}
