"""
Installer health check: project status, database readiness and the skip flags
the wizard uses to jump over steps that are already done.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from crm.core.errors import PlatformAPIError
from crm.modules.installer.database import check_database_health
from crm.modules.installer.supabase_management import SupabaseManagementClient

logger = logging.getLogger(__name__)

# First match wins. Substring matching on the platform's free-text status is
# fragile ("INACTIVE" contains "ACTIVE"); an exact enum upstream would be better.
STATUS_PRECEDENCE: Tuple[Tuple[Tuple[str, ...], str, bool], ...] = (
    (("ACTIVE_HEALTHY",), "ACTIVE_HEALTHY", True),
    (("ACTIVE",), "ACTIVE_UNHEALTHY", True),
    (("COMING_UP", "RESTORING"), "COMING_UP", False),
    (("PAUSED", "INACTIVE"), "PAUSED", False),
)

BASE_SECONDS = 10
OVERHEAD_SECONDS = 20
PROJECT_WAIT_SECONDS = 90
STORAGE_WAIT_SECONDS = 30
MIGRATION_SECONDS = 15
BOOTSTRAP_SECONDS = 5


def classify_project_status(raw_status: Optional[str]) -> Tuple[str, bool]:
    """Map a free-text platform status to ``(status, project_ready)``."""
    status = (raw_status or "").upper()
    for needles, classified, ready in STATUS_PRECEDENCE:
        if any(needle in status for needle in needles):
            return classified, ready
    return "UNKNOWN", False


def estimate_seconds(
    skip_wait_project: bool,
    skip_wait_storage: bool,
    skip_migrations: bool,
    skip_bootstrap: bool,
) -> int:
    seconds = BASE_SECONDS
    if not skip_wait_project:
        seconds += PROJECT_WAIT_SECONDS
    if not skip_wait_storage:
        seconds += STORAGE_WAIT_SECONDS
    if not skip_migrations:
        seconds += MIGRATION_SECONDS
    if not skip_bootstrap:
        seconds += BOOTSTRAP_SECONDS
    return seconds + OVERHEAD_SECONDS


def empty_snapshot() -> Dict[str, Any]:
    return {
        "ok": False,
        "projectStatus": "UNKNOWN",
        "projectReady": False,
        "storageReady": False,
        "schemaApplied": False,
        "hasAdmin": False,
        "hasOrganization": False,
        "skipWaitProject": False,
        "skipWaitStorage": False,
        "skipMigrations": False,
        "skipBootstrap": False,
        "estimatedSeconds": estimate_seconds(False, False, False, False),
    }


def run_health_check(
    project_ref: str,
    access_token: str,
    db_url: Optional[str] = None,
    management_client_factory: Callable[[str], SupabaseManagementClient] = SupabaseManagementClient,
    db_health: Callable[[str], Dict[str, bool]] = check_database_health,
) -> Dict[str, Any]:
    """Fresh readiness snapshot. Never raises: failures degrade to "not ready" with details."""
    result = empty_snapshot()
    provided_db_url = (db_url or "").strip()

    try:
        resolved_db_url = provided_db_url
        with management_client_factory(access_token) as client:
            try:
                project = client.get_project(project_ref)
                result["projectStatus"], result["projectReady"] = classify_project_status(project.get("status"))
            except PlatformAPIError as e:
                logger.warning("Project status lookup failed for %s: %s", project_ref, e.message)

            if not resolved_db_url and result["projectReady"]:
                try:
                    resolved_db_url = client.resolve_db_url(project_ref)
                except PlatformAPIError as e:
                    logger.warning("Database URL lookup failed for %s: %s", project_ref, e.message)

        if resolved_db_url and result["projectReady"]:
            result.update(db_health(resolved_db_url))

        result["skipWaitProject"] = result["projectReady"]
        result["skipWaitStorage"] = result["storageReady"]
        result["skipMigrations"] = result["schemaApplied"]
        result["skipBootstrap"] = result["hasAdmin"] and result["hasOrganization"]
        result["estimatedSeconds"] = estimate_seconds(
            result["skipWaitProject"],
            result["skipWaitStorage"],
            result["skipMigrations"],
            result["skipBootstrap"],
        )
        result["ok"] = True
        result["details"] = {
            "projectRef": project_ref,
            "dbUrlProvided": bool(provided_db_url),
            "dbUrlResolved": bool(resolved_db_url),
        }
    except Exception as e:
        logger.exception("Health check failed for %s", project_ref)
        result = empty_snapshot()
        result["details"] = {"error": str(e) or type(e).__name__}

    return result
