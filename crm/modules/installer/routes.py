from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool
from crm.core.dependencies import check_installer_token, require_installer_enabled, require_same_origin
from crm.core.errors import ApiError, parse_payload, read_json
from crm.modules.installer.edge_functions import list_edge_functions
from crm.modules.installer.health import run_health_check
from crm.modules.installer.schemas import (
    CreateProjectRequest, HealthCheckRequest, PreflightRequest, ProjectStatusRequest,
    RunRequest, UnlockRequest, WizardBootstrapRequest
)
from crm.modules.installer.service import InstallerService
from crm.modules.installer.supabase_management import extract_project_ref


router = APIRouter(prefix="/installer", tags=["installer"], dependencies=[Depends(require_same_origin)])

gated = [Depends(require_installer_enabled)]


def get_installer_service() -> InstallerService:
    return InstallerService()


def get_health_checker():
    return run_health_check


@router.post("/bootstrap", dependencies=gated)
async def wizard_bootstrap(
    request: Request,
    service: InstallerService = Depends(get_installer_service)
):
    """Validate the deployment token and locate this instance's project"""
    data = parse_payload(WizardBootstrapRequest, await read_json(request))
    check_installer_token(data.installer_token)
    return await run_in_threadpool(service.wizard_bootstrap, data)


@router.post("/supabase/preflight", dependencies=gated)
async def preflight(
    request: Request,
    service: InstallerService = Depends(get_installer_service)
):
    """Organizations with plan and active project counts, plus a suggested target"""
    data = parse_payload(PreflightRequest, await read_json(request))
    check_installer_token(data.installer_token)
    return await run_in_threadpool(service.preflight, data.access_token.strip())


@router.post("/supabase/create-project", dependencies=gated)
async def create_project(
    request: Request,
    service: InstallerService = Depends(get_installer_service)
):
    data = parse_payload(CreateProjectRequest, await read_json(request))
    check_installer_token(data.installer_token)
    return await run_in_threadpool(service.create_project, data)


@router.post("/supabase/project-status", dependencies=gated)
async def project_status(
    request: Request,
    service: InstallerService = Depends(get_installer_service)
):
    data = parse_payload(ProjectStatusRequest, await read_json(request))
    check_installer_token(data.installer_token)
    return await run_in_threadpool(service.project_status, data.access_token, data.project_ref)


@router.get("/supabase/functions", dependencies=gated)
def list_functions():
    """Edge functions shipped with this instance and their verify_jwt flag"""
    functions = list_edge_functions()
    return {"ok": True, "count": len(functions), "functions": functions}


@router.post("/health-check")
async def health_check(
    request: Request,
    checker=Depends(get_health_checker)
):
    """Readiness snapshot used by the wizard to skip finished steps"""
    data = parse_payload(HealthCheckRequest, await read_json(request))
    supabase = data.supabase
    project_ref = (supabase.project_ref or "").strip() or extract_project_ref(str(supabase.url))
    if not project_ref:
        raise ApiError(400, "Could not determine project ref")
    return await run_in_threadpool(checker, project_ref, supabase.access_token, supabase.db_url)


@router.post("/run", dependencies=gated)
async def run_installation(
    request: Request,
    service: InstallerService = Depends(get_installer_service)
):
    """Apply the schema, bootstrap organization and admin, then hand the config to the deployment"""
    data = parse_payload(RunRequest, await read_json(request))
    check_installer_token(data.installer_token)
    return await run_in_threadpool(service.run, data)


@router.post("/unlock")
async def unlock(
    request: Request,
    service: InstallerService = Depends(get_installer_service)
):
    """Re-enable the installer and redeploy; allowed while the installer is disabled"""
    data = parse_payload(UnlockRequest, await read_json(request))
    return await run_in_threadpool(service.unlock, data)
