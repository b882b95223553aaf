from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool
from crm.core.dependencies import get_current_organization_id, get_current_user_id
from crm.core.errors import ApiError, parse_payload, read_json
from crm.database.supabase_client import get_service_supabase
from crm.modules.api_keys.schemas import ApiKeyCreate, ApiKeyCreatedResponse, ApiKeyResponse
from crm.modules.api_keys.service import ApiKeyService
from crm.modules.public_api.sanitize import sanitize_uuid
from supabase import Client
from typing import Dict, List

router = APIRouter(prefix="/settings/api-keys", tags=["api-keys"])


def get_api_key_service(supabase: Client = Depends(get_service_supabase)) -> ApiKeyService:
    return ApiKeyService(supabase)


def _key_id(key_id: str) -> str:
    canonical = sanitize_uuid(key_id)
    if not canonical:
        raise ApiError(404, "API key not found", "NOT_FOUND")
    return canonical


@router.post("", response_model=ApiKeyCreatedResponse, status_code=201)
async def create_api_key(
    request: Request,
    user_data: Dict = Depends(get_current_user_id),
    organization_id: str = Depends(get_current_organization_id),
    service: ApiKeyService = Depends(get_api_key_service)
):
    """Create an API key. The token is shown only in this response."""
    data = parse_payload(ApiKeyCreate, await read_json(request), status_code=422, code="VALIDATION_ERROR")
    return await run_in_threadpool(service.create_api_key, data, organization_id, user_data["id"])


@router.get("", response_model=List[ApiKeyResponse])
def list_api_keys(
    organization_id: str = Depends(get_current_organization_id),
    service: ApiKeyService = Depends(get_api_key_service)
):
    return service.list_api_keys(organization_id)


@router.post("/{key_id}/revoke", response_model=ApiKeyResponse)
def revoke_api_key(
    key_id: str,
    organization_id: str = Depends(get_current_organization_id),
    service: ApiKeyService = Depends(get_api_key_service)
):
    return service.revoke_api_key(_key_id(key_id), organization_id)


@router.delete("/{key_id}", status_code=204)
def delete_api_key(
    key_id: str,
    organization_id: str = Depends(get_current_organization_id),
    service: ApiKeyService = Depends(get_api_key_service)
):
    """Delete a revoked API key"""
    service.delete_api_key(_key_id(key_id), organization_id)
    return Response(status_code=204)
