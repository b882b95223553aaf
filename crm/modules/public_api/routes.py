from fastapi import APIRouter, Depends, Query, Request
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from supabase import Client
from typing import Any, Dict, Optional
from crm.config import settings
from crm.core.errors import parse_payload, read_json
from crm.database.supabase_client import get_service_supabase
from crm.modules.public_api import deals
from crm.modules.public_api.auth import PublicApiContext, get_public_api_context
from crm.modules.public_api.errors import PublicApiError, ValidationFailedError
from crm.modules.public_api.sanitize import sanitize_uuid
from crm.modules.public_api.schemas import MoveStageByIdRequest, MoveStageByIdentityRequest, MoveStageRequest
from crm.modules.public_api.service import PublicApiService


router = APIRouter(prefix="/public/v1", tags=["public-api"])


def get_public_api_service(
    context: PublicApiContext = Depends(get_public_api_context),
    supabase: Client = Depends(get_service_supabase)
) -> PublicApiService:
    return PublicApiService(supabase, context)


async def _call(func, *args, **kwargs):
    try:
        return await run_in_threadpool(func, *args, **kwargs)
    except PublicApiError as e:
        raise e.to_api_error() from e


def _parse(model, raw):
    return parse_payload(model, raw, status_code=422, code="VALIDATION_ERROR")


def _json_body(model) -> Dict[str, Any]:
    """Request body entry for routes that read and validate the JSON body themselves."""
    return {
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": model.model_json_schema()}},
        }
    }


@router.get("/me")
def me(service: PublicApiService = Depends(get_public_api_service)):
    """Organization and key prefix behind the presented API key"""
    return service.me()


@router.get("/boards")
async def list_boards(
    q: Optional[str] = Query(None),
    key: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    cursor: Optional[str] = Query(None),
    service: PublicApiService = Depends(get_public_api_service)
):
    return await _call(service.list_boards, q=q, key=key, limit=limit, cursor=cursor)


@router.get("/boards/{board_key_or_id}")
async def get_board(
    board_key_or_id: str,
    service: PublicApiService = Depends(get_public_api_service)
):
    return await _call(service.get_board, board_key_or_id)


@router.get("/boards/{board_key_or_id}/stages")
async def list_stages(
    board_key_or_id: str,
    service: PublicApiService = Depends(get_public_api_service)
):
    return await _call(service.list_stages, board_key_or_id)


@router.post("/deals/move-stage-by-identity", openapi_extra=_json_body(MoveStageByIdentityRequest))
async def move_stage_by_identity(
    request: Request,
    service: PublicApiService = Depends(get_public_api_service)
):
    data = _parse(MoveStageByIdentityRequest, await read_json(request))
    return await _call(
        deals.move_stage_by_identity,
        service.supabase, service.organization_id, data.board_key_or_id,
        phone=data.phone, email=data.email,
        to_stage_id=data.to_stage_id, to_stage_label=data.to_stage_label, mark=data.mark,
    )


@router.post("/deals/move-stage", openapi_extra=_json_body(MoveStageRequest))
async def move_stage(
    request: Request,
    service: PublicApiService = Depends(get_public_api_service)
):
    """Move by ``deal_id``, or by board plus contact phone/email"""
    data = _parse(MoveStageRequest, await read_json(request))
    if data.deal_id:
        return await _call(
            deals.move_stage_by_deal_id,
            service.supabase, service.organization_id, data.deal_id,
            to_stage_id=data.to_stage_id, to_stage_label=data.to_stage_label, mark=data.mark,
        )
    return await _call(
        deals.move_stage_by_identity,
        service.supabase, service.organization_id, data.board_key_or_id,
        phone=data.phone, email=data.email,
        to_stage_id=data.to_stage_id, to_stage_label=data.to_stage_label, mark=data.mark,
    )


@router.post("/deals/{deal_id}/move-stage", openapi_extra=_json_body(MoveStageByIdRequest))
async def move_stage_by_deal_id(
    deal_id: str,
    request: Request,
    service: PublicApiService = Depends(get_public_api_service)
):
    if not sanitize_uuid(deal_id):
        raise ValidationFailedError("Invalid deal id").to_api_error()
    data = _parse(MoveStageByIdRequest, await read_json(request))
    return await _call(
        deals.move_stage_by_deal_id,
        service.supabase, service.organization_id, deal_id,
        to_stage_id=data.to_stage_id, to_stage_label=data.to_stage_label, mark=data.mark,
    )


_openapi_document: Optional[Dict[str, Any]] = None


def public_openapi_document() -> Dict[str, Any]:
    """OpenAPI document covering only the API-key authenticated routes of this router."""
    global _openapi_document
    if _openapi_document is None:
        document = get_openapi(
            title=f"{settings.app_name} public API",
            version="v1",
            description="Integration API authenticated with an organization API key (X-Api-Key).",
            routes=router.routes,
            servers=[{"url": "/api"}],
        )
        document.setdefault("components", {})["securitySchemes"] = {
            "ApiKeyAuth": {"type": "apiKey", "in": "header", "name": "X-Api-Key"},
        }
        document["security"] = [{"ApiKeyAuth": []}]
        _openapi_document = document
    return _openapi_document


@router.get("/openapi.json", include_in_schema=False)
def openapi_json():
    return JSONResponse(public_openapi_document(), headers={"Cache-Control": "public, max-age=60"})
