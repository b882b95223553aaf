from fastapi import APIRouter, Depends, Query
from crm.database.supabase_client import get_service_supabase
from crm.modules.invites.service import InviteService
from supabase import Client
from typing import Optional

router = APIRouter(prefix="/invites", tags=["invites"])


def get_invite_service(supabase: Client = Depends(get_service_supabase)) -> InviteService:
    return InviteService(supabase)


@router.get("/validate")
def validate_invite(
    token: Optional[str] = Query(None),
    service: InviteService = Depends(get_invite_service)
):
    """Public check used by the sign-up screen before accepting an invite"""
    return service.validate_invite(token)
