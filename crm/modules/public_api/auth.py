"""
API key authentication for the public API.

Flow: ``X-Api-Key`` header -> SHA-256 -> non-revoked ``api_keys`` row ->
owning organization -> ``PublicApiContext``. Every failure answers the same
generic 401 and the raw key is never logged.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Header
from supabase import Client

from crm.core.errors import ApiError
from crm.database.supabase_client import get_service_supabase
from crm.modules.api_keys.hashing import hash_api_key

logger = logging.getLogger(__name__)


def _unauthorized() -> ApiError:
    return ApiError(401, "Invalid or missing API key", "UNAUTHORIZED")


@dataclass(frozen=True)
class PublicApiContext:
    organization_id: str
    organization_name: Optional[str]
    api_key_prefix: str


def authenticate_api_key(supabase: Client, raw_key: Optional[str]) -> PublicApiContext:
    token = (raw_key or "").strip()
    if not token:
        raise _unauthorized()

    result = supabase.table("api_keys")\
        .select("id,organization_id,key_prefix")\
        .eq("key_hash", hash_api_key(token))\
        .is_("revoked_at", "null")\
        .limit(1)\
        .execute()
    if not result.data:
        raise _unauthorized()
    key = result.data[0]

    org_result = supabase.table("organizations")\
        .select("id,name")\
        .eq("id", key["organization_id"])\
        .limit(1)\
        .execute()
    if not org_result.data:
        raise _unauthorized()

    try:
        supabase.table("api_keys")\
            .update({"last_used_at": datetime.now(timezone.utc).isoformat()})\
            .eq("id", key["id"])\
            .execute()
    except Exception as e:
        logger.warning("Could not stamp last_used_at for key %s: %s", key["key_prefix"], e)

    return PublicApiContext(
        organization_id=key["organization_id"],
        organization_name=org_result.data[0].get("name"),
        api_key_prefix=key["key_prefix"],
    )


def get_public_api_context(
    x_api_key: Optional[str] = Header(default=None, alias="X-Api-Key"),
    supabase: Client = Depends(get_service_supabase)
) -> PublicApiContext:
    return authenticate_api_key(supabase, x_api_key)
