from supabase import Client
from crm.core.errors import ApiError
from crm.modules.api_keys.hashing import generate_api_key
from crm.modules.api_keys.schemas import ApiKeyCreate, ApiKeyCreatedResponse, ApiKeyResponse
from typing import List
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)

PUBLIC_COLUMNS = "id,name,key_prefix,created_at,last_used_at,revoked_at"


class ApiKeyService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_api_key(self, data: ApiKeyCreate, organization_id: str, user_id: str) -> ApiKeyCreatedResponse:
        """Create a key for the organization. The raw token is only in this response."""
        raw_key, key_hash, key_prefix = generate_api_key()
        try:
            result = self.supabase.table("api_keys").insert({
                "organization_id": organization_id,
                "name": data.name.strip(),
                "key_hash": key_hash,
                "key_prefix": key_prefix,
                "created_by": user_id,
            }).execute()
        except Exception as e:
            logger.error(f"Failed to create API key for organization {organization_id}: {e}")
            raise ApiError(500, str(e), "DB_ERROR")

        if not result.data:
            raise ApiError(500, "Failed to create API key", "DB_ERROR")
        row = result.data[0]
        logger.info(f"API key {key_prefix} created for organization {organization_id}")
        return ApiKeyCreatedResponse(
            id=row["id"],
            name=row["name"],
            key_prefix=row["key_prefix"],
            created_at=row["created_at"],
            token=raw_key,
        )

    def list_api_keys(self, organization_id: str) -> List[ApiKeyResponse]:
        result = self.supabase.table("api_keys")\
            .select(PUBLIC_COLUMNS)\
            .eq("organization_id", organization_id)\
            .order("created_at", desc=True)\
            .execute()
        return [ApiKeyResponse(**row) for row in result.data or []]

    def revoke_api_key(self, key_id: str, organization_id: str) -> ApiKeyResponse:
        """Stamp revoked_at. Revoking twice keeps the first timestamp."""
        key = self._get_key(key_id, organization_id)
        if key.get("revoked_at"):
            return ApiKeyResponse(**key)

        result = self.supabase.table("api_keys")\
            .update({"revoked_at": datetime.now(timezone.utc).isoformat()})\
            .eq("id", key_id)\
            .eq("organization_id", organization_id)\
            .execute()
        if not result.data:
            raise ApiError(404, "API key not found", "NOT_FOUND")
        logger.info(f"API key {key['key_prefix']} revoked")
        return ApiKeyResponse(**{k: result.data[0].get(k) for k in PUBLIC_COLUMNS.split(",")})

    def delete_api_key(self, key_id: str, organization_id: str) -> None:
        key = self._get_key(key_id, organization_id)
        if not key.get("revoked_at"):
            raise ApiError(409, "Revoke the API key before deleting it", "NOT_REVOKED")

        self.supabase.table("api_keys")\
            .delete()\
            .eq("id", key_id)\
            .eq("organization_id", organization_id)\
            .execute()
        logger.info(f"API key {key['key_prefix']} deleted")

    def _get_key(self, key_id: str, organization_id: str) -> dict:
        result = self.supabase.table("api_keys")\
            .select(PUBLIC_COLUMNS)\
            .eq("id", key_id)\
            .eq("organization_id", organization_id)\
            .maybe_single()\
            .execute()
        if result is None or not result.data:
            raise ApiError(404, "API key not found", "NOT_FOUND")
        return result.data
