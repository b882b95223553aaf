from supabase import Client
from crm.core.errors import ApiError
from typing import Any, Dict, Optional
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


def _is_expired(expires_at: Optional[str], now: datetime) -> bool:
    if not expires_at:
        return False
    expires = datetime.fromisoformat(str(expires_at).replace("Z", "+00:00"))
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires < now


class InviteService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def validate_invite(self, token: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Check that an invite token can still be accepted.

        Used and expired invites answer 400 with their own message so the
        sign-up screen can tell them apart from an unknown token (404).
        """
        token = (token or "").strip()
        if not token:
            raise ApiError(400, "Missing token", valid=False)
        now = now or datetime.now(timezone.utc)

        try:
            result = self.supabase.table("organization_invites")\
                .select("token,email,role,expires_at,used_at")\
                .eq("token", token)\
                .is_("used_at", "null")\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.error(f"Failed to look up invite: {e}")
            raise ApiError(500, str(e), valid=False)

        invite = result.data if result is not None else None
        if not invite:
            self._raise_for_unavailable(token, now)

        if _is_expired(invite.get("expires_at"), now):
            raise ApiError(400, "This invite has expired", valid=False)

        return {
            "valid": True,
            "invite": {
                "email": invite.get("email"),
                "role": invite.get("role"),
                "expires_at": invite.get("expires_at"),
            },
        }

    def _raise_for_unavailable(self, token: str, now: datetime) -> None:
        try:
            result = self.supabase.table("organization_invites")\
                .select("used_at,expires_at")\
                .eq("token", token)\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.warning(f"Invite lookup for error message failed: {e}")
            result = None

        existing = result.data if result is not None else None
        if existing:
            if existing.get("used_at"):
                raise ApiError(400, "This invite has already been used", valid=False)
            if _is_expired(existing.get("expires_at"), now):
                raise ApiError(400, "This invite has expired", valid=False)
        raise ApiError(404, "Invite not found", valid=False)
