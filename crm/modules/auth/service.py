import hashlib
import time
from supabase import Client
from crm.core.errors import ApiError
from typing import Dict, Any

# In-memory cache for get_current_user to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500

# user_id -> organization_id. Read-mostly; a miss overwrites the entry wholesale.
_ORGANIZATION_ID_CACHE: Dict[str, str] = {}


class AuthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from Supabase Auth token. Uses short TTL cache to reduce auth API calls."""
        try:
            cache_key = hashlib.sha256(token.encode()).hexdigest()
            now = time.monotonic()
            if cache_key in _AUTH_USER_CACHE:
                user_data, expiry = _AUTH_USER_CACHE[cache_key]
                if now < expiry:
                    return user_data
                del _AUTH_USER_CACHE[cache_key]
            user_response = self.supabase.auth.get_user(jwt=token)
            if not user_response or not user_response.user:
                raise ApiError(401, "Invalid or expired token", "UNAUTHORIZED")
            user = user_response.user
            user_data = {
                "id": user.id,
                "email": user.email,
                "user_metadata": user.user_metadata or {},
                "app_metadata": user.app_metadata or {},
            }
            if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
                _AUTH_USER_CACHE[cache_key] = (user_data, now + _AUTH_CACHE_TTL_SEC)
            return user_data
        except ApiError:
            raise
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise ApiError(401, "Invalid or expired token", "UNAUTHORIZED")
            raise ApiError(401, "Authentication failed", "UNAUTHORIZED")

    def get_organization_id(self, user_id: str) -> str:
        """Tenant of the authenticated user, from their profile row."""
        cached = _ORGANIZATION_ID_CACHE.get(user_id)
        if cached:
            return cached
        result = self.supabase.table("profiles")\
            .select("organization_id")\
            .eq("id", user_id)\
            .maybe_single()\
            .execute()
        organization_id = (result.data or {}).get("organization_id") if result else None
        if not organization_id:
            raise ApiError(403, "User has no organization", "NO_ORGANIZATION")
        _ORGANIZATION_ID_CACHE[user_id] = organization_id
        return organization_id


def clear_auth_caches() -> None:
    _AUTH_USER_CACHE.clear()
    _ORGANIZATION_ID_CACHE.clear()
