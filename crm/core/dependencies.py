"""
Core dependencies for route protection: session auth, installer gates and the
same-origin check.
"""

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from crm.config import settings
from crm.core.errors import ApiError
from crm.database.supabase_client import get_service_supabase
from crm.modules.auth.service import AuthService
from supabase import Client
from typing import Dict, Optional
from urllib.parse import urlparse
import hmac
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_auth_service(supabase: Client = Depends(get_service_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    if credentials is None or not credentials.credentials:
        raise ApiError(401, "Missing bearer token", "UNAUTHORIZED")
    return auth_service.get_current_user(credentials.credentials)


def get_current_organization_id(
    user_data: Dict = Depends(get_current_user_id),
    auth_service: AuthService = Depends(get_auth_service)
) -> str:
    return auth_service.get_organization_id(user_data["id"])


def _origin_netloc(value: str) -> str:
    try:
        return (urlparse(value).netloc or "").lower()
    except ValueError:
        return ""


def is_allowed_origin(request: Request) -> bool:
    """Requests without an Origin header pass; browsers always send it cross-site."""
    origin = request.headers.get("origin")
    if not origin:
        return True
    origin_host = _origin_netloc(origin)
    if not origin_host:
        return False
    hosts = {
        (request.headers.get("x-forwarded-host") or "").split(",")[0].strip().lower(),
        (request.headers.get("host") or "").lower(),
    }
    if origin_host in hosts:
        return True
    return origin.rstrip("/").lower() in {o.lower() for o in settings.get_installer_allowed_origins()}


def require_same_origin(request: Request) -> None:
    if not is_allowed_origin(request):
        logger.warning("Rejected cross-origin installer request from %s", request.headers.get("origin"))
        raise ApiError(403, "Forbidden")


def require_installer_enabled() -> None:
    if settings.installer_disabled:
        raise ApiError(403, "Installer disabled")


def check_installer_token(provided: Optional[str]) -> None:
    expected = settings.installer_token
    if expected and not hmac.compare_digest((provided or "").encode(), expected.encode()):
        raise ApiError(403, "Invalid installer token")
