"""
Idempotent first-run bootstrap: first organization, admin auth user and the
admin's profile row.

There is no transaction spanning Postgres rows and Auth users, so every step
that creates something pushes its undo action on a compensation stack that
is unwound if a later step fails. The auth user itself is never rolled back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Tuple

from supabase import Client

logger = logging.getLogger(__name__)

LIST_USERS_PER_PAGE = 200
LIST_USERS_MAX_PAGES = 10


class BootstrapError(Exception):
    pass


@dataclass
class BootstrapResult:
    organization_id: str
    user_id: str
    mode: str  # "created" | "updated"


class UserDirectory(Protocol):
    def find_user_id_by_email(self, email: str) -> Optional[str]: ...


class ListingUserDirectory:
    """Auth Admin has no lookup by email; page through users and match case-insensitively."""

    def __init__(self, supabase: Client, per_page: int = LIST_USERS_PER_PAGE, max_pages: int = LIST_USERS_MAX_PAGES):
        self.supabase = supabase
        self.per_page = per_page
        self.max_pages = max_pages

    def find_user_id_by_email(self, email: str) -> Optional[str]:
        target = email.strip().lower()
        for page in range(1, self.max_pages + 1):
            users = self.supabase.auth.admin.list_users(page=page, per_page=self.per_page) or []
            for user in users:
                if (user.email or "").lower() == target:
                    return user.id
            if len(users) < self.per_page:
                return None
        logger.warning("User lookup stopped after %d pages", self.max_pages)
        return None


class Compensation:
    def __init__(self):
        self._undo: List[Tuple[str, Callable[[], object]]] = []

    def push(self, description: str, action: Callable[[], object]) -> None:
        self._undo.append((description, action))

    def unwind(self) -> None:
        while self._undo:
            description, action = self._undo.pop()
            try:
                action()
                logger.info("Rolled back: %s", description)
            except Exception as e:
                logger.error("Rollback failed (%s): %s", description, e)


def _ensure_organization(supabase: Client, company_name: str, compensation: Compensation) -> str:
    existing = supabase.table("organizations").select("id").is_("deleted_at", "null").limit(1).execute()
    if existing.data:
        return existing.data[0]["id"]

    created = supabase.table("organizations").insert({"name": company_name}).execute()
    if not created.data or not created.data[0].get("id"):
        raise BootstrapError("Failed to create organization")
    organization_id = created.data[0]["id"]
    compensation.push(
        f"organization {organization_id}",
        lambda: supabase.table("organizations").delete().eq("id", organization_id).execute(),
    )
    return organization_id


def _ensure_admin_user(
    supabase: Client,
    directory: UserDirectory,
    email: str,
    password: str,
    organization_id: str,
) -> Tuple[str, str]:
    attributes = {
        "password": password,
        "email_confirm": True,
        "user_metadata": {"role": "admin", "organization_id": organization_id},
    }
    user_id = directory.find_user_id_by_email(email)
    if not user_id:
        response = supabase.auth.admin.create_user({"email": email, **attributes})
        if not response or not response.user or not response.user.id:
            raise BootstrapError("Failed to create admin user")
        return response.user.id, "created"

    # Existing user: force the password so the admin can always log in after a retry.
    supabase.auth.admin.update_user_by_id(user_id, attributes)
    return user_id, "updated"


def _upsert_admin_profile(supabase: Client, user_id: str, email: str, organization_id: str) -> None:
    display_name = email.split("@")[0] or "Admin"
    supabase.table("profiles").upsert(
        {
            "id": user_id,
            "email": email,
            "name": display_name,
            "first_name": display_name,
            "organization_id": organization_id,
            "role": "admin",
            "updated_at": datetime.now(timezone.utc).isoformat(),
        },
        on_conflict="id",
    ).execute()


def bootstrap_instance(
    supabase: Client,
    company_name: str,
    email: str,
    password: str,
    directory: Optional[UserDirectory] = None,
) -> BootstrapResult:
    email_norm = email.strip().lower()
    directory = directory or ListingUserDirectory(supabase)
    compensation = Compensation()

    try:
        organization_id = _ensure_organization(supabase, company_name.strip(), compensation)
        user_id, mode = _ensure_admin_user(supabase, directory, email_norm, password, organization_id)
        _upsert_admin_profile(supabase, user_id, email_norm, organization_id)
    except Exception as e:
        logger.error("Bootstrap failed: %s", e)
        compensation.unwind()
        if isinstance(e, BootstrapError):
            raise
        raise BootstrapError(str(e) or type(e).__name__) from e

    logger.info("Bootstrap finished (%s) for organization %s", mode, organization_id)
    return BootstrapResult(organization_id=organization_id, user_id=user_id, mode=mode)
