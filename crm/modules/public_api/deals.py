"""
Deal stage moves for the public API.

Two entry points share one mover:

- ``move_stage_by_deal_id``: the deal is addressed directly.
- ``move_stage_by_identity``: the deal is the single open deal on a board
  linked to a contact matching a phone and/or email.

Both resolve the destination stage within the deal's board (by id, or by a
case-insensitive exact label match) and derive the won/lost flags from an
explicit ``mark`` or from the board's configured won/lost stages.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from crm.config import settings
from crm.modules.public_api.errors import (
    AmbiguousMatchError,
    AmbiguousStageError,
    DatabaseError,
    NotFoundError,
    PublicApiError,
    ValidationFailedError,
)
from crm.modules.public_api.resolve import resolve_board_id
from crm.modules.public_api.sanitize import normalize_email, normalize_phone, sanitize_uuid

logger = logging.getLogger(__name__)

DEAL_FIELDS = (
    "id", "title", "value", "board_id", "stage_id", "contact_id", "client_company_id",
    "is_won", "is_lost", "loss_reason", "closed_at", "created_at", "updated_at",
)
CONTACT_CANDIDATE_LIMIT = 20


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def resolve_stage_id(supabase: Client, organization_id: str, board_id: str,
                     to_stage_id: Optional[str] = None, to_stage_label: Optional[str] = None) -> str:
    stage_id = sanitize_uuid(to_stage_id)
    if stage_id:
        result = supabase.table("board_stages")\
            .select("id")\
            .eq("organization_id", organization_id)\
            .eq("board_id", board_id)\
            .eq("id", stage_id)\
            .maybe_single()\
            .execute()
        if result is None or not result.data:
            raise NotFoundError("Stage not found for this board")
        return stage_id

    label = (to_stage_label or "").strip().lower()
    if not label:
        raise ValidationFailedError("to_stage_id or to_stage_label is required")

    # Compared here rather than with ilike so "%" and "_" in labels stay literal.
    result = supabase.table("board_stages")\
        .select("id,label,name")\
        .eq("organization_id", organization_id)\
        .eq("board_id", board_id)\
        .execute()
    matches = [
        s["id"] for s in (result.data or [])
        if (s.get("label") or s.get("name") or "").strip().lower() == label
    ]
    if not matches:
        raise NotFoundError("Stage not found for this board")
    if len(matches) > 1:
        raise AmbiguousStageError("Ambiguous stage label for this board")
    return matches[0]


def build_stage_updates(stage_id: str, current: Dict[str, Any], won_stage_id: Optional[str],
                        lost_stage_id: Optional[str], mark: Optional[str], now: str) -> Dict[str, Any]:
    """Column updates for moving ``current`` into ``stage_id``.

    An explicit ``mark`` takes priority over the board's won/lost stages.
    ``closed_at`` is only stamped when the deal enters won or lost.
    """
    updates: Dict[str, Any] = {"stage_id": stage_id, "last_stage_change_date": now, "updated_at": now}

    if mark is not None:
        won, lost = mark == "won", mark == "lost"
    else:
        won = bool(won_stage_id) and stage_id == won_stage_id
        lost = bool(lost_stage_id) and stage_id == lost_stage_id

    if won:
        updates.update(is_won=True, is_lost=False, loss_reason=None)
        if not current.get("is_won"):
            updates["closed_at"] = now
    elif lost:
        updates.update(is_won=False, is_lost=True)
        if not current.get("is_lost"):
            updates["closed_at"] = now
    return updates


def _board_close_stages(supabase: Client, organization_id: str, board_id: str) -> tuple:
    result = supabase.table("boards")\
        .select("won_stage_id,lost_stage_id")\
        .eq("organization_id", organization_id)\
        .is_("deleted_at", "null")\
        .eq("id", board_id)\
        .maybe_single()\
        .execute()
    board = result.data if result is not None and result.data else {}
    return sanitize_uuid(board.get("won_stage_id")), sanitize_uuid(board.get("lost_stage_id"))


def _move_deal_to_stage(supabase: Client, organization_id: str, deal: Dict[str, Any],
                        to_stage_id: Optional[str], to_stage_label: Optional[str],
                        mark: Optional[str]) -> Dict[str, Any]:
    board_id = deal["board_id"]
    won_stage_id, lost_stage_id = _board_close_stages(supabase, organization_id, board_id)
    stage_id = resolve_stage_id(supabase, organization_id, board_id, to_stage_id, to_stage_label)

    updates = build_stage_updates(stage_id, deal, won_stage_id, lost_stage_id, mark, _utcnow())
    result = supabase.table("deals")\
        .update(updates)\
        .eq("organization_id", organization_id)\
        .eq("id", deal["id"])\
        .execute()
    if not result.data:
        raise NotFoundError("Deal not found")

    row = result.data[0]
    return {"data": {field: row.get(field) for field in DEAL_FIELDS}, "action": "moved"}


def move_stage_by_deal_id(supabase: Client, organization_id: str, deal_id: str,
                          to_stage_id: Optional[str] = None, to_stage_label: Optional[str] = None,
                          mark: Optional[str] = None) -> Dict[str, Any]:
    deal_uuid = sanitize_uuid(deal_id)
    if not deal_uuid:
        raise ValidationFailedError("Invalid deal id")

    try:
        result = supabase.table("deals")\
            .select("id,board_id,stage_id,is_won,is_lost")\
            .eq("organization_id", organization_id)\
            .is_("deleted_at", "null")\
            .eq("id", deal_uuid)\
            .maybe_single()\
            .execute()
        if result is None or not result.data:
            raise NotFoundError("Deal not found")
        return _move_deal_to_stage(supabase, organization_id, result.data, to_stage_id, to_stage_label, mark)
    except PublicApiError:
        raise
    except Exception as e:
        logger.error(f"Deal stage move failed for deal {deal_uuid}: {e}")
        raise DatabaseError(str(e)) from e


def _find_contact_ids(supabase: Client, organization_id: str,
                      phone: Optional[str], email: Optional[str]) -> List[str]:
    contact_ids: List[str] = []
    for column, value in (("phone", phone), ("email", email)):
        if not value:
            continue
        result = supabase.table("contacts")\
            .select("id")\
            .eq("organization_id", organization_id)\
            .is_("deleted_at", "null")\
            .eq(column, value)\
            .limit(CONTACT_CANDIDATE_LIMIT)\
            .execute()
        for row in result.data or []:
            if row.get("id") and row["id"] not in contact_ids:
                contact_ids.append(row["id"])
    return contact_ids


def move_stage_by_identity(supabase: Client, organization_id: str, board_key_or_id: str,
                           phone: Optional[str] = None, email: Optional[str] = None,
                           to_stage_id: Optional[str] = None, to_stage_label: Optional[str] = None,
                           mark: Optional[str] = None) -> Dict[str, Any]:
    try:
        board_id = resolve_board_id(supabase, organization_id, board_key_or_id)
        if not board_id:
            raise NotFoundError("Board not found")

        normalized_phone = normalize_phone(phone, settings.default_phone_country_code)
        normalized_email = normalize_email(email)
        if not normalized_phone and not normalized_email:
            raise ValidationFailedError("Invalid phone/email")

        contact_ids = _find_contact_ids(supabase, organization_id, normalized_phone, normalized_email)
        if not contact_ids:
            raise NotFoundError("Deal not found for this identity")

        result = supabase.table("deals")\
            .select("id,board_id,stage_id,is_won,is_lost")\
            .eq("organization_id", organization_id)\
            .is_("deleted_at", "null")\
            .eq("board_id", board_id)\
            .eq("is_won", False)\
            .eq("is_lost", False)\
            .in_("contact_id", contact_ids)\
            .order("updated_at", desc=True)\
            .limit(2)\
            .execute()
        deals = result.data or []
        if not deals:
            raise NotFoundError("Deal not found for this identity")
        if len(deals) > 1:
            raise AmbiguousMatchError("More than one open deal found for this identity in this board")

        return _move_deal_to_stage(supabase, organization_id, deals[0], to_stage_id, to_stage_label, mark)
    except PublicApiError:
        raise
    except Exception as e:
        logger.error(f"Identity stage move failed on board {board_key_or_id}: {e}")
        raise DatabaseError(str(e)) from e
