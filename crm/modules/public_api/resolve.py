from typing import Any, Dict, Optional

from supabase import Client

from crm.modules.public_api.sanitize import sanitize_uuid


def find_board(supabase: Client, organization_id: str, board_key_or_id: str,
               columns: str = "id") -> Optional[Dict[str, Any]]:
    """Board row addressed by UUID or by its key, scoped to the tenant."""
    value = (board_key_or_id or "").strip()
    if not value:
        return None

    query = supabase.table("boards")\
        .select(columns)\
        .eq("organization_id", organization_id)\
        .is_("deleted_at", "null")
    board_id = sanitize_uuid(value)
    query = query.eq("id", board_id) if board_id else query.eq("key", value)

    result = query.maybe_single().execute()
    if result is None or not result.data:
        return None
    return result.data


def resolve_board_id(supabase: Client, organization_id: str, board_key_or_id: str) -> Optional[str]:
    board = find_board(supabase, organization_id, board_key_or_id)
    return sanitize_uuid(board.get("id")) if board else None
