from supabase import Client
from typing import Any, Dict, Optional
import logging

from crm.modules.public_api.auth import PublicApiContext
from crm.modules.public_api.cursor import decode_offset_cursor, encode_offset_cursor, parse_limit
from crm.modules.public_api.errors import DatabaseError, NotFoundError, PublicApiError
from crm.modules.public_api.resolve import find_board

logger = logging.getLogger(__name__)

BOARD_COLUMNS = "id,key,name,description,position,is_default,created_at,updated_at"


def _board_view(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "key": row.get("key"),
        "name": row.get("name"),
        "description": row.get("description"),
        "position": row.get("position") or 0,
        "is_default": bool(row.get("is_default")),
    }


class PublicApiService:
    """Tenant-scoped reads behind an API key."""

    def __init__(self, supabase: Client, context: PublicApiContext):
        self.supabase = supabase
        self.context = context

    @property
    def organization_id(self) -> str:
        return self.context.organization_id

    def me(self) -> Dict[str, Any]:
        return {
            "data": {
                "organization_id": self.context.organization_id,
                "organization_name": self.context.organization_name,
                "api_key_prefix": self.context.api_key_prefix,
            }
        }

    def list_boards(self, q: Optional[str] = None, key: Optional[str] = None,
                    limit: Optional[str] = None, cursor: Optional[str] = None) -> Dict[str, Any]:
        page_size = parse_limit(limit)
        start = decode_offset_cursor(cursor)
        end = start + page_size - 1
        q = (q or "").strip()
        key = (key or "").strip()

        try:
            query = self.supabase.table("boards")\
                .select(BOARD_COLUMNS, count="exact")\
                .eq("organization_id", self.organization_id)\
                .is_("deleted_at", "null")
            if key:
                query = query.eq("key", key)
            if q:
                # PostgREST reads "*" as the ilike wildcard inside or= filters
                term = q.replace(",", " ").replace("(", " ").replace(")", " ")
                query = query.or_(f"name.ilike.*{term}*,key.ilike.*{term}*")
            result = query.order("position").order("created_at").range(start, end).execute()
        except Exception as e:
            logger.error(f"Failed to list boards for organization {self.organization_id}: {e}")
            raise DatabaseError(str(e)) from e

        total = result.count or 0
        next_offset = end + 1
        return {
            "data": [_board_view(row) for row in result.data or []],
            "nextCursor": encode_offset_cursor(next_offset) if next_offset < total else None,
        }

    def get_board(self, board_key_or_id: str) -> Dict[str, Any]:
        return {"data": _board_view(self._require_board(board_key_or_id, BOARD_COLUMNS))}

    def list_stages(self, board_key_or_id: str) -> Dict[str, Any]:
        board = self._require_board(board_key_or_id)
        try:
            result = self.supabase.table("board_stages")\
                .select("id,label,name,color,order")\
                .eq("organization_id", self.organization_id)\
                .eq("board_id", board["id"])\
                .order("order")\
                .execute()
        except Exception as e:
            raise DatabaseError(str(e)) from e

        return {
            "data": [
                {
                    "id": stage["id"],
                    "label": stage.get("label") or stage.get("name"),
                    "color": stage.get("color"),
                    "order": stage.get("order") or 0,
                }
                for stage in result.data or []
            ]
        }

    def _require_board(self, board_key_or_id: str, columns: str = "id") -> Dict[str, Any]:
        try:
            board = find_board(self.supabase, self.organization_id, board_key_or_id, columns)
        except PublicApiError:
            raise
        except Exception as e:
            raise DatabaseError(str(e)) from e
        if not board:
            raise NotFoundError("Board not found")
        return board
