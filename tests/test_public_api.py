# tests/test_public_api.py
from crm.config import settings
from crm.modules.public_api.cursor import decode_offset_cursor
from tests.conftest import API_KEY, BOARD_ID, DEAL_ANA, OTHER_BOARD_ID, STAGE_NEW, STAGE_WON, ORG_ID


def test_requires_api_key(client):
    response = client.get("/api/public/v1/me")
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


def test_rejects_unknown_key(client):
    response = client.get("/api/public/v1/me", headers={"X-Api-Key": "ncrm_wrong"})
    assert response.status_code == 401


def test_rejects_revoked_key(client, fake_supabase, api_headers):
    fake_supabase.rows("api_keys")[0]["revoked_at"] = "2026-01-05T00:00:00+00:00"
    response = client.get("/api/public/v1/me", headers=api_headers)
    assert response.status_code == 401


def test_me_returns_context_and_stamps_last_used(client, fake_supabase, api_headers):
    response = client.get("/api/public/v1/me", headers=api_headers)
    assert response.status_code == 200
    assert response.json() == {
        "data": {
            "organization_id": ORG_ID,
            "organization_name": "Acme",
            "api_key_prefix": API_KEY[:12],
        }
    }
    assert fake_supabase.rows("api_keys")[0]["last_used_at"] is not None


def test_list_boards_paginates(client, api_headers):
    first = client.get("/api/public/v1/boards?limit=1", headers=api_headers).json()
    assert [b["key"] for b in first["data"]] == ["sales"]
    assert decode_offset_cursor(first["nextCursor"]) == 1

    second = client.get(f"/api/public/v1/boards?limit=1&cursor={first['nextCursor']}", headers=api_headers).json()
    assert [b["key"] for b in second["data"]] == ["support"]
    assert second["nextCursor"] is None


def test_list_boards_filters(client, api_headers):
    by_key = client.get("/api/public/v1/boards?key=support", headers=api_headers).json()
    assert [b["id"] for b in by_key["data"]] == [OTHER_BOARD_ID]

    by_query = client.get("/api/public/v1/boards?q=SAL", headers=api_headers).json()
    assert [b["id"] for b in by_query["data"]] == [BOARD_ID]


def test_list_boards_bad_cursor_restarts(client, api_headers):
    response = client.get("/api/public/v1/boards?cursor=@@garbage@@", headers=api_headers)
    assert response.status_code == 200
    assert len(response.json()["data"]) == 2


def test_list_boards_hides_deleted(client, fake_supabase, api_headers):
    fake_supabase.rows("boards")[1]["deleted_at"] = "2026-01-05T00:00:00+00:00"
    data = client.get("/api/public/v1/boards", headers=api_headers).json()["data"]
    assert [b["key"] for b in data] == ["sales"]


def test_get_board_by_key_and_id(client, api_headers):
    by_key = client.get("/api/public/v1/boards/sales", headers=api_headers)
    by_id = client.get(f"/api/public/v1/boards/{BOARD_ID}", headers=api_headers)
    assert by_key.status_code == by_id.status_code == 200
    assert by_key.json() == by_id.json()
    assert by_key.json()["data"]["is_default"] is True


def test_get_board_not_found(client, api_headers):
    response = client.get("/api/public/v1/boards/nope", headers=api_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_list_stages_in_order_with_label_fallback(client, api_headers):
    data = client.get("/api/public/v1/boards/sales/stages", headers=api_headers).json()["data"]
    assert [s["label"] for s in data] == ["New", "Proposal", "Won", "Lost"]
    assert data[0] == {"id": STAGE_NEW, "label": "New", "color": "blue", "order": 0}


def test_move_stage_by_deal_id_to_won(client, api_headers):
    response = client.post(
        f"/api/public/v1/deals/{DEAL_ANA}/move-stage",
        json={"to_stage_label": "Won"},
        headers=api_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["action"] == "moved"
    assert body["data"]["stage_id"] == STAGE_WON
    assert body["data"]["is_won"] is True
    assert body["data"]["is_lost"] is False


def test_move_stage_invalid_deal_id(client, api_headers):
    response = client.post("/api/public/v1/deals/123/move-stage", json={"to_stage_label": "Won"}, headers=api_headers)
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_move_stage_requires_target(client, api_headers):
    response = client.post(f"/api/public/v1/deals/{DEAL_ANA}/move-stage", json={}, headers=api_headers)
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_move_stage_rejects_unknown_fields(client, api_headers):
    response = client.post(
        f"/api/public/v1/deals/{DEAL_ANA}/move-stage",
        json={"to_stage_label": "Won", "force": True},
        headers=api_headers,
    )
    assert response.status_code == 422


def test_move_stage_malformed_json(client, api_headers):
    response = client.post(
        f"/api/public/v1/deals/{DEAL_ANA}/move-stage",
        content=b"{not json",
        headers={**api_headers, "Content-Type": "application/json"},
    )
    assert response.status_code == 422


def test_move_stage_unknown_label_is_404(client, api_headers):
    response = client.post(
        f"/api/public/v1/deals/{DEAL_ANA}/move-stage", json={"to_stage_label": "Nope"}, headers=api_headers
    )
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_move_stage_by_identity_ambiguous_match(client, api_headers):
    response = client.post(
        "/api/public/v1/deals/move-stage-by-identity",
        json={"board_key_or_id": "sales", "phone": "+5511987654321", "to_stage_label": "Won"},
        headers=api_headers,
    )
    assert response.status_code == 409
    assert response.json()["code"] == "AMBIGUOUS_MATCH"


def test_move_stage_by_identity_requires_phone_or_email(client, api_headers):
    response = client.post(
        "/api/public/v1/deals/move-stage-by-identity",
        json={"board_key_or_id": "sales", "to_stage_label": "Won"},
        headers=api_headers,
    )
    assert response.status_code == 422


def test_unified_move_stage_by_deal_id(client, api_headers):
    response = client.post(
        "/api/public/v1/deals/move-stage",
        json={"deal_id": DEAL_ANA, "to_stage_id": STAGE_WON},
        headers=api_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["is_won"] is True


def test_unified_move_stage_by_identity(client, api_headers):
    response = client.post(
        "/api/public/v1/deals/move-stage",
        json={"board_key_or_id": "sales", "email": "bruno@example.com", "to_stage_label": "lost"},
        headers=api_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["is_lost"] is True


def test_unified_move_stage_needs_an_address(client, api_headers):
    response = client.post(
        "/api/public/v1/deals/move-stage",
        json={"to_stage_label": "Won", "email": "bruno@example.com"},
        headers=api_headers,
    )
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_ambiguous_stage_label_is_409(client, fake_supabase, api_headers):
    fake_supabase.rows("board_stages").append(
        {"id": "55555555-5555-4555-8555-555555555598", "organization_id": ORG_ID,
         "board_id": BOARD_ID, "name": "Won again", "label": "won", "color": None, "order": 5}
    )
    response = client.post(
        f"/api/public/v1/deals/{DEAL_ANA}/move-stage", json={"to_stage_label": "Won"}, headers=api_headers
    )
    assert response.status_code == 409
    assert response.json()["code"] == "AMBIGUOUS_STAGE"


def test_page_size_is_clamped(client, api_headers, monkeypatch):
    monkeypatch.setattr(settings, "public_api_max_page_size", 1)
    body = client.get("/api/public/v1/boards?limit=500", headers=api_headers).json()
    assert len(body["data"]) == 1
    assert body["nextCursor"] is not None


def test_openapi_document_covers_only_public_routes(client):
    response = client.get("/api/public/v1/openapi.json")
    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, max-age=60"

    document = response.json()
    assert document["servers"] == [{"url": "/api"}]
    assert set(document["paths"]) == {
        "/public/v1/me",
        "/public/v1/boards",
        "/public/v1/boards/{board_key_or_id}",
        "/public/v1/boards/{board_key_or_id}/stages",
        "/public/v1/deals/move-stage-by-identity",
        "/public/v1/deals/move-stage",
        "/public/v1/deals/{deal_id}/move-stage",
    }
    assert document["components"]["securitySchemes"]["ApiKeyAuth"]["name"] == "X-Api-Key"

    body_schema = document["paths"]["/public/v1/deals/move-stage"]["post"]["requestBody"]["content"]["application/json"]["schema"]
    assert {"deal_id", "board_key_or_id", "to_stage_id", "to_stage_label", "mark"} <= set(body_schema["properties"])
