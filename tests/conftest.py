# tests/conftest.py
import pytest
from fastapi.testclient import TestClient

from crm.database.supabase_client import get_service_supabase
from crm.main import app
from crm.modules.api_keys.hashing import hash_api_key
from crm.modules.auth.service import clear_auth_caches
from tests.fakes import FakeSupabase

ORG_ID = "11111111-1111-4111-8111-111111111111"
OTHER_ORG_ID = "22222222-2222-4222-8222-222222222222"
BOARD_ID = "33333333-3333-4333-8333-333333333333"
OTHER_BOARD_ID = "44444444-4444-4444-8444-444444444444"
STAGE_NEW = "55555555-5555-4555-8555-555555555501"
STAGE_PROPOSAL = "55555555-5555-4555-8555-555555555502"
STAGE_WON = "55555555-5555-4555-8555-555555555503"
STAGE_LOST = "55555555-5555-4555-8555-555555555504"
CONTACT_ANA = "66666666-6666-4666-8666-666666666601"
CONTACT_ANA_DUP = "66666666-6666-4666-8666-666666666602"
CONTACT_BRUNO = "66666666-6666-4666-8666-666666666603"
DEAL_ANA = "77777777-7777-4777-8777-777777777701"
DEAL_ANA_DUP = "77777777-7777-4777-8777-777777777702"
DEAL_BRUNO = "77777777-7777-4777-8777-777777777703"
USER_ID = "88888888-8888-4888-8888-888888888888"

API_KEY = "ncrm_test-key-0123456789"


def crm_tables():
    """A small tenant: one board with four stages, three contacts and three open deals."""
    return {
        "organizations": [
            {"id": ORG_ID, "name": "Acme"},
            {"id": OTHER_ORG_ID, "name": "Other"},
        ],
        "profiles": [
            {"id": USER_ID, "email": "owner@acme.io", "organization_id": ORG_ID, "role": "admin"},
        ],
        "api_keys": [
            {
                "id": "99999999-9999-4999-8999-999999999999",
                "organization_id": ORG_ID,
                "name": "zapier",
                "key_hash": hash_api_key(API_KEY),
                "key_prefix": API_KEY[:12],
                "created_at": "2026-01-01T00:00:00+00:00",
                "last_used_at": None,
                "revoked_at": None,
            },
        ],
        "boards": [
            {
                "id": BOARD_ID, "organization_id": ORG_ID, "key": "sales", "name": "Sales",
                "description": None, "position": 0, "is_default": True,
                "won_stage_id": STAGE_WON, "lost_stage_id": STAGE_LOST,
                "created_at": "2026-01-01T00:00:00+00:00", "deleted_at": None,
            },
            {
                "id": OTHER_BOARD_ID, "organization_id": ORG_ID, "key": "support", "name": "Support",
                "description": "Tickets", "position": 1, "is_default": False,
                "won_stage_id": None, "lost_stage_id": None,
                "created_at": "2026-01-02T00:00:00+00:00", "deleted_at": None,
            },
        ],
        "board_stages": [
            {"id": STAGE_NEW, "organization_id": ORG_ID, "board_id": BOARD_ID, "name": "New", "label": "New", "color": "blue", "order": 0},
            {"id": STAGE_PROPOSAL, "organization_id": ORG_ID, "board_id": BOARD_ID, "name": "Proposal", "label": None, "color": None, "order": 1},
            {"id": STAGE_WON, "organization_id": ORG_ID, "board_id": BOARD_ID, "name": "Won", "label": "Won", "color": "green", "order": 2},
            {"id": STAGE_LOST, "organization_id": ORG_ID, "board_id": BOARD_ID, "name": "Lost", "label": "Lost", "color": "red", "order": 3},
        ],
        "contacts": [
            {"id": CONTACT_ANA, "organization_id": ORG_ID, "name": "Ana", "phone": "+5511987654321", "email": "ana@example.com", "deleted_at": None},
            {"id": CONTACT_ANA_DUP, "organization_id": ORG_ID, "name": "Ana (dup)", "phone": "+5511987654321", "email": None, "deleted_at": None},
            {"id": CONTACT_BRUNO, "organization_id": ORG_ID, "name": "Bruno", "phone": "+5521912345678", "email": "bruno@example.com", "deleted_at": None},
        ],
        "deals": [
            {
                "id": DEAL_ANA, "organization_id": ORG_ID, "board_id": BOARD_ID, "stage_id": STAGE_NEW,
                "contact_id": CONTACT_ANA, "client_company_id": None, "title": "Ana deal", "value": 100,
                "is_won": False, "is_lost": False, "loss_reason": "price", "closed_at": None,
                "created_at": "2026-01-01T00:00:00+00:00", "updated_at": "2026-01-03T00:00:00+00:00", "deleted_at": None,
            },
            {
                "id": DEAL_ANA_DUP, "organization_id": ORG_ID, "board_id": BOARD_ID, "stage_id": STAGE_NEW,
                "contact_id": CONTACT_ANA_DUP, "client_company_id": None, "title": "Ana dup deal", "value": 50,
                "is_won": False, "is_lost": False, "loss_reason": None, "closed_at": None,
                "created_at": "2026-01-01T00:00:00+00:00", "updated_at": "2026-01-02T00:00:00+00:00", "deleted_at": None,
            },
            {
                "id": DEAL_BRUNO, "organization_id": ORG_ID, "board_id": BOARD_ID, "stage_id": STAGE_NEW,
                "contact_id": CONTACT_BRUNO, "client_company_id": None, "title": "Bruno deal", "value": 300,
                "is_won": False, "is_lost": False, "loss_reason": None, "closed_at": None,
                "created_at": "2026-01-01T00:00:00+00:00", "updated_at": "2026-01-01T00:00:00+00:00", "deleted_at": None,
            },
        ],
    }


@pytest.fixture
def fake_supabase():
    return FakeSupabase(**crm_tables())


@pytest.fixture
def client(fake_supabase):
    app.dependency_overrides[get_service_supabase] = lambda: fake_supabase
    clear_auth_caches()
    yield TestClient(app)
    app.dependency_overrides.clear()
    clear_auth_caches()


@pytest.fixture
def api_headers():
    return {"X-Api-Key": API_KEY}


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is called."""

    def __init__(self, start=1000.0):
        self.start = start
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    @property
    def elapsed(self):
        return self.now - self.start


@pytest.fixture
def fake_clock():
    return FakeClock()
