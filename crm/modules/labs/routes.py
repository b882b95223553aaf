from fastapi import APIRouter, Depends
from crm.config import settings
from crm.core.errors import ApiError

router = APIRouter(prefix="/labs", tags=["labs"])

# Canned rows for the deal detail mock screen.
DEAL_JOBS_MOCK = [
    {
        "id": "job-1",
        "deal_title": "Website redesign",
        "stage": "Proposal",
        "status": "running",
        "owner": "Ana",
        "due_at": "2026-01-15T12:00:00Z",
    },
    {
        "id": "job-2",
        "deal_title": "Annual support plan",
        "stage": "Negotiation",
        "status": "queued",
        "owner": "Bruno",
        "due_at": "2026-01-20T12:00:00Z",
    },
    {
        "id": "job-3",
        "deal_title": "Onboarding package",
        "stage": "Won",
        "status": "done",
        "owner": "Carla",
        "due_at": None,
    },
]


def require_ui_mocks_enabled() -> None:
    if not settings.ui_mocks_enabled:
        raise ApiError(404, "Not Found")


@router.get("/deal-jobs-mock", dependencies=[Depends(require_ui_mocks_enabled)])
def deal_jobs_mock():
    """Development-only mock data for the deal jobs screen"""
    return {"data": DEAL_JOBS_MOCK}
