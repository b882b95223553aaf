"""
HTTP-visible error type and the domain errors raised below the route layer.
"""

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError


class ApiError(Exception):
    """Rendered as ``{"error": ..., "code": ..., **extra}`` with ``status_code``."""

    def __init__(self, status_code: int, error: str, code: Optional[str] = None, **extra: Any):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.code = code
        self.extra = extra

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.code:
            body["code"] = self.code
        body.update(self.extra)
        return body


async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


class PlatformAPIError(Exception):
    """Non-2xx answer from an external platform API (Supabase Management, Vercel)."""

    def __init__(self, status_code: int, message: str, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.payload = payload


class StorageNotReadyError(Exception):
    pass


class DeploymentNotReadyError(Exception):
    def __init__(self, message: str, last_ready_state: Optional[str] = None):
        super().__init__(message)
        self.last_ready_state = last_ready_state


def parse_payload(model: type[BaseModel], raw: Any, status_code: int = 400, code: Optional[str] = None):
    """Validate a raw JSON body, raising ApiError with field-level details on failure."""
    if raw is None:
        raise ApiError(status_code, "Invalid payload", code, details=[{"msg": "Body must be a JSON object"}])
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        details = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in e.errors()
        ]
        raise ApiError(status_code, "Invalid payload", code, details=details)


async def read_json(request: Request) -> Any:
    """Request body as JSON, or None when absent or malformed."""
    try:
        return await request.json()
    except ValueError:
        return None
