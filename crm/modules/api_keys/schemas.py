from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class ApiKeyCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=80)


class ApiKeyResponse(BaseModel):
    id: str
    name: str
    key_prefix: str
    created_at: datetime
    last_used_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None


class ApiKeyCreatedResponse(BaseModel):
    """Returned once at creation; ``token`` is never readable again."""

    id: str
    name: str
    key_prefix: str
    created_at: datetime
    token: str
