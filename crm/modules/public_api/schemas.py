from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Literal, Optional

from crm.modules.public_api.sanitize import sanitize_uuid


def _uuid_or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    canonical = sanitize_uuid(value)
    if canonical is None:
        raise ValueError("must be a valid UUID")
    return canonical


class PublicModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class StageTarget(PublicModel):
    to_stage_id: Optional[str] = None
    to_stage_label: Optional[str] = Field(default=None, min_length=1)
    mark: Optional[Literal["won", "lost"]] = None

    @field_validator("to_stage_id")
    @classmethod
    def check_stage_id(cls, v):
        return _uuid_or_none(v)

    @model_validator(mode="after")
    def check_target(self):
        if not (self.to_stage_id or self.to_stage_label):
            raise ValueError("to_stage_id or to_stage_label is required")
        return self


class MoveStageByIdRequest(StageTarget):
    pass


class MoveStageByIdentityRequest(StageTarget):
    board_key_or_id: str = Field(min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None

    @model_validator(mode="after")
    def check_identity(self):
        if not (self.phone or self.email):
            raise ValueError("phone or email is required")
        return self


class MoveStageRequest(StageTarget):
    """Either ``deal_id`` or ``board_key_or_id`` with a phone/email."""

    deal_id: Optional[str] = None
    board_key_or_id: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None

    @field_validator("deal_id")
    @classmethod
    def check_deal_id(cls, v):
        return _uuid_or_none(v)

    @model_validator(mode="after")
    def check_addressing(self):
        if self.deal_id:
            return self
        if not (self.board_key_or_id and (self.phone or self.email)):
            raise ValueError("Provide deal_id OR (board_key_or_id + phone/email)")
        return self
