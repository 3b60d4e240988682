"""Deal model for the sales pipeline."""

import datetime as dt
from typing import Optional

from pydantic import Field, field_validator

from psa_engine.models.base import BaseDataModel
from psa_engine.models.enums import DealStage


class Deal(BaseDataModel):
    """A sales opportunity moving through the stage graph.

    Attributes:
        organization_id: Owning organization
        company_id: Prospective client company
        name: Deal name
        stage: Current pipeline stage (created at Lead)
        value: Expected contract value in cents
        probability: Win probability in percent (0-100)
        owner_id: Sales owner
        lost_reason: Why the deal was lost, when it was
        closed_at: When the deal reached Won or Lost
    """

    organization_id: str
    company_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    stage: DealStage = DealStage.LEAD
    value: int = Field(default=0, ge=0)
    probability: int = Field(default=10, ge=0, le=100)
    owner_id: str
    lost_reason: Optional[str] = None
    closed_at: Optional[dt.datetime] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be empty or whitespace")
        return v.strip()
