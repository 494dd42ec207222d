from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from marketplace.schemas.common import UserSummaryOut

ProposalStatus = Literal["PENDING", "ACCEPTED", "REJECTED"]


class ProposalOut(BaseModel):
    id: str
    job_id: str
    freelancer_id: str
    cover_letter: str
    amount: float
    delivery_days: int | None = None
    status: ProposalStatus
    created_at: datetime
    updated_at: datetime
    freelancer: UserSummaryOut | None = None


class ProposalCreateRequest(BaseModel):
    cover_letter: str = Field(min_length=1)
    amount: float = Field(gt=0)
    delivery_days: int | None = Field(default=None, gt=0)
