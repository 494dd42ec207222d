from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field

from marketplace.schemas.jobs import JobOut
from marketplace.schemas.proposals import ProposalOut

PaymentType = Literal["ESCROW", "RELEASE", "REFUND"]
PaymentStatus = Literal["PENDING", "COMPLETED", "REFUNDED"]


class PaymentOut(BaseModel):
    id: str
    user_id: str
    proposal_id: str
    amount: float
    type: PaymentType
    status: PaymentStatus
    refund_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class PaymentProposalOut(ProposalOut):
    job: JobOut | None = None


class PaymentHistoryOut(PaymentOut):
    proposal: PaymentProposalOut | None = None


class EscrowCreateRequest(BaseModel):
    proposal_id: str = Field(min_length=1, validation_alias=AliasChoices("proposal_id", "proposalId"))
    amount: float = Field(gt=0)


class RefundRequest(BaseModel):
    reason: str | None = None
