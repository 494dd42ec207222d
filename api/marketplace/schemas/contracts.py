from datetime import datetime
from typing import Literal

from pydantic import BaseModel

ContractStatus = Literal["ACTIVE", "COMPLETED", "CANCELLED"]


class ContractOut(BaseModel):
    id: str
    proposal_id: str
    job_id: str
    client_id: str
    freelancer_id: str
    amount: float
    status: ContractStatus
    started_at: datetime
    ended_at: datetime | None = None
