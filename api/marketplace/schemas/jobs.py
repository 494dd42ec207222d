from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from marketplace.schemas.common import ClientSummaryOut
from marketplace.schemas.proposals import ProposalOut

JobStatus = Literal["OPEN", "IN_PROGRESS", "CANCELLED", "COMPLETED"]


class JobOut(BaseModel):
    id: str
    client_id: str
    title: str
    description: str
    category: str
    budget: float
    skills: list[str] = Field(default_factory=list)
    deadline: datetime | None = None
    job_type: str | None = None
    experience: str | None = None
    duration: str | None = None
    location: str | None = None
    status: JobStatus
    posted_at: datetime
    updated_at: datetime
    client: ClientSummaryOut


class JobDetailOut(JobOut):
    proposals: list[ProposalOut] = Field(default_factory=list)


class PaginationOut(BaseModel):
    total: int
    pages: int
    current: int
    limit: int


class JobListOut(BaseModel):
    jobs: list[JobOut]
    pagination: PaginationOut


class FreelancerProposalOut(BaseModel):
    id: str
    status: str
    amount: float
    created_at: datetime


class FreelancerJobOut(JobOut):
    proposals: list[FreelancerProposalOut] = Field(default_factory=list)


class JobCreateRequest(BaseModel):
    # Presence and coercion of the required fields is checked by JobService so
    # that budget may arrive as a numeric string and skills as a JSON string.
    title: str | None = None
    description: str | None = None
    category: str | None = None
    budget: float | str | None = None
    skills: list[str] | str | None = None
    deadline: datetime | None = None
    job_type: str | None = None
    experience: str | None = None
    duration: str | None = None
    location: str | None = None
    status: JobStatus | None = None


class JobPatchRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    category: str | None = None
    budget: float | str | None = None
    skills: list[str] | str | None = None
    deadline: datetime | None = None
    job_type: str | None = None
    experience: str | None = None
    duration: str | None = None
    location: str | None = None

    model_config = ConfigDict(extra="forbid")


class JobStatusPatchRequest(BaseModel):
    status: JobStatus


class ActiveContractOut(BaseModel):
    has_active_contract: bool
