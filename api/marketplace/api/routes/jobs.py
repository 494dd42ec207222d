from fastapi import APIRouter, Depends, Query, status as http_status

from marketplace.api.deps import get_job_service
from marketplace.core.security import get_current_principal
from marketplace.schemas.common import MessageOut
from marketplace.schemas.jobs import (
    ActiveContractOut,
    FreelancerJobOut,
    JobCreateRequest,
    JobDetailOut,
    JobListOut,
    JobOut,
    JobPatchRequest,
    JobStatus,
    JobStatusPatchRequest,
)
from marketplace.schemas.proposals import ProposalCreateRequest, ProposalOut
from marketplace.services.jobs import JobService

router = APIRouter()


@router.get("", response_model=JobListOut)
async def list_jobs(
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
    category: str | None = Query(default=None, min_length=1),
    job_status: JobStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None),
    budget_min: float | None = Query(default=None, ge=0),
    budget_max: float | None = Query(default=None, ge=0),
    bracket_budget_min: float | None = Query(default=None, ge=0, alias="budget[min]"),
    bracket_budget_max: float | None = Query(default=None, ge=0, alias="budget[max]"),
    skills: list[str] | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> JobListOut:
    result = await service.list_jobs(
        category=category,
        status=job_status,
        search=search,
        budget_min=budget_min if budget_min is not None else bracket_budget_min,
        budget_max=budget_max if budget_max is not None else bracket_budget_max,
        skills=skills,
        page=page,
        limit=limit,
    )
    return JobListOut(**result)


@router.post("", response_model=JobOut, status_code=http_status.HTTP_201_CREATED)
async def create_job(
    payload: JobCreateRequest,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    job = await service.create_job(principal, payload.model_dump())
    return JobOut(**job)


@router.get("/freelancer/{freelancer_id}", response_model=list[FreelancerJobOut])
async def list_freelancer_jobs(
    freelancer_id: str,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> list[FreelancerJobOut]:
    jobs = await service.list_by_freelancer(freelancer_id, principal)
    return [FreelancerJobOut(**job) for job in jobs]


@router.get("/{job_id}", response_model=JobDetailOut)
async def get_job(
    job_id: str,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> JobDetailOut:
    return JobDetailOut(**await service.get_job(job_id))


@router.put("/{job_id}", response_model=JobOut)
async def update_job(
    job_id: str,
    payload: JobPatchRequest,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    job = await service.update_job(job_id, principal, payload.model_dump(exclude_unset=True))
    return JobOut(**job)


@router.delete("/{job_id}", response_model=MessageOut)
async def delete_job(
    job_id: str,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> MessageOut:
    await service.delete_job(job_id, principal)
    return MessageOut(message="Job deleted successfully")


@router.post("/{job_id}/proposals", response_model=ProposalOut, status_code=http_status.HTTP_201_CREATED)
async def submit_proposal(
    job_id: str,
    payload: ProposalCreateRequest,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> ProposalOut:
    proposal = await service.submit_proposal(job_id, principal, payload.model_dump())
    return ProposalOut(**proposal)


@router.put("/{job_id}/proposals/{proposal_id}/accept", response_model=ProposalOut)
async def accept_proposal(
    job_id: str,
    proposal_id: str,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> ProposalOut:
    return ProposalOut(**await service.accept_proposal(job_id, proposal_id, principal))


@router.put("/{job_id}/proposals/{proposal_id}/reject", response_model=ProposalOut)
async def reject_proposal(
    job_id: str,
    proposal_id: str,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> ProposalOut:
    return ProposalOut(**await service.reject_proposal(job_id, proposal_id, principal))


@router.patch("/{job_id}/status", response_model=JobOut)
async def patch_job_status(
    job_id: str,
    payload: JobStatusPatchRequest,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    return JobOut(**await service.update_status(job_id, principal, payload.status))


@router.get("/{job_id}/contract", response_model=ActiveContractOut)
async def get_job_contract_state(
    job_id: str,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> ActiveContractOut:
    return ActiveContractOut(has_active_contract=await service.has_active_contract(job_id))


@router.patch("/{job_id}/close", response_model=JobOut)
async def close_job(
    job_id: str,
    principal=Depends(get_current_principal),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    return JobOut(**await service.close_job(job_id, principal))
