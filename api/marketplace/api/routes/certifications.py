from fastapi import APIRouter, Depends, status as http_status

from marketplace.api.deps import get_certification_service
from marketplace.core.security import get_current_principal
from marketplace.schemas.certifications import CertificationOut, CertificationUpsertRequest
from marketplace.schemas.common import MessageOut
from marketplace.services.certifications import CertificationService

router = APIRouter()


@router.get("", response_model=list[CertificationOut])
async def list_certifications(
    principal=Depends(get_current_principal),
    service: CertificationService = Depends(get_certification_service),
) -> list[CertificationOut]:
    return [CertificationOut(**row) for row in await service.list_certifications(principal)]


@router.get("/{certification_id}", response_model=CertificationOut)
async def get_certification(
    certification_id: str,
    principal=Depends(get_current_principal),
    service: CertificationService = Depends(get_certification_service),
) -> CertificationOut:
    return CertificationOut(**await service.get_certification(certification_id, principal))


@router.post("", response_model=CertificationOut, status_code=http_status.HTTP_201_CREATED)
async def create_certification(
    payload: CertificationUpsertRequest,
    principal=Depends(get_current_principal),
    service: CertificationService = Depends(get_certification_service),
) -> CertificationOut:
    return CertificationOut(**await service.create_certification(principal, payload.model_dump()))


@router.put("/{certification_id}", response_model=CertificationOut)
async def update_certification(
    certification_id: str,
    payload: CertificationUpsertRequest,
    principal=Depends(get_current_principal),
    service: CertificationService = Depends(get_certification_service),
) -> CertificationOut:
    row = await service.update_certification(certification_id, principal, payload.model_dump())
    return CertificationOut(**row)


@router.delete("/{certification_id}", response_model=MessageOut)
async def delete_certification(
    certification_id: str,
    principal=Depends(get_current_principal),
    service: CertificationService = Depends(get_certification_service),
) -> MessageOut:
    await service.delete_certification(certification_id, principal)
    return MessageOut(message="Certification deleted successfully")
