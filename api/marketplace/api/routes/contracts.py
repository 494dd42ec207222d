from fastapi import APIRouter, Depends

from marketplace.api.deps import get_contract_service
from marketplace.core.security import get_current_principal
from marketplace.schemas.contracts import ContractOut
from marketplace.services.contracts import ContractService

router = APIRouter()


@router.get("", response_model=list[ContractOut])
async def list_contracts(
    principal=Depends(get_current_principal),
    service: ContractService = Depends(get_contract_service),
) -> list[ContractOut]:
    return [ContractOut(**row) for row in await service.list_contracts(principal)]


@router.get("/{contract_id}", response_model=ContractOut)
async def get_contract(
    contract_id: str,
    principal=Depends(get_current_principal),
    service: ContractService = Depends(get_contract_service),
) -> ContractOut:
    return ContractOut(**await service.get_contract(contract_id, principal))


@router.patch("/{contract_id}/complete", response_model=ContractOut)
async def complete_contract(
    contract_id: str,
    principal=Depends(get_current_principal),
    service: ContractService = Depends(get_contract_service),
) -> ContractOut:
    return ContractOut(**await service.complete_contract(contract_id, principal))


@router.patch("/{contract_id}/cancel", response_model=ContractOut)
async def cancel_contract(
    contract_id: str,
    principal=Depends(get_current_principal),
    service: ContractService = Depends(get_contract_service),
) -> ContractOut:
    return ContractOut(**await service.cancel_contract(contract_id, principal))
