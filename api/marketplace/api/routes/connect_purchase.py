from fastapi import APIRouter, Depends, Header

from marketplace.api.deps import get_connect_service
from marketplace.core.security import get_current_principal
from marketplace.schemas.connects import (
    ConnectBalanceOut,
    ConnectPackageOut,
    ConnectPurchaseOut,
    ConnectPurchaseRequest,
)
from marketplace.services.connects import ConnectService

router = APIRouter()


@router.get("/packages", response_model=list[ConnectPackageOut])
async def list_packages() -> list[ConnectPackageOut]:
    return [ConnectPackageOut(**package) for package in ConnectService.list_packages()]


@router.post("/purchase", response_model=ConnectPurchaseOut)
async def purchase_connects(
    payload: ConnectPurchaseRequest,
    principal=Depends(get_current_principal),
    service: ConnectService = Depends(get_connect_service),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> ConnectPurchaseOut:
    result = await service.purchase(principal, payload.package_id, idempotency_key=idempotency_key)
    return ConnectPurchaseOut(**result)


@router.get("/balance", response_model=ConnectBalanceOut)
async def connect_balance(
    principal=Depends(get_current_principal),
    service: ConnectService = Depends(get_connect_service),
) -> ConnectBalanceOut:
    return ConnectBalanceOut(**await service.balance(principal))
