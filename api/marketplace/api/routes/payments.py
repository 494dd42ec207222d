from fastapi import APIRouter, Depends, Header, Response, status as http_status

from marketplace.api.deps import get_payment_service
from marketplace.core.security import get_current_principal
from marketplace.schemas.payments import EscrowCreateRequest, PaymentHistoryOut, PaymentOut, RefundRequest
from marketplace.services.payments import PaymentService

router = APIRouter()


@router.get("/history", response_model=list[PaymentHistoryOut])
async def payment_history(
    principal=Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
) -> list[PaymentHistoryOut]:
    return [PaymentHistoryOut(**row) for row in await service.list_payments(principal)]


@router.post("/escrow", response_model=PaymentOut, status_code=http_status.HTTP_201_CREATED)
async def create_escrow(
    payload: EscrowCreateRequest,
    response: Response,
    principal=Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> PaymentOut:
    payment, created = await service.create_escrow(
        principal,
        payload.proposal_id,
        payload.amount,
        idempotency_key=idempotency_key,
    )
    if not created:
        response.status_code = http_status.HTTP_200_OK
    return PaymentOut(**payment)


@router.post("/release/{payment_id}", response_model=PaymentOut)
async def release_payment(
    payment_id: str,
    principal=Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentOut:
    return PaymentOut(**await service.release_payment(principal, payment_id))


@router.post("/refund/{payment_id}", response_model=PaymentOut)
async def refund_payment(
    payment_id: str,
    payload: RefundRequest | None = None,
    principal=Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentOut:
    reason = payload.reason if payload else None
    return PaymentOut(**await service.refund_payment(principal, payment_id, reason))
