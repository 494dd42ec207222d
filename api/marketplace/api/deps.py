from fastapi import Depends, Request

from marketplace.core.config import Settings
from marketplace.services.certifications import CertificationService
from marketplace.services.connects import ConnectService
from marketplace.services.contracts import ContractService
from marketplace.services.jobs import JobService
from marketplace.services.notifications import NotificationService
from marketplace.services.payments import PaymentService
from marketplace.services.repository import get_repository


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_notification_service(repository=Depends(get_repository)) -> NotificationService:
    return NotificationService(repository)


def get_job_service(
    settings: Settings = Depends(get_app_settings),
    repository=Depends(get_repository),
    notifications: NotificationService = Depends(get_notification_service),
) -> JobService:
    return JobService(repository, notifications, proposal_connect_cost=settings.proposal_connect_cost)


def get_contract_service(
    repository=Depends(get_repository),
    notifications: NotificationService = Depends(get_notification_service),
) -> ContractService:
    return ContractService(repository, notifications)


def get_payment_service(repository=Depends(get_repository)) -> PaymentService:
    return PaymentService(repository)


def get_connect_service(
    settings: Settings = Depends(get_app_settings),
    repository=Depends(get_repository),
) -> ConnectService:
    return ConnectService(repository, validity_days=settings.connect_validity_days)


def get_certification_service(repository=Depends(get_repository)) -> CertificationService:
    return CertificationService(repository)
