from fastapi import APIRouter

from marketplace.api.routes import (
    certifications,
    connect_purchase,
    contracts,
    health,
    jobs,
    notifications,
    payments,
)
from marketplace.core.config import Settings

RESOURCE_ROUTERS = {
    "jobs": (jobs.router, "/jobs", ["jobs"]),
    "contracts": (contracts.router, "/contracts", ["contracts"]),
    "payments": (payments.router, "/payments", ["payments"]),
    "connect-purchase": (connect_purchase.router, "/connect-purchase", ["connects"]),
    "notifications": (notifications.router, "/notifications", ["notifications"]),
    "certifications": (certifications.router, "/certifications", ["certifications"]),
}

ROUTE_SETS = {
    "minimal": ("jobs", "contracts"),
    "full": tuple(RESOURCE_ROUTERS),
}


def build_api_router(settings: Settings) -> APIRouter:
    api_router = APIRouter()
    api_router.include_router(health.router, tags=["health"])

    prefix = settings.api_prefix.rstrip("/")
    api_router.include_router(health.api_router, prefix=prefix, tags=["health"])
    for name in ROUTE_SETS[settings.route_set]:
        router, path, tags = RESOURCE_ROUTERS[name]
        api_router.include_router(router, prefix=f"{prefix}{path}", tags=tags)
    return api_router
