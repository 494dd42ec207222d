from __future__ import annotations

from typing import Any

from marketplace.core.auth import Principal
from marketplace.services.errors import NotFoundError, ValidationError
from marketplace.services.repository import CERTIFICATION_COLUMNS


class CertificationService:
    def __init__(self, repository) -> None:
        self.repository = repository

    async def list_certifications(self, principal: Principal) -> list[dict[str, Any]]:
        async with self.repository.transaction() as session:
            return await session.list_certifications(principal.user_id)

    async def get_certification(self, certification_id: str, principal: Principal) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            certification = await session.get_certification(certification_id, principal.user_id)
        if certification is None:
            raise NotFoundError("Certification not found")
        return certification

    async def create_certification(self, principal: Principal, fields: dict[str, Any]) -> dict[str, Any]:
        values = _validate(fields)
        async with self.repository.transaction() as session:
            return await session.insert_certification(user_id=principal.user_id, fields=values)

    async def update_certification(
        self,
        certification_id: str,
        principal: Principal,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        values = _validate(fields)
        async with self.repository.transaction() as session:
            certification = await session.update_certification(certification_id, principal.user_id, values)
        if certification is None:
            raise NotFoundError("Certification not found")
        return certification

    async def delete_certification(self, certification_id: str, principal: Principal) -> None:
        async with self.repository.transaction() as session:
            deleted = await session.delete_certification(certification_id, principal.user_id)
        if not deleted:
            raise NotFoundError("Certification not found")


def _validate(fields: dict[str, Any]) -> dict[str, Any]:
    values = {column: fields.get(column) for column in CERTIFICATION_COLUMNS}
    for name in ("name", "issuer"):
        value = values[name]
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} is required")
        values[name] = value.strip()
    if values["issue_date"] is None:
        raise ValidationError("issue_date is required")
    if values["expiry_date"] is not None and values["expiry_date"] < values["issue_date"]:
        raise ValidationError("expiry_date cannot precede issue_date")
    return values
