from datetime import date, datetime

from pydantic import BaseModel, Field


class CertificationOut(BaseModel):
    id: str
    user_id: str
    name: str
    issuer: str
    issue_date: date
    expiry_date: date | None = None
    credential_id: str | None = None
    credential_url: str | None = None
    created_at: datetime


class CertificationUpsertRequest(BaseModel):
    name: str = Field(min_length=1)
    issuer: str = Field(min_length=1)
    issue_date: date
    expiry_date: date | None = None
    credential_id: str | None = None
    credential_url: str | None = None
