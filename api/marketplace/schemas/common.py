from datetime import datetime

from pydantic import BaseModel


class UserSummaryOut(BaseModel):
    id: str
    name: str | None = None
    image: str | None = None


class ClientSummaryOut(UserSummaryOut):
    created_at: datetime | None = None


class MessageOut(BaseModel):
    success: bool = True
    message: str


class CountOut(BaseModel):
    success: bool = True
    count: int
