from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field


class ConnectPackageOut(BaseModel):
    id: int
    name: str
    connects: int
    price: float
    currency: str
    description: str
    features: list[str] = Field(default_factory=list)


class ConnectPurchaseRequest(BaseModel):
    package_id: int = Field(validation_alias=AliasChoices("package_id", "packageId"))


class ConnectTransactionOut(BaseModel):
    id: str
    user_id: str
    package_id: int
    amount: int
    price: float
    status: Literal["PENDING", "COMPLETED"]
    transaction_id: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class ConnectGrantOut(BaseModel):
    id: str
    user_id: str
    transaction_id: str
    amount: int
    expires_at: datetime
    created_at: datetime


class ConnectPurchaseOut(BaseModel):
    success: bool = True
    transaction: ConnectTransactionOut
    connect: ConnectGrantOut | None = None
    balance: int
    replayed: bool = False


class ConnectBalanceOut(BaseModel):
    connects: int
    grants: list[ConnectGrantOut] = Field(default_factory=list)
