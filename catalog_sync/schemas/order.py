from pydantic import BaseModel, Field, AliasChoices, field_validator
from decimal import Decimal
from typing import List, Optional
from datetime import datetime

from catalog_sync.services.envelope import normalize


class OrderDetail(BaseModel):
    id: int = Field(0, validation_alias=AliasChoices("idOrderDetail", "id"))
    record_id: int = Field(0, validation_alias=AliasChoices("recordId", "idRecord", "record_id"))
    title: str = Field("", validation_alias=AliasChoices("titleRecord", "title"))
    amount: int = 0
    price: Decimal = Decimal("0")


class Order(BaseModel):
    id: int = Field(alias="idOrder")
    order_date: datetime = Field(alias="orderDate")
    payment_method: str = Field("", alias="paymentMethod")
    total: Decimal = Decimal("0")
    user_email: Optional[str] = Field(None, alias="userEmail")
    details: List[OrderDetail] = Field(
        default_factory=list,
        validation_alias=AliasChoices("ordersDetails", "orderDetails", "details"),
    )

    class Config:
        populate_by_name = True

    @field_validator("details", mode="before")
    @classmethod
    def _unwrap_details(cls, value):
        if value is None:
            return []
        return normalize(value)

    @field_validator("payment_method", mode="before")
    @classmethod
    def _null_payment(cls, value):
        return value or ""
