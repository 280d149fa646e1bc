"""Pydantic schemas for stock alerts."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SubscribeDTO(BaseModel):
    """``email`` defaults to the authenticated user's address."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId", gt=0)
    email: Optional[str] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=254)


class AlertProductOut(BaseModel):
    id: int
    title: str
    price: Decimal
    quantity: int


class StockAlertOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: int
    email: str
    status: str
    user_id: Optional[int] = Field(alias="userId", default=None)
    product: AlertProductOut
    notified_at: Optional[datetime] = Field(alias="notifiedAt", default=None)
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_model(cls, note) -> "StockAlertOut":
        p = note.product
        return cls(
            id=note.id,
            email=note.email,
            status=note.status,
            user_id=note.user_id,
            product=AlertProductOut(id=p.id, title=p.title, price=p.price, quantity=p.quantity),
            notified_at=note.notified_at,
            created_at=note.created_at,
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
