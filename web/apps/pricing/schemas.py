"""Pydantic schemas for coupons, shipping and discounts."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .engine import DiscountType


class CouponCreateDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(min_length=3, max_length=40)
    discount_type: DiscountType = Field(alias="discountType")
    value: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    expiry_date: datetime = Field(alias="expiryDate")

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def percentage_at_most_100(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.value > 100:
            raise ValueError("Percentage coupons cannot exceed 100")
        return self


class CouponApplyDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(min_length=1, max_length=40)
    order_total: Decimal = Field(alias="orderTotal", gt=0)


class CouponOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    code: str
    discount_type: DiscountType = Field(alias="discountType")
    value: Decimal
    expiry_date: datetime = Field(alias="expiryDate")

    @classmethod
    def from_model(cls, coupon, include_id: bool = True) -> "CouponOut":
        return cls(
            id=coupon.id if include_id else None,
            code=coupon.code,
            discount_type=DiscountType(coupon.discount_type),
            value=coupon.value,
            expiry_date=coupon.expiry_date,
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ShippingConfigDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    shipping_charge: Decimal = Field(alias="shippingCharge", ge=0, max_digits=12, decimal_places=2)
    free_shipping_threshold: Decimal = Field(alias="freeShippingThreshold", ge=0, max_digits=12, decimal_places=2)


class ShippingItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId", gt=0)
    quantity: int = Field(gt=0)


class ShippingCalculateDTO(BaseModel):
    items: list[ShippingItemIn] = Field(min_length=1)


class DiscountOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    description: str
    discount_type: DiscountType = Field(alias="discountType")
    value: Decimal
    min_order_amount: Optional[Decimal] = Field(alias="minOrderAmount", default=None)
    max_discount_amount: Optional[Decimal] = Field(alias="maxDiscountAmount", default=None)
    start_date: datetime = Field(alias="startDate")
    end_date: datetime = Field(alias="endDate")
    product_ids: list[int] = Field(alias="applicableProducts")
    category_ids: list[int] = Field(alias="applicableCategories")

    @classmethod
    def from_model(cls, d) -> "DiscountOut":
        return cls(
            id=d.id,
            name=d.name,
            description=d.description,
            discount_type=DiscountType(d.discount_type),
            value=d.value,
            min_order_amount=d.min_order_amount,
            max_discount_amount=d.max_discount_amount,
            start_date=d.start_date,
            end_date=d.end_date,
            product_ids=sorted(p.id for p in d.applicable_products.all()),
            category_ids=sorted(c.id for c in d.applicable_categories.all()),
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class CouponUpdateDTO(BaseModel):
    """Partial coupon update; omitted fields keep their value."""

    model_config = ConfigDict(populate_by_name=True)

    code: Optional[str] = Field(default=None, min_length=3, max_length=40)
    discount_type: Optional[DiscountType] = Field(alias="discountType", default=None)
    value: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    expiry_date: Optional[datetime] = Field(alias="expiryDate", default=None)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v is not None else v


class DiscountStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    EXPIRED = "Expired"


class DiscountCreateDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=120)
    description: str = ""
    discount_type: DiscountType = Field(alias="discountType")
    value: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    min_order_amount: Optional[Decimal] = Field(alias="minOrderAmount", default=None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(alias="maxDiscountAmount", default=None, ge=0)
    start_date: datetime = Field(alias="startDate")
    end_date: datetime = Field(alias="endDate")
    status: DiscountStatus = DiscountStatus.ACTIVE
    is_active: bool = Field(alias="isActive", default=True)
    product_ids: list[int] = Field(alias="applicableProducts", default_factory=list)
    category_ids: list[int] = Field(alias="applicableCategories", default_factory=list)
    usage_limit: Optional[int] = Field(alias="usageLimit", default=None, ge=0)

    @model_validator(mode="after")
    def consistent_terms(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.value > 100:
            raise ValueError("Percentage discounts cannot exceed 100")
        if self.end_date <= self.start_date:
            raise ValueError("endDate must be after startDate")
        return self


class DiscountUpdateDTO(BaseModel):
    """Partial discount update. The merged result is re-checked by the view
    against ``DiscountCreateDTO``."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = Field(alias="discountType", default=None)
    value: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    min_order_amount: Optional[Decimal] = Field(alias="minOrderAmount", default=None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(alias="maxDiscountAmount", default=None, ge=0)
    start_date: Optional[datetime] = Field(alias="startDate", default=None)
    end_date: Optional[datetime] = Field(alias="endDate", default=None)
    status: Optional[DiscountStatus] = None
    is_active: Optional[bool] = Field(alias="isActive", default=None)
    product_ids: Optional[list[int]] = Field(alias="applicableProducts", default=None)
    category_ids: Optional[list[int]] = Field(alias="applicableCategories", default=None)
    usage_limit: Optional[int] = Field(alias="usageLimit", default=None, ge=0)


class DiscountCalculateDTO(BaseModel):
    items: list[ShippingItemIn] = Field(min_length=1)


class DiscountAdminOut(DiscountOut):
    status: DiscountStatus
    is_active: bool = Field(alias="isActive")
    usage_limit: Optional[int] = Field(alias="usageLimit", default=None)
    used_count: int = Field(alias="usedCount")

    @classmethod
    def from_model(cls, d) -> "DiscountAdminOut":
        base = DiscountOut.from_model(d).model_dump()
        return cls(
            **base,
            status=DiscountStatus(d.status),
            is_active=d.is_active,
            usage_limit=d.usage_limit,
            used_count=d.used_count,
        )
