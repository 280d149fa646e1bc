"""Pydantic schemas for the product catalog."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from apps.pricing.engine import DiscountedPrice


def normalize_availability(v: str) -> str:
    v2 = v.upper().replace("-", "_").replace(" ", "_")
    if v2 not in ("IN_STOCK", "MADE_TO_ORDER"):
        raise ValueError("availability must be IN_STOCK or MADE_TO_ORDER")
    return v2


class ProductCreateDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    sku: str = Field(min_length=3, max_length=64)
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    category_id: int = Field(alias="categoryId", gt=0)
    subcategory_id: Optional[int] = Field(alias="subcategoryId", default=None)
    availability: str = "IN_STOCK"
    quantity: int = Field(default=0, ge=0)
    is_featured: bool = Field(alias="isFeatured", default=False)
    tags: list[str] = Field(default_factory=list)

    @field_validator("sku")
    @classmethod
    def upper_sku(cls, v: str) -> str:
        return v.upper()

    @field_validator("availability")
    @classmethod
    def known_availability(cls, v: str) -> str:
        return normalize_availability(v)


class RestockDTO(BaseModel):
    quantity: int = Field(gt=0)


class ProductOut(BaseModel):
    """Product as shown to shoppers, priced with the best active discount."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    description: str
    sku: str
    price: Decimal
    category_id: int = Field(alias="categoryId")
    subcategory_id: Optional[int] = Field(alias="subcategoryId", default=None)
    availability: str
    quantity: int
    reserved: int
    available_quantity: int = Field(alias="availableQuantity")
    is_featured: bool = Field(alias="isFeatured")
    tags: list[str]
    final_price: Decimal = Field(alias="finalPrice")
    discount_amount: Decimal = Field(alias="discountAmount")
    discount_percentage: Decimal = Field(alias="discountPercentage")
    has_discount: bool = Field(alias="hasDiscount")
    discount_name: Optional[str] = Field(alias="discountName", default=None)
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def build(cls, product, pricing: DiscountedPrice) -> "ProductOut":
        return cls(
            id=product.id,
            title=product.title,
            description=product.description,
            sku=product.sku,
            price=product.price,
            category_id=product.category_id,
            subcategory_id=product.subcategory_id,
            availability=product.availability,
            quantity=product.quantity,
            reserved=product.reserved,
            available_quantity=product.available_quantity,
            is_featured=product.is_featured,
            tags=product.tags or [],
            final_price=pricing.final_price,
            discount_amount=pricing.discount_amount,
            discount_percentage=pricing.discount_percentage,
            has_discount=pricing.has_discount,
            discount_name=pricing.discount_name,
            created_at=product.created_at,
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ProductUpdateDTO(BaseModel):
    """Partial product update. Stock counters are not accepted here."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    sku: Optional[str] = Field(default=None, min_length=3, max_length=64)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    category_id: Optional[int] = Field(alias="categoryId", default=None, gt=0)
    subcategory_id: Optional[int] = Field(alias="subcategoryId", default=None)
    availability: Optional[str] = None
    is_featured: Optional[bool] = Field(alias="isFeatured", default=None)
    tags: Optional[list[str]] = None

    @field_validator("sku")
    @classmethod
    def upper_sku(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v is not None else v

    @field_validator("availability")
    @classmethod
    def known_availability(cls, v: Optional[str]) -> Optional[str]:
        return normalize_availability(v) if v is not None else v


class CategoryCreateDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=120)
    description: str = ""
    parent_id: Optional[int] = Field(alias="parentId", default=None, gt=0)
    is_active: bool = Field(alias="isActive", default=True)
    sort_order: int = Field(alias="sortOrder", default=0)


class CategoryOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    description: str
    parent_id: Optional[int] = Field(alias="parentId", default=None)
    is_active: bool = Field(alias="isActive")
    sort_order: int = Field(alias="sortOrder")

    @classmethod
    def from_model(cls, category) -> "CategoryOut":
        return cls(
            id=category.id,
            name=category.name,
            description=category.description,
            parent_id=category.parent_id,
            is_active=category.is_active,
            sort_order=category.sort_order,
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
