from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class CheckoutIntentCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    visitor_id: str = Field(..., min_length=1, alias="visitorId")
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    page_slug: Optional[str] = Field(default=None, alias="pageSlug")
    page_url: Optional[str] = Field(default=None, alias="pageUrl")
    checkout_url: str = Field(..., min_length=1, alias="checkoutUrl")
    product_name: Optional[str] = Field(default=None, alias="productName")
    product_price: Optional[str] = Field(default=None, alias="productPrice")


class CheckoutIntentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    visitor_id: str = Field(serialization_alias="visitorId")
    email: Optional[str]
    name: Optional[str]
    page_slug: Optional[str] = Field(serialization_alias="pageSlug")
    checkout_url: str = Field(serialization_alias="checkoutUrl")
    product_name: Optional[str] = Field(serialization_alias="productName")
    product_price: Optional[str] = Field(serialization_alias="productPrice")
    status: str
    created_at: datetime = Field(serialization_alias="createdAt")
    converted_at: Optional[datetime] = Field(serialization_alias="convertedAt")


class CheckoutConversionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[EmailStr] = None
    visitor_id: Optional[str] = Field(default=None, alias="visitorId")

    @model_validator(mode="after")
    def _require_identifier(self) -> "CheckoutConversionIn":
        if not self.email and not self.visitor_id:
            raise ValueError("email_or_visitor_id_required")
        return self


class CheckoutConversionOut(BaseModel):
    success: bool = True
    converted: int
    cancelled_jobs: int = Field(serialization_alias="cancelledJobs")
