from __future__ import annotations

"""
Pydantic models for WooCommerce order payloads (REST API v3 and order webhooks).

Only the fields the bridge uses are declared; everything else in the payload
is ignored. Money fields arrive as strings ("12.50") and are parsed as Decimal.
"""

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _money_or_zero(v: Any) -> Any:
    if v is None or (isinstance(v, str) and not v.strip()):
        return Decimal("0")
    return v


class WooMetaData(BaseModel):
    """Line item meta entry. Keys starting with "_" are internal to the store."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    key: str = Field(description="Raw meta key", examples=["Size", "_reduced_stock"])
    value: Any = None
    display_key: Optional[str] = None
    display_value: Any = None

    @property
    def is_private(self) -> bool:
        return self.key.startswith("_")

    @property
    def label(self) -> str:
        return str(self.display_key or self.key)

    @property
    def text(self) -> str:
        v = self.display_value if self.display_value is not None else self.value
        return "" if v is None else str(v)


class WooLineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = Field(min_length=1)
    quantity: int = Field(ge=0)
    subtotal: Optional[Decimal] = None
    total: Decimal
    meta_data: List[WooMetaData] = Field(default_factory=list)

    @field_validator("subtotal", mode="before")
    @classmethod
    def _blank_subtotal(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class WooBilling(BaseModel):
    model_config = ConfigDict(extra="ignore")

    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class WooOrder(BaseModel):
    """An order as returned by GET /wp-json/wc/v3/orders or sent by an order webhook."""
    model_config = ConfigDict(extra="ignore")

    id: int = Field(description="Store-side order id; the dedup key")
    number: str = Field(description="Customer-facing order number")
    status: str
    total: Decimal
    subtotal: Optional[Decimal] = None
    shipping_total: Decimal = Decimal("0")
    total_tax: Decimal = Decimal("0")
    customer_note: Optional[str] = None
    billing: WooBilling = Field(default_factory=WooBilling)
    line_items: List[WooLineItem] = Field(default_factory=list)

    @field_validator("number", mode="before")
    @classmethod
    def _number_as_str(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("shipping_total", "total_tax", mode="before")
    @classmethod
    def _zero_default(cls, v: Any) -> Any:
        return _money_or_zero(v)

    @field_validator("subtotal", mode="before")
    @classmethod
    def _blank_subtotal(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def customer_name(self) -> str:
        return f"{self.billing.first_name} {self.billing.last_name}".strip()


__all__ = ["WooBilling", "WooLineItem", "WooMetaData", "WooOrder"]
