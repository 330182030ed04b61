"""
Domain records shared by the store, the scheduler and the encoder.

Orders are immutable once stored. Print jobs are snapshots of a row; the
scheduler changes a job only through the store's conditional updates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class DocumentKind(str, Enum):
    RECEIPT = "receipt"
    KITCHEN = "kitchen"

    @property
    def priority(self) -> int:
        """Kitchen tickets always outrank receipts."""
        return 10 if self is DocumentKind.KITCHEN else 0


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Variation:
    key: str
    value: str


@dataclass(frozen=True)
class LineItem:
    id: int
    name: str
    quantity: int
    total: Decimal
    variations: Tuple[Variation, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "total": str(self.total),
            "variations": [{"key": v.key, "value": v.value} for v in self.variations],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            quantity=int(data["quantity"]),
            total=Decimal(str(data["total"])),
            variations=tuple(Variation(str(v["key"]), str(v["value"])) for v in data.get("variations") or []),
        )


@dataclass(frozen=True)
class Order:
    id: Optional[int]
    external_id: Optional[int]
    order_number: str
    status: str
    customer_name: str
    customer_email: Optional[str]
    line_items: Tuple[LineItem, ...]
    subtotal: Decimal
    shipping_total: Decimal
    tax_total: Decimal
    order_total: Decimal
    notes: Optional[str]
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "order_number": self.order_number,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "line_items": [item.to_dict() for item in self.line_items],
            "subtotal": str(self.subtotal),
            "shipping_total": str(self.shipping_total),
            "tax_total": str(self.tax_total),
            "order_total": str(self.order_total),
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class PrintJob:
    id: str
    order_id: int
    kind: DocumentKind
    status: JobStatus
    priority: int
    attempts: int = 0
    retry_base: int = 0
    last_error: Optional[str] = None
    dispatch_id: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    order_number: Optional[str] = None
    customer_name: Optional[str] = None

    @property
    def budget_used(self) -> int:
        """Attempts made since creation or since the last manual retry."""
        return self.attempts - self.retry_base

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "priority": self.priority,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "dispatch_id": self.dispatch_id,
            "completed_at": self.completed_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "order": {"order_number": self.order_number, "customer_name": self.customer_name},
        }


@dataclass
class ImportResult:
    order: Order
    created: bool
    jobs: List[PrintJob] = field(default_factory=list)


__all__ = [
    "DocumentKind",
    "ImportResult",
    "JobStatus",
    "LineItem",
    "Order",
    "PrintJob",
    "Variation",
]
