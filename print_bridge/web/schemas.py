from __future__ import annotations

"""
Pydantic schemas for the Print Bridge operator API.
"""

from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from print_bridge.core.db import JOB_STATUSES


class ReprintRequest(BaseModel):
    """Which documents to print again for an order. Dashboards may send it as `jobType`."""
    kind: Literal["receipt", "kitchen", "both"] = Field(
        default="receipt",
        validation_alias=AliasChoices("kind", "jobType"),
        description="Document(s) to reprint",
        examples=["receipt", "kitchen", "both"],
    )

    @field_validator("kind", mode="before")
    @classmethod
    def _norm(cls, v):
        if v is None:
            return "receipt"
        return str(v).strip().lower()


class JobListQuery(BaseModel):
    status: Optional[str] = Field(default=None, description="Filter by job status", examples=list(JOB_STATUSES))
    limit: int = Field(default=100, ge=1, le=500)

    @field_validator("status")
    @classmethod
    def _status(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip().lower()
        if not v:
            return None
        if v not in JOB_STATUSES:
            raise ValueError(f"invalid status: {v}")
        return v


class ProbeResponse(BaseModel):
    connected: bool
    address: str
    port: int
    error: Optional[str] = None
