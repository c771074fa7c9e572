"""Pydantic models for operator endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from rada.db.models import SourceType


class OrphanResponse(BaseModel):
    table: str
    row_id: int
    reason: str


class DriftResponse(BaseModel):
    user_id: int
    table: str
    field: str
    stored: Any
    expected: Any


class ReconcileResponse(BaseModel):
    identity_repairs: int
    aggregate_repairs: int
    streak_repairs: int
    aggregates_created: int
    total_repairs: int
    orphans: list[OrphanResponse]
    drift: list[DriftResponse]


class ReverseRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=200)


class ReverseResponse(BaseModel):
    reversed_entry_id: int
    reversal_entry_id: int


class ManualAwardRequest(BaseModel):
    user: int | str
    amount: int
    reference_id: str = Field(min_length=1, max_length=128)
    source_type: SourceType = SourceType.MANUAL_ADJUSTMENT
    description: str | None = Field(default=None, max_length=256)


class AwardResponse(BaseModel):
    accepted: bool
    entry_id: int
    amount: int
    created_at: datetime
