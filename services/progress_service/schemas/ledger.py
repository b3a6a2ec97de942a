"""Points ledger schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from services.progress_service.models.enums import LedgerSource


class LedgerEntryResponse(BaseModel):
    id: uuid.UUID
    member_id: uuid.UUID
    amount: int
    source: LedgerSource
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    reverses_entry_id: Optional[uuid.UUID] = None
    reason: str
    epoch: int
    balance_after: int
    created_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerHistoryResponse(BaseModel):
    entries: list[LedgerEntryResponse]
    total: int
    skip: int
    limit: int


class BalanceResponse(BaseModel):
    member_id: uuid.UUID
    balance: int


class AdjustPointsRequest(BaseModel):
    amount: int = Field(..., description="Positive to credit, negative to debit")
    reason: str = Field(..., min_length=5)
    idempotency_key: Optional[str] = None


class ResetBalanceRequest(BaseModel):
    reason: str = Field(..., min_length=5)


class ResetBalanceResponse(BaseModel):
    member_id: uuid.UUID
    balance: int
    points_epoch: int


class RecomputeResponse(BaseModel):
    member_id: uuid.UUID
    cached_balance: int
    ledger_balance: int
    drift: int
    repaired: bool


class BulkAwardRequest(BaseModel):
    """Award the same amount to a list of members and/or a unit's pathfinders."""

    member_ids: list[uuid.UUID] = Field(default_factory=list)
    unit_id: Optional[uuid.UUID] = None
    amount: int = Field(..., gt=0)
    source: LedgerSource = LedgerSource.ACTIVITY
    reason: str = Field(..., min_length=3)
    reference_id: Optional[str] = Field(
        default=None, description="Replaying the same reference is idempotent"
    )

    @model_validator(mode="after")
    def check_targets(self):
        if not self.member_ids and not self.unit_id:
            raise ValueError("member_ids or unit_id is required")
        return self


class BulkAwardResultItem(BaseModel):
    member_id: uuid.UUID
    success: bool
    entry_id: Optional[uuid.UUID] = None
    balance: Optional[int] = None
    error_code: Optional[str] = None
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BulkAwardResponse(BaseModel):
    results: list[BulkAwardResultItem]
    awarded: int
    failed: int
