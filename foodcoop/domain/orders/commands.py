from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class OrderCreateRequest(BaseModel):
    supplier_id: int | None = None
    starts: datetime | None = None
    ends: datetime | None = None
    note: str | None = None
    article_ids: list[int] = Field(default_factory=list)


class ArticleSelectionRequest(BaseModel):
    article_ids: list[int]
    expected_version: int | None = None


class GroupOrderItem(BaseModel):
    article_id: int
    quantity: int = Field(ge=0)
    tolerance: int = Field(default=0, ge=0)


class GroupOrderSubmission(BaseModel):
    ordergroup_id: int
    items: list[GroupOrderItem]


class FinishRequest(BaseModel):
    expected_version: int | None = None


class BalanceRequest(BaseModel):
    expected_version: int | None = None


class InvoiceCreateRequest(BaseModel):
    number: str | None = None
    amount_cents: int = Field(ge=0, description="int cents")
    deposit_cents: int = Field(default=0, ge=0, description="int cents")
    deposit_credit_cents: int = Field(default=0, ge=0, description="int cents")
    note: str | None = None


class CommentCreateRequest(BaseModel):
    text: str = Field(min_length=1, max_length=4000)
