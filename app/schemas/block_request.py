"""Pydantic schemas for the card block-request workflow."""

from datetime import datetime

from pydantic import Field

from app.models.block_request import BlockRequestStatus
from app.schemas.common import ApiModel


class BlockRequestCreateRequest(ApiModel):
    """Request body for POST /user/cards/{id}/block-request."""
    reason: str = Field(min_length=10, max_length=500)


class BlockRequestProcessRequest(ApiModel):
    """Request body for POST /admin/cards/block-requests/{id}/process."""
    decision: str = Field(min_length=1, description="'approve' or 'reject' (any case)")
    admin_comment: str | None = Field(default=None, max_length=500)


class BlockRequestResponse(ApiModel):
    id: int
    card_id: int
    card_masked_number: str
    reason: str
    status: BlockRequestStatus
    created_at: datetime
    processed_at: datetime | None
    processed_by_admin: str | None
    admin_comment: str | None


class BlockRequestStatisticsResponse(ApiModel):
    total_requests: int
    pending_requests: int
    approved_requests: int
    rejected_requests: int
