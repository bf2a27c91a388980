"""Pydantic schemas for API request/response validation."""

from caption_contest.schemas.common import ErrorResponse, SuccessResponse
from caption_contest.schemas.captions import (
    AuthoredCaptionsResponse,
    Caption,
    CaptionListResponse,
    CaptionPayload,
    CaptionResponse,
    CaptionWithUpvotes,
    ImageResponse,
    UpvoteResponse,
    UsernameResponse,
)
from caption_contest.schemas.contests import (
    CancelResponse,
    Contest,
    ContestResponse,
    ContestStatus,
    CreateContestRequest,
    LeaderboardResponse,
    PublishedCaption,
    RankedCaption,
    RebuildScoresResponse,
    SettlementReport,
    SettlementResponse,
    SettlementState,
)

__all__ = [
    "ErrorResponse",
    "SuccessResponse",
    "AuthoredCaptionsResponse",
    "Caption",
    "CaptionListResponse",
    "CaptionPayload",
    "CaptionResponse",
    "CaptionWithUpvotes",
    "ImageResponse",
    "UpvoteResponse",
    "UsernameResponse",
    "CancelResponse",
    "Contest",
    "ContestResponse",
    "ContestStatus",
    "CreateContestRequest",
    "LeaderboardResponse",
    "PublishedCaption",
    "RankedCaption",
    "RebuildScoresResponse",
    "SettlementReport",
    "SettlementResponse",
    "SettlementState",
]
