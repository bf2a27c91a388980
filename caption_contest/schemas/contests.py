"""Schemas for contests, leaderboards and settlement (admin endpoints)."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from caption_contest.schemas.captions import Caption
from caption_contest.schemas.common import SuccessResponse


class ContestStatus(str, Enum):
    """Stored contest status.

    Completed and cancelled contests are purged, so they never appear as a
    stored status.
    """

    SCHEDULED = "scheduled"
    RUNNING = "running"
    CANCELLED = "cancelled"


class SettlementState(str, Enum):
    """Outcome of one settlement delivery."""

    COMPLETED = "completed"  # published (or skipped publishing) and purged
    MISSING = "missing"  # contest already completed or cancelled
    SKIPPED = "skipped"  # another delivery holds the settlement lease


class Contest(BaseModel):
    """One timed captioning round over a single image."""

    id: str
    image_url: str = Field(alias="imageUrl")
    created_at: datetime = Field(alias="createdAt")
    deadline: datetime
    job_id: str | None = Field(alias="jobId", default=None)
    status: ContestStatus = ContestStatus.SCHEDULED

    model_config = {"populate_by_name": True}


class RankedCaption(BaseModel):
    """A leaderboard row."""

    rank: int = Field(ge=1)
    upvotes: int = Field(ge=0)
    caption: Caption


class PublishedCaption(BaseModel):
    caption_id: str = Field(alias="captionId")
    ref: str

    model_config = {"populate_by_name": True}


class SettlementReport(BaseModel):
    """What one settlement delivery did."""

    contest_id: str = Field(alias="contestId")
    state: SettlementState
    published: list[PublishedCaption] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list, description="Caption ids whose publish failed")
    skipped: list[str] = Field(default_factory=list, description="Ranked ids with no caption record")
    purged: bool = False

    model_config = {"populate_by_name": True}


class CreateContestRequest(BaseModel):
    """Request body for POST /api/admin/contests."""

    image_url: str = Field(alias="imageUrl", min_length=1, max_length=2048)
    duration_seconds: int | None = Field(alias="durationSeconds", default=None, ge=1)

    model_config = {"populate_by_name": True}


class ContestResponse(SuccessResponse):
    contest: Contest


class LeaderboardResponse(SuccessResponse):
    contest_id: str = Field(alias="contestId")
    entries: list[RankedCaption]

    model_config = {"populate_by_name": True}


class CancelResponse(SuccessResponse):
    cancelled: bool


class SettlementResponse(SuccessResponse):
    report: SettlementReport


class RebuildScoresResponse(SuccessResponse):
    corrected: int
