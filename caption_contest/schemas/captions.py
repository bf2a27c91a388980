"""Schemas for captions (contest entries) and their vote state."""

from pydantic import BaseModel, Field, model_validator

from caption_contest.schemas.common import SuccessResponse

MAX_CAPTION_LENGTH = 200

TEXT_FIELDS = ("top_caption", "bottom_caption", "top_extended_caption", "bottom_extended_caption")


class CaptionFields(BaseModel):
    """Caption text per banner position plus banner styling flags."""

    top_caption: str | None = Field(alias="topCaption", default=None, max_length=MAX_CAPTION_LENGTH)
    bottom_caption: str | None = Field(alias="bottomCaption", default=None, max_length=MAX_CAPTION_LENGTH)
    top_extended_caption: str | None = Field(
        alias="topExtendedCaption", default=None, max_length=MAX_CAPTION_LENGTH
    )
    bottom_extended_caption: str | None = Field(
        alias="bottomExtendedCaption", default=None, max_length=MAX_CAPTION_LENGTH
    )
    top_extension_white: bool = Field(alias="topExtensionWhite", default=False)
    bottom_extension_white: bool = Field(alias="bottomExtensionWhite", default=False)

    model_config = {"populate_by_name": True}


class CaptionPayload(CaptionFields):
    """Request body for POST /api/captions/create.

    Anything else the client sends (id, username, createdAt) is ignored:
    ids and authorship are assigned server-side.
    """

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @model_validator(mode="after")
    def _require_some_text(self) -> "CaptionPayload":
        for name in TEXT_FIELDS:
            value = getattr(self, name)
            if value is not None and not value.strip():
                setattr(self, name, None)
        if all(getattr(self, name) is None for name in TEXT_FIELDS):
            raise ValueError("At least one caption field is required")
        return self


class Caption(CaptionFields):
    """A stored caption entry."""

    id: str
    username: str
    created_at: int = Field(alias="createdAt", description="Epoch milliseconds")


class CaptionWithUpvotes(Caption):
    """A caption plus its vote count and the caller's vote state."""

    upvotes: int = Field(ge=0)
    user_upvoted: bool = Field(alias="userUpvoted")


class CaptionResponse(SuccessResponse):
    caption: Caption


class CaptionListResponse(SuccessResponse):
    captions: list[CaptionWithUpvotes]


class AuthoredCaptionsResponse(SuccessResponse):
    captions: list[Caption]


class UpvoteResponse(SuccessResponse):
    user_upvoted: bool = Field(alias="userUpvoted")

    model_config = {"populate_by_name": True}


class UsernameResponse(SuccessResponse):
    username: str


class ImageResponse(SuccessResponse):
    image_url: str = Field(alias="imageUrl")

    model_config = {"populate_by_name": True}
