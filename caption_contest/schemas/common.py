"""Common schemas used across the API."""

from typing import Literal

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format.

    Format: { "status": "error", "message": str }
    """

    status: Literal["error"] = "error"
    message: str


class SuccessResponse(BaseModel):
    """Base for successful responses: { "status": "success", ... }."""

    status: Literal["success"] = "success"
