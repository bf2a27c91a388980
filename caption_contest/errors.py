"""Domain errors.

Every error carries the HTTP status and a human-readable message; the app's
exception handlers turn them into `{"status": "error", "message": ...}`.
"""


class CaptionContestError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(CaptionContestError):
    status_code = 404
    default_message = "Not found"


class ContestNotFound(NotFound):
    default_message = "Contest not found"

    def __init__(self, contest_id: str):
        self.contest_id = contest_id
        super().__init__(f"Contest {contest_id} does not exist")


class EntryNotFound(NotFound):
    default_message = "Caption not found"

    def __init__(self, contest_id: str, entry_id: str):
        self.contest_id = contest_id
        self.entry_id = entry_id
        super().__init__(f"Caption {entry_id} does not exist")


class Unauthenticated(CaptionContestError):
    status_code = 401
    default_message = "User not authenticated"


class ValidationError(CaptionContestError):
    status_code = 400
    default_message = "Invalid request"


class MissingField(ValidationError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} is required")


class SelfVote(ValidationError):
    default_message = "You cannot upvote your own caption"


class DuplicateEntry(ValidationError):
    default_message = "You have already submitted a caption for this contest"


class UpstreamFailure(CaptionContestError):
    status_code = 502
    default_message = "Upstream service failed"


class PublishError(UpstreamFailure):
    default_message = "Failed to publish caption"


class SchedulerError(UpstreamFailure):
    default_message = "Failed to schedule job"


class ContestFull(ValidationError):
    default_message = "This contest is not accepting more captions"
