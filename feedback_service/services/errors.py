from __future__ import annotations

from typing import List, Optional


class FeedbackError(RuntimeError):
    """Base for every error the feedback core raises on purpose."""
    code = "error"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidInput(FeedbackError):
    """Malformed id, blank/oversized text, unknown enum value."""
    code = "invalid_input"
    http_status = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.errors:
            d["errors"] = self.errors
        return d


class Forbidden(FeedbackError):
    code = "forbidden"
    http_status = 403


class NotFound(FeedbackError):
    """Missing, deleted, or outside the caller's scope (deliberately indistinguishable)."""
    code = "not_found"
    http_status = 404


class Conflict(FeedbackError):
    """State precondition violated, or a concurrent writer got there first."""
    code = "conflict"
    http_status = 409


class RateLimited(FeedbackError):
    code = "rate_limited"
    http_status = 429

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.retry_after is not None:
            d["retry_after"] = self.retry_after
        return d


class Transient(FeedbackError):
    """Storage/transaction failure; safe to retry reads, not blind writes."""
    code = "transient"
    http_status = 503
