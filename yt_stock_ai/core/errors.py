"""
Error taxonomy for the analysis workflow.

Every error is terminal for the current request. Each class carries the
HTTP status and machine-readable code the web layer maps it to.
"""

from typing import Any, Dict


class AnalysisError(Exception):
    """Base class for failures of an analysis request."""
    status_code = 500
    error_code = "analysis_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "error_code": self.error_code}


class InvalidVideoReference(AnalysisError):
    status_code = 400
    error_code = "invalid_video_reference"


class Unauthenticated(AnalysisError):
    status_code = 401
    error_code = "unauthenticated"


class UnknownUser(AnalysisError):
    status_code = 404
    error_code = "unknown_user"


class QuotaExceeded(AnalysisError):
    """Raised when a free-tier user has used up the monthly quota.

    The payload tells the UI to offer an upgrade instead of a generic error.
    """
    status_code = 403
    error_code = "quota_exceeded"

    def __init__(self, message: str, quota: int, used: int):
        super().__init__(message)
        self.quota = quota
        self.used = used

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload.update({
            "quota": self.quota,
            "used": self.used,
            "upgrade_required": True,
        })
        return payload


class TranscriptUnavailable(AnalysisError):
    status_code = 502
    error_code = "transcript_unavailable"


class ExtractionFailed(AnalysisError):
    status_code = 500
    error_code = "extraction_failed"


class PersistenceFailed(AnalysisError):
    status_code = 500
    error_code = "persistence_failed"
