"""
Error kinds for the annotation progress engine.

Every failure that crosses the storage/network boundary is raised as an
AnnotationError subclass. The API layer renders them as structured JSON
with an HTTP-equivalent status and a retryable flag so callers can tell
"try again later" apart from "nothing to do".
"""


class AnnotationError(Exception):
    """Base class for structured annotation failures."""

    status_code = 500
    error_code = "internal_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Serialize for an API error body."""
        return {
            "error": self.error_code,
            "detail": self.message,
            "retryable": self.retryable,
        }


class TrackNotFoundError(AnnotationError):
    """Referenced track id is absent from the catalog."""
    status_code = 404
    error_code = "not_found"

    def __init__(self, track_id: str):
        super().__init__(f"Track not found: {track_id}")
        self.track_id = track_id


class ObjectNotFoundError(AnnotationError):
    """A signed URL points at an object that no longer exists."""
    status_code = 404
    error_code = "not_found"


class InvalidSegmentError(AnnotationError):
    """Segment start is non-numeric, non-finite or negative."""
    status_code = 400
    error_code = "invalid_segment"


class InvalidLabelError(AnnotationError):
    """Annotation payload is missing its required description."""
    status_code = 400
    error_code = "invalid_label"


class MalformedRequestError(AnnotationError):
    """Request body does not match the expected shape."""
    status_code = 422
    error_code = "malformed"


class ResolutionDivergenceError(AnnotationError):
    """
    The resolver skipped more annotated entries than allowed.

    Signals a data-consistency bug (e.g. a cursor stuck on an annotated
    entry), never true exhaustion.
    """
    error_code = "resolution_divergence"


class TranscodeError(AnnotationError):
    """The audio segment processor failed or timed out."""
    error_code = "transcode_failure"


class PersistenceConflictError(AnnotationError):
    """A transactional write against the repository failed."""
    status_code = 409
    error_code = "persistence_conflict"
    retryable = True


class ObjectStoreError(AnnotationError):
    """Listing, reading or writing the object store failed."""
    status_code = 503
    error_code = "object_store_unavailable"
    retryable = True


class SignatureError(AnnotationError):
    """A signed URL is malformed, tampered with or expired."""
    status_code = 403
    error_code = "invalid_signature"
