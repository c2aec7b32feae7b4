# =============================================================================
# CLIPKit Demo - Error Taxonomy
# =============================================================================
# Typed failures shared by the server and the client.  Every error carries a
# stable ``kind`` string which is the discriminator used on the wire, so the
# client can rebuild the same exception class from an error response.
# =============================================================================

from typing import Any, Dict, Optional


class ClipDemoError(Exception):
    """Base exception for all CLIPKit demo errors."""

    kind = "clipkit_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        """Serialize into the ErrorResponse wire shape."""
        return {"error": self.kind, "message": self.message, "details": self.details}


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


class RankingError(ClipDemoError):
    """Validation failure detected before any similarity is computed."""

    kind = "ranking_error"


class EmptyInputError(RankingError):
    """Raised when the candidate collection is empty."""

    kind = "empty_input"

    def __init__(self, message: str = "Candidate collection is empty", details=None):
        super().__init__(message, details)


class DimensionMismatchError(RankingError):
    """
    Raised when a vector's length differs from the subject's dimension.

    Attributes:
        expected: Dimension of the subject vector, or None when the subject
                  itself is not a non-empty 1-D vector.
        actual:   Length of the offending vector.
        index:    Candidate index, or None when the subject itself is malformed.
    """

    kind = "dimension_mismatch"

    def __init__(self, expected: Optional[int], actual: int, index: Optional[int] = None):
        if expected is None:
            message = f"Subject must be a non-empty 1-D vector, got {actual} values"
        else:
            where = "subject" if index is None else f"candidate {index}"
            message = f"Dimension mismatch for {where}: expected {expected}, got {actual}"
        super().__init__(message, {"expected": expected, "actual": actual, "index": index})
        self.expected = expected
        self.actual = actual
        self.index = index


class DegenerateVectorError(RankingError):
    """
    Raised for a zero-norm vector under cosine similarity, or any vector
    holding NaN/inf values.
    """

    kind = "degenerate_vector"

    def __init__(self, reason: str, index: Optional[int] = None):
        where = "subject" if index is None else f"candidate {index}"
        super().__init__(
            f"Degenerate {where} vector: {reason}",
            {"index": index, "reason": reason},
        )
        self.index = index
        self.reason = reason


# ---------------------------------------------------------------------------
# Encoders, loader, session
# ---------------------------------------------------------------------------


class EncoderError(ClipDemoError):
    """Base class for encoder-side failures."""

    kind = "encoder_error"


class EncoderNotLoadedError(EncoderError):
    """Raised when encoding is requested before the encoder was loaded."""

    kind = "encoder_not_loaded"

    def __init__(self, encoder_kind: str):
        super().__init__(
            f"{encoder_kind.capitalize()} encoder model not loaded",
            {"encoder": encoder_kind},
        )
        self.encoder_kind = encoder_kind


class EncodingError(EncoderError):
    """Raised when an encoder rejects its input or fails during inference."""

    kind = "encoding_failed"


class ModelLoadError(ClipDemoError):
    """Raised when an encoder bundle could not be loaded."""

    kind = "model_load_failed"


class SessionStateError(ClipDemoError):
    """Raised when the session is not in a state that allows the operation."""

    kind = "session_state"


_ERROR_CLASSES = {
    cls.kind: cls
    for cls in (
        ClipDemoError,
        RankingError,
        EmptyInputError,
        DimensionMismatchError,
        DegenerateVectorError,
        EncoderError,
        EncoderNotLoadedError,
        EncodingError,
        ModelLoadError,
        SessionStateError,
    )
}


def error_from_payload(payload: Dict[str, Any]) -> ClipDemoError:
    """
    Rebuild a typed error from an ErrorResponse body.

    Subclasses with custom constructors are instantiated through the base
    constructor so the server's message and details survive unchanged.
    Unknown kinds fall back to ClipDemoError.
    """
    kind = payload.get("error", ClipDemoError.kind)
    message = payload.get("message", "")
    details = payload.get("details") or {}

    cls = _ERROR_CLASSES.get(kind, ClipDemoError)
    error = cls.__new__(cls)
    ClipDemoError.__init__(error, message, details)
    for key, value in details.items():
        if key in ("expected", "actual", "index", "reason"):
            setattr(error, key, value)
    if "encoder" in details:
        error.encoder_kind = details["encoder"]
    return error
