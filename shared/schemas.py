# =============================================================================
# CLIPKit Demo - Shared API Schemas
# =============================================================================
# Pydantic models defining the data contracts between the demo client and
# the server.  These schemas are used for request/response validation and
# serialization across the HTTP API boundary.
#
# Images are sent as base64-encoded image file bytes; embeddings come back
# as plain float lists only when explicitly requested.
# =============================================================================

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from shared.ranking import Metric


class LoadRequest(BaseModel):
    """
    Request to load an encoder bundle.

    Attributes:
        path: Bundle directory on the server.  Defaults to the configured path.
    """

    path: Optional[str] = Field(default=None, description="Encoder bundle directory")


class LoadResponse(BaseModel):
    """
    Outcome of loading an encoder bundle.

    Attributes:
        kind:         "image" or "text".
        path:         Bundle directory that was loaded.
        loaded:       True when the encoder is attached to the session.
        dimension:    Embedding dimension of the loaded encoder.
        load_time_ms: Wall time spent loading.
    """

    kind: str
    path: str
    loaded: bool
    dimension: Optional[int] = None
    load_time_ms: float


class ImageEncodeRequest(BaseModel):
    """
    Image to encode.

    Attributes:
        image_data: Base64-encoded image file bytes (PNG, JPEG, ...).
        label:      Display label; defaults to "image-<n>".
        width:      Target width fed to the encoder (defaults to config).
        height:     Target height fed to the encoder (defaults to config).
    """

    image_data: str = Field(..., description="Base64-encoded image file bytes")
    label: Optional[str] = None
    width: Optional[int] = Field(default=None, ge=1)
    height: Optional[int] = Field(default=None, ge=1)


class TextEncodeRequest(BaseModel):
    """Text to encode.  Emptiness is checked by the session, not here."""

    text: str


class EmbeddingResponse(BaseModel):
    """
    A stored embedding.

    Attributes:
        kind:      "image" or "text".
        index:     Position in the session's list for that kind.
        label:     Image label or the encoded text.
        dimension: Vector length.
        embedding: The vector itself, when requested.
    """

    kind: str
    index: int
    label: str
    dimension: int
    embedding: Optional[List[float]] = None


class EmbeddingListResponse(BaseModel):
    """All embeddings collected by the session."""

    images: List[EmbeddingResponse]
    texts: List[EmbeddingResponse]
    can_calculate: bool


class DistanceRequest(BaseModel):
    """
    Request to rank the session's text embeddings against one image.

    Attributes:
        image_index: Which image embedding to use as the subject (first by default).
        metric:      Similarity metric; defaults to the configured metric.
    """

    image_index: int = Field(default=0, ge=0)
    metric: Optional[Metric] = None


class RankedText(BaseModel):
    """One row of the distance table."""

    rank: int
    index: int
    text: str
    score: float
    distance: float


class DistanceResponse(BaseModel):
    """Text embeddings ranked against an image embedding, best match first."""

    image_index: int
    image_label: str
    metric: Metric
    results: List[RankedText]


class RankRequest(BaseModel):
    """Raw vectors for the stateless ranker."""

    subject: List[float]
    candidates: List[List[float]]
    metric: Metric = Metric.COSINE


class RankedCandidateResponse(BaseModel):
    index: int
    score: float


class RankResponse(BaseModel):
    metric: Metric
    results: List[RankedCandidateResponse]


class ErrorResponse(BaseModel):
    """
    Discriminated failure body.

    Attributes:
        error:   Stable error kind (e.g. "dimension_mismatch").
        message: Human-readable description.
        details: Kind-specific fields (indices, dimensions, encoder name).
    """

    error: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
