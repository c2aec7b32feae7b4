# =============================================================================
# CLIPKit Demo - FastAPI Server Application
# =============================================================================
# Defines the HTTP API endpoints for loading the CLIP encoder bundles,
# encoding images and text into the demo session, ranking the session's text
# embeddings against an image embedding, and ranking raw vectors.
# =============================================================================

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from config import get_config
from server.loader import ModelLoader
from server.session import DemoSession
from shared.embeddings import LabeledEmbedding
from shared.errors import (
    ClipDemoError,
    EncoderError,
    EncoderNotLoadedError,
    ModelLoadError,
    RankingError,
    SessionStateError,
)
from shared.imaging import decode_image_base64
from shared.ranking import rank, score_to_distance
from shared.schemas import (
    DistanceRequest,
    DistanceResponse,
    EmbeddingListResponse,
    EmbeddingResponse,
    ErrorResponse,
    ImageEncodeRequest,
    LoadRequest,
    LoadResponse,
    RankedCandidateResponse,
    RankedText,
    RankRequest,
    RankResponse,
    TextEncodeRequest,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Global references populated during lifespan startup
# ---------------------------------------------------------------------------
_session: DemoSession = None
_loader: ModelLoader = None
_start_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler: initializes and tears down resources.

    On startup:
        - Creates an empty demo session.
        - Starts the encoder loader pool.  Encoders are loaded on request.

    On shutdown:
        - Waits for pending loads and stops the loader pool.
    """
    global _session, _loader, _start_time

    config = get_config()
    _start_time = time.time()

    _session = DemoSession(image_size=config.image_dimensions, metric=config.metric)
    _loader = ModelLoader(device=config.device, dtype=config.torch_dtype)

    logger.info("Server ready, accepting requests (device=%s).", config.device)
    yield

    logger.info("Shutting down server...")
    if _loader is not None:
        _loader.close()


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------
app = FastAPI(
    title="CLIPKit Demo Server",
    description=(
        "Loads CLIP image and text encoders, embeds uploaded images and text, "
        "and ranks text embeddings against an image embedding by cosine similarity."
    ),
    version="0.1.0",
    lifespan=lifespan,
)


def _status_for(error: ClipDemoError) -> int:
    if isinstance(error, RankingError):
        return 422
    if isinstance(error, (EncoderNotLoadedError, SessionStateError)):
        return 409
    if isinstance(error, EncoderError):
        return 400
    if isinstance(error, ModelLoadError):
        return 500
    return 400


@app.exception_handler(ClipDemoError)
async def clipkit_error_handler(request: Request, exc: ClipDemoError):
    """Render typed failures as ErrorResponse bodies."""
    status_code = _status_for(exc)
    logger.warning("%s %s → %d %s: %s", request.method, request.url.path, status_code, exc.kind, exc.message)
    return JSONResponse(status_code=status_code, content=ErrorResponse(**exc.to_payload()).model_dump())


def _require_session() -> DemoSession:
    if _session is None:
        raise HTTPException(status_code=503, detail="Server not initialized yet")
    return _session


def _to_response(kind: str, index: int, embed: LabeledEmbedding, include_vector: bool = False) -> EmbeddingResponse:
    return EmbeddingResponse(
        kind=kind,
        index=index,
        label=embed.label,
        dimension=embed.dimension,
        embedding=embed.scalars if include_vector else None,
    )


@app.get("/health")
def health_check():
    """
    Health check endpoint.

    Returns server status, which encoders are loaded, and uptime.
    """
    session = _session
    uptime = time.time() - _start_time if _start_time > 0 else 0.0
    return {
        "status": "ok" if session is not None else "starting",
        "image_encoder_loaded": bool(session and session.image_encoder_loaded),
        "text_encoder_loaded": bool(session and session.text_encoder_loaded),
        "image_embeddings": len(session.image_embeds) if session else 0,
        "text_embeddings": len(session.text_embeds) if session else 0,
        "uptime_seconds": round(uptime, 2),
    }


@app.post("/api/v1/encoders/{kind}/load", response_model=LoadResponse)
def load_encoder(kind: str, request: LoadRequest = None):
    """
    Load an encoder bundle and attach it to the session.

    Blocks until the background load finishes or the configured timeout expires.
    """
    session = _require_session()
    if _loader is None:
        raise HTTPException(status_code=503, detail="Server not initialized yet")
    if kind not in _loader.kinds:
        raise HTTPException(status_code=404, detail=f"Unknown encoder kind '{kind}'")

    config = get_config()
    path = (request.path if request else None) or config.encoder_path(kind)

    result = _loader.load(kind, path, timeout=config.load_timeout_seconds)
    session.attach(result)

    return LoadResponse(
        kind=kind,
        path=path,
        loaded=result.loaded,
        dimension=getattr(result.encoder, "dimension", None),
        load_time_ms=round(result.load_time_ms, 2),
    )


@app.post("/api/v1/embeddings/image", response_model=EmbeddingResponse)
def encode_image(payload: ImageEncodeRequest, include_vector: bool = Query(default=False)):
    """Decode an uploaded image, encode it, and store the embedding."""
    session = _require_session()
    if not session.image_encoder_loaded:
        raise EncoderNotLoadedError("image")

    try:
        image = decode_image_base64(payload.image_data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    size = None
    if payload.width or payload.height:
        width = payload.width or session.image_size[0]
        height = payload.height or session.image_size[1]
        size = (width, height)

    index, embed = session.encode_image(image, label=payload.label, size=size)
    return _to_response("image", index, embed, include_vector)


@app.post("/api/v1/embeddings/text", response_model=EmbeddingResponse)
def encode_text(payload: TextEncodeRequest, include_vector: bool = Query(default=False)):
    """Encode a string and store the embedding."""
    session = _require_session()
    index, embed = session.encode_text(payload.text)
    return _to_response("text", index, embed, include_vector)


@app.get("/api/v1/embeddings", response_model=EmbeddingListResponse)
def list_embeddings(include_vectors: bool = Query(default=False)):
    """List every embedding collected by the session."""
    session = _require_session()
    return EmbeddingListResponse(
        images=[
            _to_response("image", i, embed, include_vectors)
            for i, embed in enumerate(session.image_embeds)
        ],
        texts=[
            _to_response("text", i, embed, include_vectors)
            for i, embed in enumerate(session.text_embeds)
        ],
        can_calculate=session.can_calculate,
    )


@app.delete("/api/v1/embeddings")
def reset_embeddings():
    """Discard all collected embeddings.  Loaded encoders stay attached."""
    session = _require_session()
    session.reset()
    return {"status": "ok"}


@app.post("/api/v1/distances", response_model=DistanceResponse)
def calculate_distances(request: DistanceRequest = None):
    """Rank the session's text embeddings against one image embedding."""
    session = _require_session()
    request = request or DistanceRequest()
    metric = request.metric or session.metric

    subject, ranked = session.calculate_distances(request.image_index, metric)

    return DistanceResponse(
        image_index=request.image_index,
        image_label=subject.label,
        metric=metric,
        results=[
            RankedText(
                rank=position + 1,
                index=entry.index,
                text=text_embed.text,
                score=entry.score,
                distance=score_to_distance(entry.score, metric),
            )
            for position, (text_embed, entry) in enumerate(ranked)
        ],
    )


@app.post("/api/v1/rank", response_model=RankResponse)
def rank_vectors(request: RankRequest):
    """Rank raw candidate vectors against a subject vector."""
    ranked = rank(request.subject, request.candidates, request.metric)
    return RankResponse(
        metric=request.metric,
        results=[RankedCandidateResponse(index=entry.index, score=entry.score) for entry in ranked],
    )
