# =============================================================================
# CLIPKit Demo - Demo Session
# =============================================================================
# Holds everything one demo run accumulates: the attached image and text
# encoders and the ordered lists of image and text embeddings.  Distances are
# computed by ranking every text embedding against one image embedding.
# =============================================================================

import logging
import threading
from typing import List, Optional, Tuple, Union

from PIL import Image

from server.loader import LoadResult
from shared.embeddings import ImageEmbed, TextEmbed, as_embedding_vector, stack_vectors
from shared.errors import EncoderNotLoadedError, EncodingError, SessionStateError
from shared.ranking import Metric, RankedCandidate, rank

logger = logging.getLogger(__name__)


class DemoSession:
    """
    In-memory state of one demo run.

    Args:
        image_size: (width, height) images are resized to before encoding.
        metric:     Default similarity metric for distance calculation.
    """

    def __init__(
        self,
        image_size: Tuple[int, int] = (224, 224),
        metric: Union[Metric, str] = Metric.COSINE,
    ):
        self.image_size = tuple(image_size)
        self.metric = Metric(metric)
        self._image_encoder = None
        self._text_encoder = None
        self._image_embeds: List[ImageEmbed] = []
        self._text_embeds: List[TextEmbed] = []
        self._lock = threading.Lock()

    # -----------------------------------------------------------------
    # Encoders
    # -----------------------------------------------------------------

    def attach(self, result: LoadResult) -> None:
        """
        Attach a loaded encoder to the session.

        Raises:
            ModelLoadError: If the load failed.
        """
        encoder = result.unwrap()
        with self._lock:
            if result.kind == "image":
                self._image_encoder = encoder
            elif result.kind == "text":
                self._text_encoder = encoder
            else:
                raise ValueError(f"Unknown encoder kind '{result.kind}'")
        logger.info("Attached %s encoder (%s)", result.kind, result.path)

    @property
    def image_encoder_loaded(self) -> bool:
        return self._image_encoder is not None

    @property
    def text_encoder_loaded(self) -> bool:
        return self._text_encoder is not None

    # -----------------------------------------------------------------
    # Encoding
    # -----------------------------------------------------------------

    def encode_image(
        self,
        image: Image.Image,
        label: Optional[str] = None,
        size: Optional[Tuple[int, int]] = None,
    ) -> Tuple[int, ImageEmbed]:
        """
        Encode an image and append it to the session's image embeddings.

        Returns:
            The position the embedding was stored at, and the embedding.
        """
        encoder = self._image_encoder
        if encoder is None:
            raise EncoderNotLoadedError("image")

        vector = as_embedding_vector(encoder.encode(image, tuple(size or self.image_size)))
        with self._lock:
            index = len(self._image_embeds)
            embed = ImageEmbed(vector=vector, label=label or f"image-{index}", image=image)
            self._image_embeds.append(embed)
        logger.info("Encoded image '%s' at %d (dim=%d)", embed.label, index, embed.dimension)
        return index, embed

    def encode_text(self, text: str) -> Tuple[int, TextEmbed]:
        """Encode a string and append it; returns its position and the embedding."""
        encoder = self._text_encoder
        if encoder is None:
            raise EncoderNotLoadedError("text")
        if not text or not text.strip():
            raise EncodingError("Text must not be empty", {"encoder": "text"})

        vector = as_embedding_vector(encoder.encode(text))
        embed = TextEmbed(vector=vector, label=text)
        with self._lock:
            index = len(self._text_embeds)
            self._text_embeds.append(embed)
        logger.info("Encoded text '%s' at %d (dim=%d)", text, index, embed.dimension)
        return index, embed

    @property
    def image_embeds(self) -> List[ImageEmbed]:
        with self._lock:
            return list(self._image_embeds)

    @property
    def text_embeds(self) -> List[TextEmbed]:
        with self._lock:
            return list(self._text_embeds)

    # -----------------------------------------------------------------
    # Distances
    # -----------------------------------------------------------------

    @property
    def can_calculate(self) -> bool:
        """True once there is an image and more than one text to compare."""
        with self._lock:
            return bool(self._image_embeds) and len(self._text_embeds) > 1

    def calculate_distances(
        self,
        image_index: int = 0,
        metric: Optional[Union[Metric, str]] = None,
    ) -> Tuple[ImageEmbed, List[Tuple[TextEmbed, RankedCandidate]]]:
        """
        Rank every text embedding against one image embedding.

        Returns:
            The subject ImageEmbed and (TextEmbed, RankedCandidate) pairs,
            best match first.

        Raises:
            SessionStateError: Not enough embeddings, or image_index out of range.
            RankingError:      Propagated from the ranker (e.g. mixed dimensions).
        """
        with self._lock:
            images = list(self._image_embeds)
            texts = list(self._text_embeds)

        if not images or len(texts) < 2:
            raise SessionStateError(
                "Need at least one image and two text embeddings to calculate distances",
                {"images": len(images), "texts": len(texts)},
            )
        if not 0 <= image_index < len(images):
            raise SessionStateError(
                f"Image index {image_index} out of range (0..{len(images) - 1})",
                {"image_index": image_index, "images": len(images)},
            )

        subject = images[image_index]
        ranked = rank(subject.vector, stack_vectors(texts), metric or self.metric)
        logger.info(
            "Ranked %d texts against '%s': best '%s' (%.4f)",
            len(ranked), subject.label, texts[ranked[0].index].text, ranked[0].score,
        )
        return subject, [(texts[entry.index], entry) for entry in ranked]

    def reset(self) -> None:
        """Discard collected embeddings; attached encoders stay loaded."""
        with self._lock:
            self._image_embeds.clear()
            self._text_embeds.clear()
        logger.info("Session embeddings cleared.")
