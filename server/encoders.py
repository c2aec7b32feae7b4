# =============================================================================
# CLIPKit Demo - CLIP Image & Text Encoders
# =============================================================================
# Provides the ImageEncoder and TextEncoder classes that load the CLIP towers
# (with their projection heads) from exported bundle directories and turn
# PIL images and strings into embedding vectors in the shared CLIP space.
# =============================================================================

import logging
from typing import Tuple

import numpy as np
import torch
from PIL import Image
from transformers import (
    CLIPImageProcessor,
    CLIPTextModelWithProjection,
    CLIPTokenizer,
    CLIPVisionModelWithProjection,
)

from shared.embeddings import EmbeddingVector, as_embedding_vector
from shared.errors import EncodingError
from shared.imaging import resize_image_to

logger = logging.getLogger(__name__)


class ImageEncoder:
    """
    CLIP vision tower + projection for image embeddings.

    Args:
        bundle_path: Directory holding the vision model and image processor
                     (see scripts/export_encoders.py).
        device: Compute device string ("mps", "cuda", or "cpu").
        dtype: Torch dtype for model weights (e.g., torch.float32).
    """

    kind = "image"

    def __init__(self, bundle_path: str, device: str = "cpu", dtype: torch.dtype = torch.float32):
        self._device = device
        self._dtype = dtype

        logger.info("Loading image processor: %s", bundle_path)
        self._processor = CLIPImageProcessor.from_pretrained(bundle_path)

        logger.info("Loading image encoder: %s (device=%s, dtype=%s)", bundle_path, device, dtype)
        self._model = CLIPVisionModelWithProjection.from_pretrained(
            bundle_path, torch_dtype=dtype
        ).to(device)
        self._model.eval()

        self.dimension = int(self._model.config.projection_dim)
        logger.info("Image encoder ready (dim=%d).", self.dimension)

    @torch.no_grad()
    def encode(self, image: Image.Image, desired_size: Tuple[int, int] = (224, 224)) -> EmbeddingVector:
        """
        Encode a decoded image into a projected CLIP embedding.

        Pipeline:
            1. Resize the bitmap to ``desired_size``
            2. Preprocess via CLIPImageProcessor → pixel_values (1, 3, 224, 224)
            3. Forward through the vision tower and projection → (1, D)
            4. Convert to a read-only float32 vector of shape (D,)

        Raises:
            EncodingError: If preprocessing or the forward pass fails.
        """
        try:
            resized = resize_image_to(image, desired_size)
            inputs = self._processor(images=resized, return_tensors="pt")
            pixel_values = inputs["pixel_values"].to(self._device, dtype=self._dtype)
            outputs = self._model(pixel_values=pixel_values)
            embedding = outputs.image_embeds.squeeze(0).cpu().to(torch.float32).numpy()
        except Exception as exc:
            raise EncodingError(f"Image encoding failed: {exc}", {"encoder": self.kind}) from exc

        logger.debug("Encoded image %s → embedding shape=%s", desired_size, embedding.shape)
        return as_embedding_vector(embedding)


class TextEncoder:
    """
    CLIP text tower + projection for text embeddings.

    Args:
        bundle_path: Directory holding the text model and tokenizer.
        device: Compute device string.
        dtype: Torch dtype for model weights.
    """

    kind = "text"

    def __init__(self, bundle_path: str, device: str = "cpu", dtype: torch.dtype = torch.float32):
        self._device = device

        logger.info("Loading tokenizer: %s", bundle_path)
        self._tokenizer = CLIPTokenizer.from_pretrained(bundle_path)

        logger.info("Loading text encoder: %s (device=%s, dtype=%s)", bundle_path, device, dtype)
        self._model = CLIPTextModelWithProjection.from_pretrained(
            bundle_path, torch_dtype=dtype
        ).to(device)
        self._model.eval()

        self.dimension = int(self._model.config.projection_dim)
        logger.info("Text encoder ready (dim=%d).", self.dimension)

    @torch.no_grad()
    def encode(self, text: str) -> EmbeddingVector:
        """
        Encode a string into a projected CLIP embedding.

        Text longer than the tokenizer's context (77 tokens) is truncated.

        Raises:
            EncodingError: If the text is empty or the forward pass fails.
        """
        if not text or not text.strip():
            raise EncodingError("Text must not be empty", {"encoder": self.kind})

        try:
            inputs = self._tokenizer(text, padding=True, truncation=True, return_tensors="pt")
            inputs = {name: tensor.to(self._device) for name, tensor in inputs.items()}
            outputs = self._model(**inputs)
            embedding = outputs.text_embeds.squeeze(0).cpu().to(torch.float32).numpy()
        except Exception as exc:
            raise EncodingError(f"Text encoding failed: {exc}", {"encoder": self.kind}) from exc

        logger.debug("Encoded text (%d chars) → embedding shape=%s", len(text), embedding.shape)
        return as_embedding_vector(embedding)


ENCODER_CLASSES = {
    ImageEncoder.kind: ImageEncoder,
    TextEncoder.kind: TextEncoder,
}
