# =============================================================================
# CLIPKit Demo - Embedding Data Model
# =============================================================================
# An embedding vector is a read-only 1-D float32 numpy array produced by one
# of the encoders.  Labeled embeddings pair the vector with the artifact it
# came from (the decoded image or the original text) for display only; the
# ranking math never looks at the artifact.
# =============================================================================

from dataclasses import dataclass, field
from typing import Any, List, Sequence

import numpy as np
from PIL import Image

EmbeddingVector = np.ndarray


def as_embedding_vector(values: Any) -> EmbeddingVector:
    """
    Build an immutable embedding vector from any float sequence or array.

    Encoder outputs of shape (1, D) are squeezed to (D,).

    Raises:
        ValueError: If the input is not one-dimensional after squeezing.
    """
    vector = np.array(values, dtype=np.float32)
    if vector.ndim == 2 and vector.shape[0] == 1:
        vector = vector[0]
    if vector.ndim != 1:
        raise ValueError(f"Embedding must be 1-D, got shape {vector.shape}")
    vector.setflags(write=False)
    return vector


@dataclass(frozen=True, eq=False)
class LabeledEmbedding:
    """
    An embedding vector paired with a display label.

    Attributes:
        vector: Read-only float32 vector.
        label:  Human-readable identity of the source artifact.
    """

    vector: EmbeddingVector
    label: str

    @property
    def scalars(self) -> List[float]:
        return self.vector.tolist()

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self.label == other.label and np.array_equal(self.vector, other.vector)

    def __hash__(self):
        return hash((type(self).__name__, self.label))


@dataclass(frozen=True, eq=False)
class ImageEmbed(LabeledEmbedding):
    """Embedding of a decoded image; ``image`` is kept for display."""

    image: Image.Image = field(default=None, repr=False)


@dataclass(frozen=True, eq=False)
class TextEmbed(LabeledEmbedding):
    """Embedding of a text string; the label is the text itself."""

    @property
    def text(self) -> str:
        return self.label


def stack_vectors(embeds: Sequence[LabeledEmbedding]) -> List[EmbeddingVector]:
    """Collect the raw vectors of labeled embeddings, keeping their order."""
    return [embed.vector for embed in embeds]
