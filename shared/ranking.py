# =============================================================================
# CLIPKit Demo - Similarity Ranker
# =============================================================================
# Ranks candidate embeddings against a single subject embedding.  Cosine
# similarity is the default metric since CLIP image and text towers are
# trained contrastively on it; negative Euclidean distance is available as
# an alternative.  Scores are computed in float64 and reported as float32.
#
# Every validation failure is raised before any score is computed, so a
# failed call never produces partial output.
# =============================================================================

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Union

import numpy as np

from shared.errors import DegenerateVectorError, DimensionMismatchError, EmptyInputError

logger = logging.getLogger(__name__)


class Metric(str, Enum):
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"


@dataclass(frozen=True)
class RankedCandidate:
    """
    One entry of a ranking.

    Attributes:
        index: Position of the candidate in the caller's input sequence.
        score: Similarity score, higher is closer.  Cosine scores lie in
               [-1, 1]; Euclidean scores are the negated distance.
    """

    index: int
    score: float


def score_to_distance(score: float, metric: Union[Metric, str] = Metric.COSINE) -> float:
    """
    Express a ranking score as a distance (lower is closer).

    Cosine scores become cosine distance ``1 - score``; Euclidean scores are
    already negated distances.
    """
    if Metric(metric) is Metric.COSINE:
        return 1.0 - score
    return -score


def _as_subject(subject) -> np.ndarray:
    vector = np.asarray(subject, dtype=np.float64)
    if vector.ndim != 1 or vector.shape[0] == 0:
        raise DimensionMismatchError(expected=None, actual=int(vector.size))
    if not np.all(np.isfinite(vector)):
        raise DegenerateVectorError("contains non-finite values")
    return vector


def _as_matrix(candidates, dimension: int) -> np.ndarray:
    if len(candidates) == 0:
        raise EmptyInputError()

    rows = []
    for index, candidate in enumerate(candidates):
        row = np.asarray(candidate, dtype=np.float64)
        if row.ndim != 1 or row.shape[0] != dimension:
            raise DimensionMismatchError(expected=dimension, actual=int(row.size), index=index)
        if not np.all(np.isfinite(row)):
            raise DegenerateVectorError("contains non-finite values", index=index)
        rows.append(row)
    return np.stack(rows)


def _cosine_scores(subject: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    # Cosine is scale-invariant; dividing by the max-abs entry keeps the
    # norms and dot products finite for very large inputs.
    subject_scale = np.max(np.abs(subject))
    if subject_scale == 0.0:
        raise DegenerateVectorError("zero norm")

    row_scales = np.max(np.abs(matrix), axis=1)
    zero = np.flatnonzero(row_scales == 0.0)
    if zero.size:
        raise DegenerateVectorError("zero norm", index=int(zero[0]))

    subject = subject / subject_scale
    matrix = matrix / row_scales[:, np.newaxis]

    norms = np.linalg.norm(matrix, axis=1)
    scores = (matrix @ subject) / (norms * np.linalg.norm(subject))

    bad = np.flatnonzero(~np.isfinite(scores))
    if bad.size:
        raise DegenerateVectorError("similarity is not finite", index=int(bad[0]))
    return np.clip(scores, -1.0, 1.0)


def _euclidean_scores(subject: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    scores = -np.linalg.norm(matrix - subject, axis=1)
    bad = np.flatnonzero(np.abs(scores) > np.finfo(np.float32).max)
    if bad.size:
        raise DegenerateVectorError("distance exceeds single-precision range", index=int(bad[0]))
    return scores


def rank(
    subject: Sequence[float],
    candidates: Sequence[Sequence[float]],
    metric: Union[Metric, str] = Metric.COSINE,
) -> List[RankedCandidate]:
    """
    Rank candidates by closeness to the subject vector.

    Args:
        subject:    Query vector of dimension D.
        candidates: Non-empty sequence of vectors, each of dimension D.
        metric:     "cosine" (default) or "euclidean".

    Returns:
        One RankedCandidate per input candidate, best match first.  Equal
        scores keep their input order.

    Raises:
        EmptyInputError:        No candidates were given.
        DimensionMismatchError: A candidate's length differs from the subject's.
        DegenerateVectorError:  A zero-norm vector under cosine, or NaN/inf values.
    """
    metric = Metric(metric)
    query = _as_subject(subject)
    matrix = _as_matrix(candidates, query.shape[0])

    if metric is Metric.COSINE:
        scores64 = _cosine_scores(query, matrix)
    else:
        scores64 = _euclidean_scores(query, matrix)

    scores = scores64.astype(np.float32)
    order = np.argsort(-scores, kind="stable")

    logger.debug(
        "Ranked %d candidates (dim=%d, metric=%s), best index=%d score=%.4f",
        len(order), query.shape[0], metric.value, order[0], scores[order[0]],
    )
    return [RankedCandidate(index=int(i), score=float(scores[i])) for i in order]


def nearest(
    subject: Sequence[float],
    candidates: Sequence[Sequence[float]],
    metric: Union[Metric, str] = Metric.COSINE,
) -> RankedCandidate:
    """Return the single closest candidate."""
    return rank(subject, candidates, metric)[0]
