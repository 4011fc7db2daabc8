"""Text similarity measures and the similarity capability used by the scorer."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

import numpy as np

logger = logging.getLogger(__name__)

_NON_WORD_RE = re.compile(r"[^\w\s]|_")

EmbedFn = Callable[[str], Awaitable[Sequence[float]]]


def tokenize(text: str, *, drop_punctuation: bool = False) -> list[str]:
    """Lowercase word tokens.

    Punctuation splits words by default ("don't" -> "don", "t"); with
    ``drop_punctuation`` it is deleted instead ("don't" -> "dont"), which is
    how the scorer compares a reply with the user's line.
    """

    replacement = "" if drop_punctuation else " "
    return _NON_WORD_RE.sub(replacement, (text or "").lower()).split()


def jaccard(a: str, b: str, *, drop_punctuation: bool = False) -> float:
    """Token-set Jaccard similarity; two empty texts are identical."""

    left = set(tokenize(a, drop_punctuation=drop_punctuation))
    right = set(tokenize(b, drop_punctuation=drop_punctuation))
    if not left and not right:
        return 1.0
    union = len(left | right)
    return len(left & right) / union if union else 0.0


def overlap_score(text: str, reference: str) -> float:
    """Jaccard as used for similarity to the last user line."""

    return jaccard(text, reference, drop_punctuation=True)


def as_vector(value: Any) -> Optional[np.ndarray]:
    """Return ``value`` as a finite, non-empty 1-D float vector, or ``None``."""

    try:
        vec = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError):
        return None
    if vec.ndim != 1 or vec.size == 0 or not np.all(np.isfinite(vec)):
        return None
    return vec


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity over the common prefix of two vectors; 0 for zero norms."""

    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    left = np.asarray(a[:n], dtype=np.float64)
    right = np.asarray(b[:n], dtype=np.float64)
    denom = float(np.linalg.norm(left) * np.linalg.norm(right))
    if denom <= 0.0:
        return 0.0
    return float(np.dot(left, right) / denom)


class Similarity(Protocol):
    """Scores a batch of texts against one reference text, each in [0, 1]."""

    name: str

    async def against(self, reference: str, texts: Sequence[str]) -> list[float]: ...


class JaccardSimilarity:
    name = "jaccard"

    async def against(self, reference: str, texts: Sequence[str]) -> list[float]:
        return [overlap_score(text, reference) for text in texts]


class EmbeddingSimilarity:
    """Cosine similarity over embeddings, rescaled from [-1, 1] to [0, 1].

    Falls back to token overlap for the whole batch when the reference cannot
    be embedded, and per candidate when only that candidate's embedding fails.
    An embedding that raises and one that is not a usable numeric vector
    (``None``, empty, wrong shape, non-finite) count as the same failure.
    """

    name = "cosine"

    def __init__(self, embed: EmbedFn) -> None:
        self._embed = embed

    async def against(self, reference: str, texts: Sequence[str]) -> list[float]:
        if not texts:
            return []
        results = await asyncio.gather(
            self._embed(reference),
            *(self._embed(text) for text in texts),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        reference_vec = _usable(results[0])
        if reference_vec is None:
            logger.warning(
                "Embedding the reference failed (%s); using token overlap for %d candidates",
                _describe(results[0]),
                len(texts),
            )
            return [overlap_score(text, reference) for text in texts]

        scores: list[float] = []
        for idx, (text, raw) in enumerate(zip(texts, results[1:])):
            vec = _usable(raw)
            if vec is None:
                logger.warning(
                    "Embedding candidate %d failed (%s); using token overlap", idx, _describe(raw)
                )
                scores.append(overlap_score(text, reference))
            else:
                scores.append((cosine(vec, reference_vec) + 1.0) / 2.0)
        return scores


def _usable(result: Any) -> Optional[np.ndarray]:
    if isinstance(result, Exception):
        return None
    return as_vector(result)


def _describe(result: Any) -> str:
    if isinstance(result, Exception):
        return repr(result)
    return f"unusable vector {type(result).__name__}"


def select_similarity(embed: EmbedFn | None = None) -> Similarity:
    """Pick the similarity capability once, at construction time."""

    if embed is None:
        return JaccardSimilarity()
    return EmbeddingSimilarity(embed)


__all__ = [
    "EmbedFn",
    "EmbeddingSimilarity",
    "JaccardSimilarity",
    "Similarity",
    "as_vector",
    "cosine",
    "jaccard",
    "overlap_score",
    "select_similarity",
    "tokenize",
]
