"""Flow scoring: how well each candidate continues the conversation.

utility = a * mean_log_prob + b * sim - g * (length_penalty + repetition_penalty)
prob    = softmax(utility / tau) over the whole scored batch
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from ..types import FlowSignals, FlowWeights
from .similarity import JaccardSimilarity, Similarity

SOFT_CHAR_BUDGET = 400
MIN_WORDS_FOR_REPETITION = 6


@dataclass(slots=True, frozen=True)
class Penalties:
    length_penalty: float
    repetition_penalty: float


PenaltyFn = Callable[[str], Penalties]


def default_penalties(text: str) -> Penalties:
    """Linear over-length penalty plus the share of repeated word bigrams."""

    length_penalty = max(0, len(text) - SOFT_CHAR_BUDGET) / SOFT_CHAR_BUDGET
    words = text.lower().split()
    repetition = 0.0
    if len(words) >= MIN_WORDS_FOR_REPETITION:
        bigrams = Counter(zip(words, words[1:]))
        repeats = sum(count - 1 for count in bigrams.values() if count > 1)
        repetition = repeats / max(1, len(words) - 1)
    return Penalties(length_penalty=length_penalty, repetition_penalty=repetition)


def softmax(values: Sequence[float], tau: float = 1.0) -> np.ndarray:
    """Numerically stable softmax with temperature ``tau``."""

    if tau <= 0:
        raise ValueError("'tau' must be > 0.")
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return arr
    exps = np.exp((arr - arr.max()) / tau)
    total = exps.sum()
    return exps / (total if total > 0 else 1.0)


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


class FlowScorer:
    """Scores a cleaned batch of candidates against the last user utterance."""

    def __init__(
        self,
        weights: FlowWeights | None = None,
        *,
        similarity: Similarity | None = None,
        penalty_fn: PenaltyFn = default_penalties,
    ) -> None:
        self.weights = weights or FlowWeights()
        self.similarity = similarity or JaccardSimilarity()
        self._penalty_fn = penalty_fn

    async def score(
        self,
        texts: Sequence[str],
        mean_log_probs: Sequence[float],
        last_user: str,
    ) -> list[FlowSignals]:
        if len(texts) != len(mean_log_probs):
            raise ValueError("texts and mean_log_probs must have the same length.")
        if not texts:
            return []

        w = self.weights
        sims = await self.similarity.against(last_user or "", list(texts))

        rows: list[FlowSignals] = []
        for text, mean_log_prob, sim in zip(texts, mean_log_probs, sims):
            penalties = self._penalty_fn(text)
            total_penalty = penalties.length_penalty + penalties.repetition_penalty
            sim01 = _clamp01(sim)
            rows.append(
                FlowSignals(
                    sim_to_last_user=sim01,
                    length_penalty=penalties.length_penalty,
                    repetition_penalty=penalties.repetition_penalty,
                    total_penalty=total_penalty,
                    utility=w.a * mean_log_prob + w.b * sim01 - w.g * total_penalty,
                )
            )

        probs = softmax([row.utility for row in rows], w.tau)
        for row, prob in zip(rows, probs):
            row.prob = float(prob)
        return rows


__all__ = ["FlowScorer", "Penalties", "PenaltyFn", "default_penalties", "softmax"]
