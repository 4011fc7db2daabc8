"""Diversity-aware shortlist selection.

Pipeline over the scored candidates:

1. rank by utility;
2. maximal-marginal-relevance reorder (utility vs. lexical overlap);
3. near-duplicate filter;
4. coverage slice on probability mass, target adapted to the entropy of
   the distribution unless the caller fixes it;
5. soft trim toward a preferred count;
6. final sort by utility.

Probabilities are carried through untouched; they still refer to the full
scored population.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ..config import SelectionConfig
from ..types import Candidate
from .similarity import jaccard, tokenize

RETURN_FLOOR = 3
RETURN_CEILING = 6


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(slots=True, frozen=True)
class ShortlistBounds:
    min_return: int
    max_return: int
    prefer_count: int

    @classmethod
    def resolve(
        cls,
        min_return: int | None,
        max_return: int | None,
        prefer_count: int | None,
        defaults: SelectionConfig | None = None,
    ) -> "ShortlistBounds":
        defaults = defaults or SelectionConfig()
        if min_return is None:
            min_return = defaults.min_return
        if max_return is None:
            max_return = defaults.max_return
        if prefer_count is None:
            prefer_count = defaults.prefer_count
        lo = int(_clamp(round(min_return), RETURN_FLOOR, RETURN_CEILING))
        hi = int(_clamp(round(max_return), lo, RETURN_CEILING))
        prefer = int(_clamp(round(prefer_count), lo, hi))
        return cls(min_return=lo, max_return=hi, prefer_count=prefer)


def normalized_entropy(probs: Sequence[float]) -> float:
    """Shannon entropy of ``probs`` (renormalised) divided by log(n)."""

    if len(probs) <= 1:
        return 0.0
    p = np.maximum(np.asarray(probs, dtype=np.float64), 1e-12)
    p = p / p.sum()
    entropy = float(-(p * np.log(p)).sum())
    return entropy / math.log(len(p))


def adaptive_coverage(probs: Sequence[float]) -> float:
    """Flatter distributions get a higher coverage target."""

    return _clamp(0.84 + 0.08 * normalized_entropy(probs), 0.82, 0.94)


def resolve_coverage(probs: Sequence[float], coverage_target: float | None) -> float:
    if coverage_target is not None:
        return _clamp(float(coverage_target), 0.6, 0.98)
    return adaptive_coverage(probs)


def rank_by_utility(items: Sequence[Candidate]) -> list[Candidate]:
    return sorted(items, key=lambda c: c.flow.utility, reverse=True)


def mmr_reorder(items: Sequence[Candidate], lam: float = 0.15) -> list[Candidate]:
    """Greedy MMR: seed with the best utility, then trade utility for novelty."""

    if len(items) <= 2:
        return list(items)
    remaining = rank_by_utility(items)
    selected = [remaining.pop(0)]
    while remaining:
        best_idx = 0
        best_score = -math.inf
        for idx, candidate in enumerate(remaining):
            max_sim = max(jaccard(candidate.text, chosen.text) for chosen in selected)
            score = candidate.flow.utility - lam * max_sim
            if score > best_score:
                best_score = score
                best_idx = idx
        selected.append(remaining.pop(best_idx))
    return selected


def filter_near_duplicates(
    items: Sequence[Candidate],
    *,
    short_threshold: float = 0.97,
    long_threshold: float = 0.88,
    short_text_chars: int = 45,
    distinct_start_words: int = 2,
) -> list[Candidate]:
    """Keep items with a new opening and no near-copy among those already kept."""

    kept: list[Candidate] = []
    seen_starts: set[str] = set()
    for item in items:
        start_key = " ".join(tokenize(item.text)[:distinct_start_words])
        if start_key and start_key in seen_starts:
            continue
        duplicate = False
        for other in kept:
            short = len(item.text) < short_text_chars or len(other.text) < short_text_chars
            threshold = short_threshold if short else long_threshold
            if jaccard(item.text, other.text) >= threshold:
                duplicate = True
                break
        if not duplicate:
            kept.append(item)
            if start_key:
                seen_starts.add(start_key)
    return kept


def slice_by_coverage(
    items: Sequence[Candidate],
    min_count: int,
    max_count: int,
    coverage: float,
    *,
    min_fourth_prob: float = 0.04,
) -> list[Candidate]:
    if not items:
        return []
    by_prob = sorted(items, key=lambda c: c.flow.prob, reverse=True)
    out: list[Candidate] = []
    cumulative = 0.0
    for candidate in by_prob:
        if len(out) >= max_count:
            break
        out.append(candidate)
        cumulative += candidate.flow.prob
        if len(out) >= min_count and cumulative >= coverage:
            break
    if (
        len(out) == 3
        and len(by_prob) > 3
        and by_prob[3].flow.prob >= min_fourth_prob
        and len(out) < max_count
    ):
        out.append(by_prob[3])
    floor = min(min_count, len(by_prob))
    if len(out) < floor:
        return by_prob[:floor]
    return out


def trim_to_preferred_count(
    items: Sequence[Candidate],
    prefer_count: int,
    min_count: int,
    coverage: float,
    *,
    tolerance: float = 0.01,
) -> list[Candidate]:
    out = list(items)
    while len(out) > prefer_count:
        tail = out[-1]
        mass = sum(c.flow.prob for c in out)
        if len(out) - 1 >= min_count and mass - tail.flow.prob >= max(coverage - tolerance, 0.0):
            out.pop()
        else:
            break
    return out


class DiversitySelector:
    """Turns a scored candidate set into a short, varied shortlist."""

    def __init__(self, config: SelectionConfig | None = None) -> None:
        self.config = config or SelectionConfig()

    def select(
        self,
        scored: Sequence[Candidate],
        bounds: ShortlistBounds,
        coverage_target: float | None = None,
    ) -> list[Candidate]:
        if not scored:
            return []
        cfg = self.config
        ranked = rank_by_utility(scored)
        reordered = mmr_reorder(ranked, cfg.mmr_lambda)
        deduped = filter_near_duplicates(
            reordered,
            short_threshold=cfg.short_dup_threshold,
            long_threshold=cfg.long_dup_threshold,
            short_text_chars=cfg.short_text_chars,
            distinct_start_words=cfg.distinct_start_words,
        )
        base = deduped if len(deduped) >= min(bounds.min_return, len(reordered)) else reordered

        coverage = resolve_coverage([c.flow.prob for c in base], coverage_target)
        sliced = slice_by_coverage(
            base,
            bounds.min_return,
            bounds.max_return,
            coverage,
            min_fourth_prob=cfg.min_fourth_prob,
        )
        trimmed = trim_to_preferred_count(
            sliced,
            bounds.prefer_count,
            bounds.min_return,
            coverage,
            tolerance=cfg.trim_tolerance,
        )
        return rank_by_utility(trimmed)


__all__ = [
    "DiversitySelector",
    "ShortlistBounds",
    "adaptive_coverage",
    "filter_near_duplicates",
    "mmr_reorder",
    "normalized_entropy",
    "rank_by_utility",
    "resolve_coverage",
    "slice_by_coverage",
    "trim_to_preferred_count",
]
