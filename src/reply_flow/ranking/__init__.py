"""Flow scoring and diversity-aware shortlist selection."""

from .flow import FlowScorer, default_penalties, softmax
from .selection import DiversitySelector, ShortlistBounds
from .similarity import EmbeddingSimilarity, JaccardSimilarity, jaccard, select_similarity

__all__ = [
    "DiversitySelector",
    "EmbeddingSimilarity",
    "FlowScorer",
    "JaccardSimilarity",
    "ShortlistBounds",
    "default_penalties",
    "jaccard",
    "select_similarity",
    "softmax",
]
