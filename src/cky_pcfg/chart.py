from __future__ import annotations

import numpy as np

from .semiring import Semiring
from .util import LOG_ZERO, LogProb


class ChartLayer:
    """Scores for (begin, end, label) plus where each label has been entered.

    The four bookkeeping tables bound the ends (resp. begins) at which a
    label has a finite score for a fixed begin (resp. end). They only ever
    widen, so the split range they give is a superset of the true one.
    """

    def __init__(self, length: int, num_labels: int):
        self.length = length
        n = length
        self.scores = np.full((n + 1, n + 1, num_labels), LOG_ZERO)
        self.narrow_right = np.full((n + 1, num_labels), n + 1, dtype=np.int64)
        self.wide_right = np.full((n + 1, num_labels), -1, dtype=np.int64)
        self.narrow_left = np.full((n + 1, num_labels), -1, dtype=np.int64)
        self.wide_left = np.full((n + 1, num_labels), n + 1, dtype=np.int64)

    def label_score(self, begin: int, end: int, label: int) -> LogProb:
        return float(self.scores[begin, end, label])

    def entered_labels(self, begin: int, end: int) -> np.ndarray:
        return np.flatnonzero(np.isfinite(self.scores[begin, end]))

    def set_span(self, begin: int, end: int, scores: np.ndarray) -> None:
        self.scores[begin, end] = scores
        entered = np.isfinite(scores)
        self.narrow_right[begin, entered] = np.minimum(self.narrow_right[begin, entered], end)
        self.wide_right[begin, entered] = np.maximum(self.wide_right[begin, entered], end)
        self.narrow_left[end, entered] = np.maximum(self.narrow_left[end, entered], begin)
        self.wide_left[end, entered] = np.minimum(self.wide_left[end, entered], begin)

    def feasible_split_range(self, begin: int, end: int, left: int, right: int) -> range:
        """Splits s in (begin, end) where [begin,s) may hold `left` and [s,end) `right`."""
        lo = max(int(self.narrow_right[begin, left]), int(self.wide_left[end, right]), begin + 1)
        hi = min(int(self.wide_right[begin, left]), int(self.narrow_left[end, right]), end - 1)
        return range(lo, hi + 1)


class ParseChart:
    """Per-sentence chart with a bottom (pre-unary) and top (post-unary) layer."""

    def __init__(self, length: int, num_labels: int, semiring: Semiring):
        self.length = length
        self.num_labels = num_labels
        self.semiring = semiring
        self.bot = ChartLayer(length, num_labels)
        self.top = ChartLayer(length, num_labels)

    def label_score(self, begin: int, end: int, label: int) -> LogProb:
        return self.top.label_score(begin, end, label)

    def __repr__(self) -> str:
        return f"ParseChart(length={self.length}, labels={self.num_labels}, {self.semiring!r})"
