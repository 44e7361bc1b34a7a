from __future__ import annotations

import math
from typing import Final

import numpy as np

LogProb = float
LOG_ZERO: Final[LogProb] = float("-inf")


def logsumexp(a: LogProb, b: LogProb) -> LogProb:
    if a < b:
        a, b = b, a
    if b == LOG_ZERO:
        return a
    return a + math.log1p(math.exp(b - a))


def veto_nan(score: float) -> LogProb:
    """A NaN bonus is a hard veto."""
    return LOG_ZERO if math.isnan(score) else score


def veto_nan_array(scores: np.ndarray) -> np.ndarray:
    return np.where(np.isnan(scores), LOG_ZERO, scores)
