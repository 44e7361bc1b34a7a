from __future__ import annotations

import numpy as np

from .util import LOG_ZERO, LogProb


class Semiring:
    """Log-space semiring over chart scores; `times` is always `+`."""

    name = "semiring"
    viterbi = False

    def plus(self, a, b):
        raise NotImplementedError

    def sum(self, scores: np.ndarray) -> LogProb:
        raise NotImplementedError

    def matmul(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        # out[i, j] = plus_k x[i, k] + y[k, j], one row at a time over finite x[i, k]
        out = np.full((x.shape[0], y.shape[1]), LOG_ZERO)
        for i, row in enumerate(x):
            finite = np.isfinite(row)
            if finite.any():
                out[i] = self._reduce(row[finite, None] + y[finite], axis=0)
        return out

    def _reduce(self, scores: np.ndarray, axis: int) -> np.ndarray:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.name}>"


class LogProbSemiring(Semiring):
    name = "logprob"

    def plus(self, a, b):
        return np.logaddexp(a, b)

    def sum(self, scores: np.ndarray) -> LogProb:
        if scores.size == 0:
            return LOG_ZERO
        return float(np.logaddexp.reduce(scores))

    def _reduce(self, scores: np.ndarray, axis: int) -> np.ndarray:
        return np.logaddexp.reduce(scores, axis=axis)


class ViterbiSemiring(Semiring):
    name = "viterbi"
    viterbi = True

    def plus(self, a, b):
        return np.maximum(a, b)

    def sum(self, scores: np.ndarray) -> LogProb:
        if scores.size == 0:
            return LOG_ZERO
        return float(np.max(scores))

    def _reduce(self, scores: np.ndarray, axis: int) -> np.ndarray:
        return np.max(scores, axis=axis)


LOG_PROB = LogProbSemiring()
VITERBI = ViterbiSemiring()
