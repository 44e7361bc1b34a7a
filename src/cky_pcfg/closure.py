from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

from .semiring import LOG_PROB, Semiring
from .util import LOG_ZERO

UnaryEdge = tuple[int, int, float]


class UnaryClosureError(ValueError):
    """Raised when the unary rules of a grammar contain a cycle.

    `cycle_labels` are the label ids on some cycle and `rules` the
    (parent, child, score) unary rules that close those cycles.
    """

    def __init__(
        self,
        cycle_labels: Sequence[int],
        label_names: Sequence[str] | None = None,
        rules: Iterable[UnaryEdge] = (),
    ):
        self.cycle_labels = tuple(cycle_labels)
        self.rules = tuple(rules)

        def name(i: int) -> str:
            return label_names[i] if label_names is not None else str(i)

        msg = "Unary rules form a cycle through labels: " + ", ".join(
            name(i) for i in self.cycle_labels
        )
        if self.rules:
            msg += " (" + "; ".join(f"{name(a)} -> {name(b)} {s:.6f}" for a, b, s in self.rules)
            msg += ")"
        super().__init__(msg)


def unary_closure(
    unary: Iterable[UnaryEdge],
    semiring: Semiring = LOG_PROB,
    *,
    label_names: Sequence[str] | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Return `(labels, C)`, the log-space closure C = I + U + U^2 + ... of the unary rules.

    - `unary` yields (parent, child, score) with scores in log space.
    - `labels` holds the sorted ids of every label in some unary rule, and
      C[i, j] is the plus over every unary path from `labels[i]` down to
      `labels[j]` (sum of path probabilities for LOG_PROB, best path for
      VITERBI). The diagonal holds the empty path with score 0. Labels
      outside `labels` only have the empty path.
    - With m labels, U^k can only be non-zero for k >= m if some path
      repeats a label, so the series is exact after at most m - 1 terms.
      Any remaining mass at that point raises UnaryClosureError.
    """
    edges = list(unary)
    labels = np.array(sorted({a for a, _, _ in edges} | {b for _, b, _ in edges}), dtype=int)
    pos = {int(label): i for i, label in enumerate(labels)}
    m = len(labels)

    U = np.full((m, m), LOG_ZERO)
    for parent, child, score in edges:
        i, j = pos[parent], pos[child]
        U[i, j] = semiring.plus(U[i, j], score)

    C = np.full((m, m), LOG_ZERO)
    np.fill_diagonal(C, 0.0)
    T = U.copy()  # current power term
    on_cycle = np.zeros(m, dtype=bool)

    k = 1
    while np.isfinite(T).any():
        on_cycle |= np.isfinite(np.diagonal(T))
        if k >= m:
            # C now holds every simple path, so a rule a -> b closes a cycle iff b reaches a
            rules = [(a, b, s) for a, b, s in edges if np.isfinite(C[pos[b], pos[a]])]
            raise UnaryClosureError(labels[on_cycle].tolist(), label_names, rules)
        C = semiring.plus(C, T)
        T = semiring.matmul(T, U)
        k += 1
    return labels, C
