from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import NamedTuple

import numpy as np

from .grammar import BinaryRule, Grammar, UnaryRule


class DecodedCounts(NamedTuple):
    binary: dict[str, dict[tuple[str, str], float]]
    unary: dict[str, dict[str, float]]
    words: dict[str, dict[Hashable, float]]


@dataclass
class ExpectedCounts:
    """Expected rule and emission counts for one sentence or many.

    `rule_counts` is dense over rule ids; `word_counts` maps a tag id to
    a word -> count table that grows on first touch. `log_prob` is the
    summed sentence log-probability. `+=` and `-=` combine pointwise.
    """

    rule_counts: np.ndarray
    word_counts: dict[int, dict[Hashable, float]] = field(default_factory=dict)
    log_prob: float = 0.0

    def __post_init__(self):
        self.word_counts = {
            label: ctr if isinstance(ctr, defaultdict) else defaultdict(float, ctr)
            for label, ctr in self.word_counts.items()
        }

    @classmethod
    def zeros(cls, grammar: Grammar, log_prob: float = 0.0) -> ExpectedCounts:
        return cls(grammar.mk_dense_vector(), {}, log_prob)

    @property
    def parsable(self) -> bool:
        return self.log_prob != -math.inf

    def word_counter(self, label: int) -> dict[Hashable, float]:
        ctr = self.word_counts.get(label)
        if ctr is None:
            ctr = self.word_counts[label] = defaultdict(float)
        return ctr

    def _check_compatible(self, other: ExpectedCounts) -> None:
        if self.rule_counts.shape != other.rule_counts.shape:
            raise ValueError(
                f"Cannot combine counts over {self.rule_counts.shape[0]} rules "
                f"with counts over {other.rule_counts.shape[0]} rules"
            )

    def __iadd__(self, other: ExpectedCounts) -> ExpectedCounts:
        self._check_compatible(other)
        self.rule_counts += other.rule_counts
        for label, ctr in other.word_counts.items():
            mine = self.word_counter(label)
            for w, v in ctr.items():
                mine[w] += v
        self.log_prob += other.log_prob
        return self

    def __isub__(self, other: ExpectedCounts) -> ExpectedCounts:
        self._check_compatible(other)
        self.rule_counts -= other.rule_counts
        for label, ctr in other.word_counts.items():
            mine = self.word_counter(label)
            for w, v in ctr.items():
                mine[w] -= v
        self.log_prob -= other.log_prob
        return self

    def copy(self) -> ExpectedCounts:
        words = {label: defaultdict(float, ctr) for label, ctr in self.word_counts.items()}
        return ExpectedCounts(self.rule_counts.copy(), words, self.log_prob)

    def __add__(self, other: ExpectedCounts) -> ExpectedCounts:
        out = self.copy()
        out += other
        return out

    def __sub__(self, other: ExpectedCounts) -> ExpectedCounts:
        out = self.copy()
        out -= other
        return out

    def is_finite(self) -> bool:
        if not np.isfinite(self.rule_counts).all():
            return False
        return all(math.isfinite(v) for ctr in self.word_counts.values() for v in ctr.values())

    def decode(self, grammar: Grammar) -> DecodedCounts:
        """Nonzero counts keyed by label names instead of ids."""
        binary: dict[str, dict[tuple[str, str], float]] = defaultdict(dict)
        unary: dict[str, dict[str, float]] = defaultdict(dict)
        for r in np.flatnonzero(self.rule_counts):
            count = float(self.rule_counts[r])
            match grammar.rule(int(r)):
                case BinaryRule(parent, left, right, _):
                    children = (grammar.label(left), grammar.label(right))
                    binary[grammar.label(parent)][children] = count
                case UnaryRule(parent, child, _):
                    unary[grammar.label(parent)][grammar.label(child)] = count
        words = {
            grammar.label(label): {w: v for w, v in ctr.items() if v != 0.0}
            for label, ctr in self.word_counts.items()
        }
        return DecodedCounts(dict(binary), dict(unary), words)
