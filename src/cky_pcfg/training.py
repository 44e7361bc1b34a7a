from __future__ import annotations

import logging
import math
from collections.abc import Callable, Hashable, Sequence
from typing import TypeVar

import numpy as np

from .closure import UnaryClosureError
from .expected_counts import ExpectedCounts
from .inside_outside import InsideOutside
from .span_scorer import LabeledSpanScorer
from .tree import Tree

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NumericalDegeneracyError(ArithmeticError):
    pass


def gold_tree_counts(
    engine: InsideOutside, tree: Tree, words: Sequence[Hashable]
) -> ExpectedCounts:
    """Observed counts of `tree`: inside-outside restricted to its bracketing."""
    scorer = LabeledSpanScorer.from_tree(engine.grammar, tree)
    return engine.expected_counts(words, scorer)


def observed_minus_expected(observed: ExpectedCounts, expected: ExpectedCounts) -> ExpectedCounts:
    """Gradient counts of the conditional log-likelihood; entries may be negative."""
    return observed - expected


def check_finite(counts: ExpectedCounts, weights: np.ndarray | None = None) -> None:
    if not counts.is_finite():
        bad = np.flatnonzero(~np.isfinite(counts.rule_counts))
        raise NumericalDegeneracyError(
            f"Non-finite expected counts (rule ids {bad.tolist()[:10]}, or word counts)"
        )
    if weights is not None and not np.isfinite(weights).all():
        raise NumericalDegeneracyError("Non-finite weights")
    if math.isnan(counts.log_prob):
        raise NumericalDegeneracyError("Log-likelihood is NaN")


class ClosureFailureBudget:
    """Tolerate a bounded run of unary closure failures, then give up.

    An optimizer may propose weights whose unary rules cycle; the caller
    treats such a step as infinitely bad and retries. After more than
    `max_failures` consecutive failures the error is re-raised.
    """

    def __init__(self, max_failures: int = 10):
        self.max_failures = max_failures
        self.consecutive = 0

    def attempt(self, fn: Callable[..., T], *args, **kwargs) -> T | None:
        try:
            result = fn(*args, **kwargs)
        except UnaryClosureError as ex:
            self.consecutive += 1
            if self.consecutive > self.max_failures:
                raise
            logger.warning(
                "Unary closure failed (%d/%d): %s", self.consecutive, self.max_failures, ex
            )
            return None
        self.consecutive = 0
        return result
