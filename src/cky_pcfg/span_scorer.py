from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from .util import LOG_ZERO, LogProb

if TYPE_CHECKING:
    from .grammar import Grammar
    from .tree import Tree


class SpanScorer:
    """Bonus (or veto) scores for anchored spans and rule applications.

    All scores are in log space and added to the chart; return LOG_ZERO to
    veto. The base class is the identity: every bonus is 0.
    """

    identity: SpanScorer

    def span_bonus(self, begin: int, end: int, label: int) -> LogProb:
        return 0.0

    def binary_rule_bonus(self, begin: int, split: int, end: int, rule: int) -> LogProb:
        return 0.0

    def unary_rule_bonus(self, begin: int, end: int, rule: int) -> LogProb:
        return 0.0


SpanScorer.identity = SpanScorer()


class ThresholdingSpanScorer(SpanScorer):
    """Veto anything `inner` scores below `threshold`; pass the rest through."""

    def __init__(self, inner: SpanScorer, threshold: float):
        self.inner = inner
        self.threshold = threshold

    def _cut(self, score: LogProb) -> LogProb:
        return LOG_ZERO if score < self.threshold else score

    def span_bonus(self, begin, end, label):
        return self._cut(self.inner.span_bonus(begin, end, label))

    def binary_rule_bonus(self, begin, split, end, rule):
        return self._cut(self.inner.binary_rule_bonus(begin, split, end, rule))

    def unary_rule_bonus(self, begin, end, rule):
        return self._cut(self.inner.unary_rule_bonus(begin, end, rule))


class LabeledSpanScorer(SpanScorer):
    """Allow only the given (begin, end, label id) constituents.

    Running inside-outside under this scorer restricts the parse forest to
    the listed bracketing, which yields observed counts for a gold tree.
    """

    def __init__(self, grammar: Grammar, spans: Iterable[tuple[int, int, int]]):
        self.grammar = grammar
        self.allowed = frozenset(spans)

    @classmethod
    def from_tree(cls, grammar: Grammar, tree: Tree) -> LabeledSpanScorer:
        return cls(grammar, ((b, e, grammar.label_index(lab)) for b, e, lab in tree.spans()))

    def span_bonus(self, begin, end, label):
        return 0.0 if (begin, end, label) in self.allowed else LOG_ZERO

    def unary_rule_bonus(self, begin, end, rule):
        parent = self.grammar.rule(rule).parent
        return 0.0 if (begin, end, parent) in self.allowed else LOG_ZERO


class SpanVisitor:
    """Observer for per-span and per-rule expected mass; the base ignores everything."""

    no_op: SpanVisitor

    def visit_span(self, begin: int, end: int, label: int, mass: float) -> None:
        pass

    def visit_binary_rule(self, begin: int, split: int, end: int, rule: int, prob: float) -> None:
        pass

    def visit_unary_rule(self, begin: int, end: int, rule: int, prob: float) -> None:
        pass


SpanVisitor.no_op = SpanVisitor()
