from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence

import numpy as np

from .chart import ParseChart
from .chart_builder import CKYChartBuilder, binary_bonuses
from .expected_counts import ExpectedCounts
from .grammar import Grammar, Lexicon
from .semiring import LOG_PROB
from .span_scorer import SpanScorer, SpanVisitor
from .util import LOG_ZERO, LogProb, veto_nan

logger = logging.getLogger(__name__)


class InsideOutside:
    """Expected rule and emission counts from inside and outside charts.

    Every count is `exp(inside + outside + local score - total)`, i.e. the
    posterior probability of one anchored rule application, summed over
    all anchors. Charts stay in log space; only these final terms are
    exponentiated.
    """

    def __init__(self, builder: CKYChartBuilder):
        if builder.semiring is not LOG_PROB:
            raise ValueError(
                f"Expected counts need a log-probability chart, got {builder.semiring}"
            )
        self.builder = builder
        g = builder.grammar
        self._scores = g.rule_scores()
        self._is_tag = np.zeros(g.num_labels, dtype=bool)
        for tag in builder.lexicon.tags:
            self._is_tag[g.label_index(tag)] = True

    @classmethod
    def for_grammar(cls, root: str, grammar: Grammar, lexicon: Lexicon) -> InsideOutside:
        return cls(CKYChartBuilder(root, grammar, lexicon))

    @property
    def grammar(self) -> Grammar:
        return self.builder.grammar

    @property
    def lexicon(self) -> Lexicon:
        return self.builder.lexicon

    @property
    def root(self) -> str:
        return self.builder.root

    def expected_counts(
        self,
        words: Sequence[Hashable],
        scorer: SpanScorer = SpanScorer.identity,
        visitor: SpanVisitor = SpanVisitor.no_op,
    ) -> ExpectedCounts:
        inside = self.builder.build_inside_chart(words, scorer)
        total = inside.top.label_score(0, len(words), self.builder.root_id)
        if total == LOG_ZERO:
            logger.warning("Sentence of %d words is unparsable under this grammar", len(words))
            return ExpectedCounts.zeros(self.grammar, log_prob=LOG_ZERO)
        outside = self.builder.build_outside_chart(inside, scorer)
        return self.expected_counts_from_charts(words, inside, outside, total, scorer, visitor)

    def expected_counts_from_charts(
        self,
        words: Sequence[Hashable],
        inside: ParseChart,
        outside: ParseChart,
        total: LogProb,
        scorer: SpanScorer = SpanScorer.identity,
        visitor: SpanVisitor = SpanVisitor.no_op,
    ) -> ExpectedCounts:
        counts = ExpectedCounts.zeros(self.grammar, log_prob=total)
        if total == LOG_ZERO:
            return counts
        self._word_counts(counts, words, inside, outside, total, visitor)
        self._binary_counts(counts, len(words), inside, outside, total, scorer, visitor)
        self._unary_counts(counts, len(words), inside, outside, total, scorer, visitor)
        return counts

    def _word_counts(self, counts, words, inside, outside, total, visitor):
        for i, w in enumerate(words):
            for tag in inside.bot.entered_labels(i, i + 1):
                if not self._is_tag[tag]:
                    continue
                i_score = inside.bot.scores[i, i + 1, tag]
                o_score = outside.bot.scores[i, i + 1, tag]
                count = float(np.exp(i_score + o_score - total))
                visitor.visit_span(i, i + 1, int(tag), count)
                counts.word_counter(int(tag))[w] += count

    def _binary_counts(self, counts, n, inside, outside, total, scorer, visitor):
        g = self.grammar
        rule_counts = counts.rule_counts
        in_top = inside.top.scores
        observing = visitor is not SpanVisitor.no_op
        for span in range(2, n + 1):
            for begin in range(0, n - span + 1):
                end = begin + span
                for a in inside.bot.entered_labels(begin, end):
                    a_out = outside.bot.scores[begin, end, a]
                    if a_out == LOG_ZERO:
                        continue
                    span_score = veto_nan(scorer.span_bonus(begin, end, int(a)))
                    span_mass = 0.0
                    for r in g.binary_rules_with_parent(a):
                        b = g.left_child(r)
                        c = g.right_child(r)
                        splits = inside.top.feasible_split_range(begin, end, b, c)
                        if not splits:
                            continue
                        lo, hi = splits.start, splits.stop
                        bonus = binary_bonuses(scorer, begin, splits, end, r)
                        scores = in_top[begin, lo:hi, b] + in_top[lo:hi, end, c]
                        scores = scores + (a_out + self._scores[r] + span_score) + bonus
                        probs = np.exp(scores - total)
                        if observing:
                            for s, p in zip(splits, probs, strict=True):
                                visitor.visit_binary_rule(begin, s, end, r, float(p))
                        rule_mass = float(probs[probs != 0.0].sum())
                        rule_counts[r] += rule_mass
                        span_mass += rule_mass
                    if observing:
                        visitor.visit_span(begin, end, int(a), span_mass)

    def _unary_counts(self, counts, n, inside, outside, total, scorer, visitor):
        g = self.grammar
        rule_counts = counts.rule_counts
        for span in range(1, n + 1):
            for begin in range(0, n - span + 1):
                end = begin + span
                in_bot = inside.bot.scores[begin, end]
                out_top = outside.top.scores[begin, end]
                for a in inside.top.entered_labels(begin, end):
                    for r in g.unary_rules_with_parent(a):
                        b = g.child(r)
                        r_score = self._scores[r] + veto_nan(scorer.unary_rule_bonus(begin, end, r))
                        prob = float(np.exp(in_bot[b] + out_top[a] + r_score - total))
                        if prob != 0.0:
                            rule_counts[r] += prob
                            visitor.visit_unary_rule(begin, end, r, prob)
