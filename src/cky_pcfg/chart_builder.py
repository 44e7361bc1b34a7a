from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence

import numpy as np

from .chart import ParseChart
from .grammar import Grammar, Lexicon
from .semiring import LOG_PROB, Semiring
from .span_scorer import SpanScorer
from .util import LOG_ZERO, veto_nan, veto_nan_array

logger = logging.getLogger(__name__)


def binary_bonuses(scorer: SpanScorer, begin: int, splits: range, end: int, rule: int):
    """Per-split binary bonuses as an array, or 0.0 for the identity scorer."""
    if scorer is SpanScorer.identity:
        return 0.0
    bonus = np.array([scorer.binary_rule_bonus(begin, s, end, rule) for s in splits])
    return veto_nan_array(bonus)


class CKYChartBuilder:
    """Fills inside charts bottom-up and outside charts top-down.

    The builder is immutable after construction and can be shared by
    concurrent callers; every chart it returns is fresh.
    """

    def __init__(
        self,
        root: str,
        grammar: Grammar,
        lexicon: Lexicon,
        *,
        semiring: Semiring = LOG_PROB,
    ):
        self.root = root
        self.grammar = grammar
        self.lexicon = lexicon
        self.semiring = semiring
        self.root_id = grammar.label_index(root)
        self._scores = grammar.rule_scores(viterbi=semiring.viterbi)
        self._tag_ids: dict[str, int] = {}
        for tag in lexicon.tags:
            try:
                self._tag_ids[tag] = grammar.label_index(tag)
            except KeyError:
                raise ValueError(f"Lexicon tag {tag!r} is not a grammar label") from None
        self._binary_parents = [
            a for a in range(grammar.num_labels) if grammar.binary_rules_with_parent(a)
        ]
        self._unary_parents = [
            a for a in range(grammar.num_labels) if grammar.unary_rules_with_parent(a)
        ]

    def with_semiring(self, semiring: Semiring) -> CKYChartBuilder:
        return CKYChartBuilder(self.root, self.grammar, self.lexicon, semiring=semiring)

    # -------------------- inside --------------------
    def build_inside_chart(
        self, words: Sequence[Hashable], scorer: SpanScorer = SpanScorer.identity
    ) -> ParseChart:
        n = len(words)
        if n == 0:
            raise ValueError("Cannot parse an empty sentence")
        g = self.grammar
        sr = self.semiring
        chart = ParseChart(n, g.num_labels, sr)

        for i, w in enumerate(words):
            scores = np.full(g.num_labels, LOG_ZERO)
            for tag, emission in self.lexicon.tag_scores(w).items():
                t = self._tag_ids[tag]
                scores[t] = emission + veto_nan(scorer.span_bonus(i, i + 1, t))
            chart.bot.set_span(i, i + 1, scores)
            self._inside_unaries(chart, i, i + 1, scorer)

        top = chart.top.scores
        for span in range(2, n + 1):
            for begin in range(0, n - span + 1):
                end = begin + span
                scores = np.full(g.num_labels, LOG_ZERO)
                for a in self._binary_parents:
                    total = LOG_ZERO
                    for r in g.binary_rules_with_parent(a):
                        b = g.left_child(r)
                        c = g.right_child(r)
                        splits = chart.top.feasible_split_range(begin, end, b, c)
                        if not splits:
                            continue
                        child = top[begin, splits.start:splits.stop, b]
                        child = child + top[splits.start:splits.stop, end, c]
                        bonus = binary_bonuses(scorer, begin, splits, end, r)
                        total = sr.plus(total, sr.sum(child + self._scores[r] + bonus))
                    if total != LOG_ZERO:
                        scores[a] = total + veto_nan(scorer.span_bonus(begin, end, a))
                chart.bot.set_span(begin, end, scores)
                self._inside_unaries(chart, begin, end, scorer)

        logger.debug(
            "inside chart: %d words, %s total=%s",
            n, sr.name, chart.top.label_score(0, n, self.root_id),
        )
        return chart

    def _inside_unaries(self, chart: ParseChart, begin: int, end: int, scorer: SpanScorer):
        g = self.grammar
        sr = self.semiring
        bot = chart.bot.scores[begin, end]
        top = bot.copy()  # empty unary path
        for a in self._unary_parents:
            for r in g.unary_rules_with_parent(a):
                b = g.child(r)
                if bot[b] == LOG_ZERO:
                    continue
                score = bot[b] + self._scores[r] + veto_nan(scorer.unary_rule_bonus(begin, end, r))
                top[a] = sr.plus(top[a], score)
        chart.top.set_span(begin, end, top)

    # -------------------- outside --------------------
    def build_outside_chart(
        self, inside: ParseChart, scorer: SpanScorer = SpanScorer.identity
    ) -> ParseChart:
        """Outside scores mirroring every split and rule enumerated by the inside pass."""
        n = inside.length
        g = self.grammar
        sr = self.semiring
        outside = ParseChart(n, g.num_labels, sr)
        outside.top.scores[0, n, self.root_id] = 0.0

        in_top = inside.top.scores
        out_top = outside.top.scores
        for span in range(n, 0, -1):
            for begin in range(0, n - span + 1):
                end = begin + span
                self._outside_unaries(inside, outside, begin, end, scorer)
                if span == 1:
                    continue
                for a in inside.bot.entered_labels(begin, end):
                    a_out = outside.bot.scores[begin, end, a]
                    if a_out == LOG_ZERO:
                        continue
                    a_out = a_out + veto_nan(scorer.span_bonus(begin, end, a))
                    for r in g.binary_rules_with_parent(a):
                        b = g.left_child(r)
                        c = g.right_child(r)
                        splits = inside.top.feasible_split_range(begin, end, b, c)
                        if not splits:
                            continue
                        lo, hi = splits.start, splits.stop
                        base = a_out + self._scores[r] + binary_bonuses(
                            scorer, begin, splits, end, r
                        )
                        # [begin, s) as left child, then [s, end) as right child
                        out_top[begin, lo:hi, b] = sr.plus(
                            out_top[begin, lo:hi, b], base + in_top[lo:hi, end, c]
                        )
                        out_top[lo:hi, end, c] = sr.plus(
                            out_top[lo:hi, end, c], base + in_top[begin, lo:hi, b]
                        )
        return outside

    def _outside_unaries(
        self, inside: ParseChart, outside: ParseChart, begin: int, end: int, scorer: SpanScorer
    ):
        g = self.grammar
        sr = self.semiring
        out_top = outside.top.scores[begin, end]
        in_bot = inside.bot.scores[begin, end]
        out_bot = out_top.copy()  # empty unary path
        for a in inside.top.entered_labels(begin, end):
            if out_top[a] == LOG_ZERO:
                continue
            for r in g.unary_rules_with_parent(a):
                b = g.child(r)
                if in_bot[b] == LOG_ZERO:
                    continue
                score = out_top[a] + self._scores[r]
                score += veto_nan(scorer.unary_rule_bonus(begin, end, r))
                out_bot[b] = sr.plus(out_bot[b], score)
        outside.bot.set_span(begin, end, out_bot)
