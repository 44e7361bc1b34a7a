from __future__ import annotations

from collections.abc import Hashable, Sequence

from .chart import ParseChart
from .chart_builder import CKYChartBuilder, binary_bonuses
from .grammar import Grammar, Lexicon
from .semiring import VITERBI
from .span_scorer import SpanScorer
from .tree import Tree
from .util import LOG_ZERO, LogProb, veto_nan


class ViterbiParser:
    """Best-derivation parser: a max-semiring inside chart plus backtracking.

    Backpointers are not stored; each step re-derives the argmax from the
    chart, which holds exactly the scores the max was taken over.
    """

    def __init__(self, root: str, grammar: Grammar, lexicon: Lexicon):
        self.builder = CKYChartBuilder(root, grammar, lexicon, semiring=VITERBI)
        self._scores = grammar.rule_scores(viterbi=True)

    @property
    def grammar(self) -> Grammar:
        return self.builder.grammar

    def best_parse(
        self, words: Sequence[Hashable], scorer: SpanScorer = SpanScorer.identity
    ) -> tuple[Tree | None, LogProb]:
        chart = self.builder.build_inside_chart(words, scorer)
        n = len(words)
        score = chart.top.label_score(0, n, self.builder.root_id)
        if score == LOG_ZERO:
            return None, LOG_ZERO
        return self._top(chart, words, scorer, 0, n, self.builder.root_id), score

    def _top(self, chart: ParseChart, words, scorer, begin: int, end: int, label: int) -> Tree:
        g = self.grammar
        bot = chart.bot.scores[begin, end]
        best_score, best_child = bot[label], None
        for r in g.unary_rules_with_parent(label):
            child = g.child(r)
            score = bot[child] + self._scores[r] + veto_nan(scorer.unary_rule_bonus(begin, end, r))
            if score > best_score:
                best_score, best_child = score, child
        if best_child is None:
            return self._bot(chart, words, scorer, begin, end, label)
        below = self._bot(chart, words, scorer, begin, end, best_child)
        return Tree(g.label(label), (below,))

    def _bot(self, chart: ParseChart, words, scorer, begin: int, end: int, label: int) -> Tree:
        g = self.grammar
        if end == begin + 1:
            return Tree(g.label(label), (words[begin],))
        top = chart.top.scores
        best_score, best = LOG_ZERO, None
        for r in g.binary_rules_with_parent(label):
            b = g.left_child(r)
            c = g.right_child(r)
            splits = chart.top.feasible_split_range(begin, end, b, c)
            if not splits:
                continue
            lo, hi = splits.start, splits.stop
            scores = top[begin, lo:hi, b] + top[lo:hi, end, c] + self._scores[r]
            scores = scores + binary_bonuses(scorer, begin, splits, end, r)
            i = int(scores.argmax())
            if scores[i] > best_score:
                best_score, best = scores[i], (lo + i, b, c)
        split, b, c = best
        left = self._top(chart, words, scorer, begin, split, b)
        right = self._top(chart, words, scorer, split, end, c)
        return Tree(g.label(label), (left, right))
