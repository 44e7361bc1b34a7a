import math

import numpy as np
import pytest
from grammars import coordination, dogs_run, engine, fish, staircase

from cky_pcfg import VITERBI, CKYChartBuilder, Grammar, InsideOutside, Lexicon, SpanScorer
from cky_pcfg.span_scorer import SpanVisitor
from cky_pcfg.util import LOG_ZERO


class VetoSpan(SpanScorer):
    def __init__(self, begin, end, label, score=LOG_ZERO):
        self.span = (begin, end, label)
        self.score = score

    def span_bonus(self, begin, end, label):
        return self.score if (begin, end, label) == self.span else 0.0


class RuleBonus(SpanScorer):
    def __init__(self, binary=None, unary=None):
        self.binary = binary or {}
        self.unary = unary or {}

    def binary_rule_bonus(self, begin, split, end, rule):
        return self.binary.get((begin, split, end, rule), 0.0)

    def unary_rule_bonus(self, begin, end, rule):
        return self.unary.get((begin, end, rule), 0.0)


class Recorder(SpanVisitor):
    def __init__(self):
        self.spans = []
        self.binaries = []
        self.unaries = []

    def visit_span(self, begin, end, label, mass):
        self.spans.append((begin, end, label, mass))

    def visit_binary_rule(self, begin, split, end, rule, prob):
        self.binaries.append((begin, split, end, rule, prob))

    def visit_unary_rule(self, begin, end, rule, prob):
        self.unaries.append((begin, end, rule, prob))


def test_dogs_run_scenario():
    g, lex = dogs_run()
    counts = engine((g, lex)).expected_counts(["dogs", "run"])
    assert counts.log_prob == pytest.approx(0.0)
    assert counts.rule_counts[g.rule_index("S", "NP", "VP")] == pytest.approx(1.0)
    assert counts.rule_counts[g.rule_index("VP", "V")] == pytest.approx(1.0)
    assert counts.word_counts[g.label_index("V")]["run"] == pytest.approx(1.0)
    assert counts.word_counts[g.label_index("NP")]["dogs"] == pytest.approx(1.0)


def test_veto_scenario_zeroes_everything():
    g, lex = dogs_run()
    scorer = VetoSpan(0, 1, g.label_index("NP"))
    counts = engine((g, lex)).expected_counts(["dogs", "run"], scorer)
    assert counts.log_prob == LOG_ZERO
    assert not counts.parsable
    assert not counts.rule_counts.any()
    assert all(v == 0.0 for ctr in counts.word_counts.values() for v in ctr.values())


def test_nan_bonus_is_a_veto():
    g, lex = dogs_run()
    scorer = VetoSpan(0, 1, g.label_index("NP"), float("nan"))
    counts = engine((g, lex)).expected_counts(["dogs", "run"], scorer)
    assert counts.log_prob == LOG_ZERO
    assert not np.isnan(counts.rule_counts).any()


def test_fish_expected_counts_by_hand():
    g, lex = fish()
    counts = engine((g, lex)).expected_counts(["fish"] * 3)
    total = 0.196 + 0.18
    a, b = 0.196 / total, 0.18 / total  # posteriors of the two parses
    assert counts.log_prob == pytest.approx(math.log(total))
    rc = counts.rule_counts
    assert rc[g.rule_index("S", "NP", "VP")] == pytest.approx(1.0)
    assert rc[g.rule_index("NP", "N")] == pytest.approx(2 * a)
    assert rc[g.rule_index("NP", "N", "N")] == pytest.approx(b)
    assert rc[g.rule_index("VP", "V")] == pytest.approx(b)
    assert rc[g.rule_index("VP", "V", "NP")] == pytest.approx(a)
    assert counts.word_counts[g.label_index("N")]["fish"] == pytest.approx(2.0)
    assert counts.word_counts[g.label_index("V")]["fish"] == pytest.approx(1.0)


def test_coordination_expected_counts():
    g, lex = coordination()
    counts = engine((g, lex)).expected_counts(["cats", "and", "dogs", "and", "foxes"])
    rc = counts.rule_counts
    assert rc[g.rule_index("NP", "NP", "CNP")] == pytest.approx(2.0)
    assert rc[g.rule_index("CNP", "CC", "NP")] == pytest.approx(2.0)
    assert rc[g.rule_index("NP", "N")] == pytest.approx(3.0)
    assert rc[g.rule_index("S", "NP")] == pytest.approx(1.0)
    assert rc[g.rule_index("S", "N")] == pytest.approx(0.0)
    assert counts.word_counts[g.label_index("CC")]["and"] == pytest.approx(2.0)
    for w in ["cats", "dogs", "foxes"]:
        assert counts.word_counts[g.label_index("N")][w] == pytest.approx(1.0)


def test_span_posteriors_are_probabilities():
    g, lex = coordination()
    tokens = ["cats", "and", "dogs", "and", "foxes", "and", "wolves"]
    builder = CKYChartBuilder("S", g, lex)
    inside = builder.build_inside_chart(tokens)
    outside = builder.build_outside_chart(inside)
    n = len(tokens)
    total = inside.top.label_score(0, n, g.label_index("S"))
    for begin in range(n):
        for end in range(begin + 1, n + 1):
            span_mass = 0.0
            for label in inside.top.entered_labels(begin, end):
                post = math.exp(
                    inside.top.label_score(begin, end, label)
                    + outside.top.label_score(begin, end, label)
                    - total
                )
                assert -1e-12 <= post <= 1.0 + 1e-9
                span_mass += post
            assert span_mass <= 1.0 + 1e-9
    root = inside.top.label_score(0, n, g.label_index("S"))
    assert math.exp(root + outside.top.label_score(0, n, g.label_index("S")) - total) == (
        pytest.approx(1.0)
    )


def test_every_inside_term_has_an_outside_term():
    # Sum over labels of inside * outside at the bottom of each length-1 span equals
    # the total: each parse has exactly one bottom label per word.
    g, lex = fish()
    builder = CKYChartBuilder("S", g, lex)
    tokens = ["fish"] * 4
    inside = builder.build_inside_chart(tokens)
    outside = builder.build_outside_chart(inside)
    total = inside.top.label_score(0, 4, g.label_index("S"))
    for i in range(4):
        mass = np.logaddexp.reduce(inside.bot.scores[i, i + 1] + outside.bot.scores[i, i + 1])
        assert mass == pytest.approx(total, rel=1e-9)


def test_pruned_split_counts_match_brute_force():
    g, lex = staircase()
    tokens = list("abbcc")
    n = len(tokens)
    io = engine((g, lex))
    counts = io.expected_counts(tokens)

    builder = io.builder
    inside = builder.build_inside_chart(tokens)
    outside = builder.build_outside_chart(inside)
    total = inside.top.label_score(0, n, g.label_index("S"))

    brute = g.mk_dense_vector()
    for begin in range(n):
        for end in range(begin + 2, n + 1):
            for a in range(g.num_labels):
                a_out = outside.bot.label_score(begin, end, a)
                for r in g.binary_rules_with_parent(a):
                    for split in range(begin + 1, end):  # every split, no pruning
                        brute[r] += math.exp(
                            inside.top.label_score(begin, split, g.left_child(r))
                            + inside.top.label_score(split, end, g.right_child(r))
                            + a_out
                            + g.rule_score(r)
                            - total
                        )
    np.testing.assert_allclose(counts.rule_counts, brute, rtol=1e-9, atol=1e-12)

    late = 0.175 / 0.28  # S splits at 3
    assert counts.rule_counts[g.rule_index("S", "P", "Q")] == pytest.approx(1.0)
    assert counts.rule_counts[g.rule_index("P", "P", "B")] == pytest.approx(late)
    assert counts.rule_counts[g.rule_index("Q", "B", "Q")] == pytest.approx(1 - late)
    assert counts.rule_counts[g.rule_index("Q", "C", "C")] == pytest.approx(1.0)


def test_span_and_rule_bonuses_flow_into_counts():
    g, lex = fish()
    io = engine((g, lex))
    tokens = ["fish"] * 3

    counts = io.expected_counts(tokens, VetoSpan(0, 2, g.label_index("NP"), math.log(2.0)))
    assert counts.log_prob == pytest.approx(math.log(0.196 + 0.36))
    assert counts.rule_counts[g.rule_index("NP", "N", "N")] == pytest.approx(0.36 / 0.556)

    vp = g.rule_index("VP", "V", "NP")
    counts = io.expected_counts(tokens, RuleBonus(binary={(1, 2, 3, vp): math.log(3.0)}))
    assert counts.log_prob == pytest.approx(math.log(0.588 + 0.18))
    assert counts.rule_counts[vp] == pytest.approx(0.588 / 0.768)

    unary = g.rule_index("VP", "V")
    counts = io.expected_counts(tokens, RuleBonus(unary={(2, 3, unary): math.log(0.5)}))
    assert counts.log_prob == pytest.approx(math.log(0.196 + 0.09))
    assert counts.rule_counts[unary] == pytest.approx(0.09 / 0.286)


def test_closed_unary_chain_counts():
    # S -> A (0.5) | B (0.5) ; A -> B (1.0): both paths end up in the closed rule S -> B
    g = Grammar([
        ("S", ["A"], math.log(0.5)),
        ("S", ["B"], math.log(0.5)),
        ("A", ["B"], 0.0),
    ])
    lex = Lexicon([("B", "x", 0.0)])
    counts = InsideOutside.for_grammar("S", g, lex).expected_counts(["x"])
    assert counts.log_prob == pytest.approx(0.0)
    assert counts.rule_counts[g.rule_index("S", "B")] == pytest.approx(1.0)
    assert counts.rule_counts[g.rule_index("S", "A")] == 0.0
    assert counts.rule_counts[g.rule_index("A", "B")] == 0.0


def test_visitor_sees_span_and_rule_mass():
    g, lex = fish()
    rec = Recorder()
    counts = engine((g, lex)).expected_counts(["fish"] * 3, visitor=rec)
    a = 0.196 / 0.376

    S = g.label_index("S")
    assert [m for b, e, label, m in rec.spans if (b, e, label) == (0, 3, S)] == [
        pytest.approx(1.0)
    ]
    vp = g.rule_index("VP", "V", "NP")
    assert [p for b, s, e, r, p in rec.binaries if r == vp and p > 0] == [pytest.approx(a)]
    unary_total = sum(p for _, _, r, p in rec.unaries if r == g.rule_index("NP", "N"))
    assert unary_total == pytest.approx(counts.rule_counts[g.rule_index("NP", "N")])


def test_engine_needs_logprob_charts():
    g, lex = fish()
    with pytest.raises(ValueError):
        InsideOutside(CKYChartBuilder("S", g, lex, semiring=VITERBI))
