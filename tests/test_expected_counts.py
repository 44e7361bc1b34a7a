import math

import numpy as np
import pytest
from grammars import fish

from cky_pcfg import ExpectedCounts, Grammar


def _counts(rules, words=None, log_prob=0.0):
    c = ExpectedCounts(np.array(rules, dtype=float), log_prob=log_prob)
    for label, table in (words or {}).items():
        for w, v in table.items():
            c.word_counter(label)[w] += v
    return c


def test_add_then_subtract_restores():
    a = _counts([1.0, 2.0, 0.5], {0: {"x": 1.0}}, log_prob=-1.0)
    b = _counts([0.25, 0.0, 3.0], {0: {"x": 0.5, "y": 2.0}, 1: {"z": 1.0}}, log_prob=-2.0)
    before = a.copy()
    a += b
    a -= b
    np.testing.assert_allclose(a.rule_counts, before.rule_counts)
    assert a.log_prob == pytest.approx(before.log_prob)
    assert a.word_counts[0]["x"] == pytest.approx(1.0)
    assert a.word_counts[0]["y"] == pytest.approx(0.0)
    assert a.word_counts[1]["z"] == pytest.approx(0.0)


def test_addition_commutes_and_associates():
    a = _counts([1.0, 0.0], {0: {"x": 1.0}}, -0.5)
    b = _counts([0.5, 2.0], {1: {"y": 3.0}}, -1.5)
    c = _counts([0.0, 1.0], {0: {"y": 0.25}}, -3.0)

    ab, ba = a + b, b + a
    np.testing.assert_allclose(ab.rule_counts, ba.rule_counts)
    assert ab.word_counts == ba.word_counts
    assert ab.log_prob == ba.log_prob

    left, right = (a + b) + c, a + (b + c)
    np.testing.assert_allclose(left.rule_counts, right.rule_counts)
    assert left.word_counts == right.word_counts
    assert left.log_prob == pytest.approx(right.log_prob)


def test_binary_operators_leave_operands_alone():
    a = _counts([1.0], {0: {"x": 1.0}})
    b = _counts([2.0], {0: {"x": 2.0}})
    total = a + b
    assert a.rule_counts[0] == 1.0
    assert a.word_counts[0]["x"] == 1.0
    assert total.word_counts[0]["x"] == 3.0


def test_inplace_add_returns_self():
    a = _counts([1.0])
    same = a
    a += _counts([1.0])
    assert a is same
    assert a.rule_counts[0] == 2.0


def test_word_tables_grow_on_first_touch():
    a = _counts([0.0])
    assert a.word_counts == {}
    a.word_counter(3)["new"] += 0.5
    assert a.word_counts[3]["new"] == 0.5
    assert a.word_counter(3)["unseen"] == 0.0


def test_subtraction_may_go_negative():
    observed = _counts([1.0, 0.0], {0: {"x": 1.0}})
    expected = _counts([0.25, 0.75], {0: {"x": 0.5, "y": 0.5}})
    diff = observed - expected
    np.testing.assert_allclose(diff.rule_counts, [0.75, -0.75])
    assert diff.word_counts[0]["y"] == pytest.approx(-0.5)


def test_mismatched_rule_spaces_are_rejected():
    with pytest.raises(ValueError):
        _counts([1.0, 2.0]) + _counts([1.0])
    a = _counts([1.0, 2.0])
    with pytest.raises(ValueError):
        a -= _counts([1.0, 2.0, 3.0])


def test_parsable_and_finite():
    g, _ = fish()
    z = ExpectedCounts.zeros(g, log_prob=-math.inf)
    assert not z.parsable
    assert z.is_finite()
    assert z.rule_counts.shape == (g.num_rules,)

    bad = ExpectedCounts.zeros(g)
    bad.word_counter(0)["w"] = math.nan
    assert bad.parsable
    assert not bad.is_finite()


def test_decode_names_nonzero_counts():
    g = Grammar([
        ("S", ["NP", "VP"], 0.0),
        ("NP", ["N"], 0.0),
        ("VP", ["V"], 0.0),
    ])
    c = ExpectedCounts.zeros(g)
    c.rule_counts[g.rule_index("S", "NP", "VP")] = 2.0
    c.rule_counts[g.rule_index("NP", "N")] = 0.5
    c.word_counter(g.label_index("N"))["dogs"] += 1.0
    c.word_counter(g.label_index("V"))["run"] += 0.0

    decoded = c.decode(g)
    assert decoded.binary == {"S": {("NP", "VP"): 2.0}}
    assert decoded.unary == {"NP": {"N": 0.5}}
    assert decoded.words == {"N": {"dogs": 1.0}, "V": {}}


def test_constructor_tables_grow_on_first_touch():
    a = ExpectedCounts(np.zeros(1), {0: {"x": 1.0}})
    a += ExpectedCounts(np.zeros(1), {0: {"y": 1.0}, 2: {"z": 0.5}})
    assert a.word_counts[0] == {"x": 1.0, "y": 1.0}
    assert a.word_counts[2]["z"] == 0.5
    a -= ExpectedCounts(np.zeros(1), {0: {"w": 2.0}})
    assert a.word_counts[0]["w"] == -2.0


def test_constructor_does_not_alias_caller_tables():
    table = {"x": 1.0}
    a = ExpectedCounts(np.zeros(1), {0: table})
    a += ExpectedCounts(np.zeros(1), {0: {"x": 1.0}})
    assert table == {"x": 1.0}
