from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from .closure import unary_closure
from .semiring import LOG_PROB, VITERBI
from .util import LOG_ZERO, LogProb


@dataclass(frozen=True)
class BinaryRule:
    parent: int
    left: int
    right: int
    score: LogProb


@dataclass(frozen=True)
class UnaryRule:
    parent: int
    child: int
    score: LogProb


Rule = BinaryRule | UnaryRule


class Grammar:
    """An indexed grammar of binary and unary rules with log-space scores.

    Labels get dense ids in order of first appearance (`labels` first, then
    rule symbols). Scores are arbitrary reals: a normalized PCFG is the
    special case built by `from_probabilities`.

    Unary rules are closed on construction. The grammar exposes one unary
    rule `a -> b` for every pair with a unary path from `a` to `b`, scored
    with the total mass of those paths, so a single unary layer per span
    covers every chain. A unary cycle raises UnaryClosureError.
    Rule ids list binary rules in input order, then the closed unary rules.
    """

    def __init__(
        self,
        rules: Iterable[tuple[str, Iterable[str], float]],
        *,
        labels: Iterable[str] = (),
    ):
        self._labels: list[str] = []
        self._index: dict[str, int] = {}
        for label in labels:
            self._intern(label)

        binary: list[BinaryRule] = []
        raw_unary: list[tuple[int, int, float]] = []
        seen: set[tuple[int, ...]] = set()
        for lhs, rhs, score in rules:
            rhs = tuple(rhs)
            key = (self._intern(lhs),) + tuple(self._intern(sym) for sym in rhs)
            if len(rhs) not in (1, 2):
                raise ValueError(f"Rule {lhs}->{rhs} must be binary or unary")
            if key in seen:
                raise ValueError(f"Duplicate rule {lhs}->{rhs}")
            seen.add(key)
            if len(rhs) == 2:
                binary.append(BinaryRule(key[0], key[1], key[2], float(score)))
            else:
                raw_unary.append((key[0], key[1], float(score)))

        n = len(self._labels)
        closed_labels, closed = unary_closure(raw_unary, LOG_PROB, label_names=self._labels)
        _, best = unary_closure(raw_unary, VITERBI, label_names=self._labels)

        self._rules: list[Rule] = list(binary)
        viterbi_scores = [r.score for r in binary]
        for i, j in zip(*np.nonzero(np.isfinite(closed)), strict=True):
            if i == j:
                continue
            a, b = int(closed_labels[i]), int(closed_labels[j])
            self._rules.append(UnaryRule(a, b, float(closed[i, j])))
            viterbi_scores.append(float(best[i, j]))

        self._scores = np.array([r.score for r in self._rules], dtype=float)
        self._viterbi_scores = np.array(viterbi_scores, dtype=float)

        by_parent_binary: dict[int, list[int]] = defaultdict(list)
        by_parent_unary: dict[int, list[int]] = defaultdict(list)
        self._rule_ids: dict[tuple[int, ...], int] = {}
        for rid, rule in enumerate(self._rules):
            match rule:
                case BinaryRule(parent, left, right, _):
                    by_parent_binary[parent].append(rid)
                    self._rule_ids[(parent, left, right)] = rid
                case UnaryRule(parent, child, _):
                    by_parent_unary[parent].append(rid)
                    self._rule_ids[(parent, child)] = rid
        self._binary_by_parent = [tuple(by_parent_binary[a]) for a in range(n)]
        self._unary_by_parent = [tuple(by_parent_unary[a]) for a in range(n)]

    @classmethod
    def from_probabilities(
        cls,
        rules: Iterable[tuple[str, Iterable[str], float]],
        *,
        labels: Iterable[str] = (),
    ) -> Grammar:
        """Build from rule probabilities, normalized per parent."""
        by_lhs: dict[str, list[tuple[tuple[str, ...], float]]] = defaultdict(list)
        for lhs, rhs, p in rules:
            if p <= 0.0:
                raise ValueError(f"Rule {lhs}->{tuple(rhs)} must have p>0, got {p}")
            by_lhs[lhs].append((tuple(rhs), p))
        normalized = []
        for lhs, rlist in by_lhs.items():
            total = sum(p for _, p in rlist)
            normalized.extend((lhs, rhs, math.log(p / total)) for rhs, p in rlist)
        return cls(normalized, labels=labels)

    def _intern(self, label: str) -> int:
        idx = self._index.get(label)
        if idx is None:
            idx = len(self._labels)
            self._index[label] = idx
            self._labels.append(label)
        return idx

    # -------------------- labels --------------------
    @property
    def num_labels(self) -> int:
        return len(self._labels)

    @property
    def labels(self) -> Sequence[str]:
        return tuple(self._labels)

    def label_index(self, label: str) -> int:
        return self._index[label]

    def label(self, label_id: int) -> str:
        return self._labels[label_id]

    # -------------------- rules --------------------
    @property
    def num_rules(self) -> int:
        return len(self._rules)

    @property
    def rules(self) -> Sequence[Rule]:
        return tuple(self._rules)

    def rule(self, rule_id: int) -> Rule:
        return self._rules[rule_id]

    def rule_index(self, parent: str, *children: str) -> int:
        """Id of the rule `parent -> children`; KeyError if absent."""
        key = (self._index[parent],) + tuple(self._index[c] for c in children)
        return self._rule_ids[key]

    def binary_rules_with_parent(self, label_id: int) -> tuple[int, ...]:
        return self._binary_by_parent[label_id]

    def unary_rules_with_parent(self, label_id: int) -> tuple[int, ...]:
        return self._unary_by_parent[label_id]

    def rules_with_parent(self, label_id: int) -> tuple[int, ...]:
        return self._binary_by_parent[label_id] + self._unary_by_parent[label_id]

    def left_child(self, rule_id: int) -> int:
        return self._rules[rule_id].left

    def right_child(self, rule_id: int) -> int:
        return self._rules[rule_id].right

    def child(self, rule_id: int) -> int:
        return self._rules[rule_id].child

    def rule_score(self, rule_id: int) -> LogProb:
        return float(self._scores[rule_id])

    def rule_scores(self, *, viterbi: bool = False) -> np.ndarray:
        """Read-only view of all rule scores; unary entries use max paths for Viterbi."""
        view = (self._viterbi_scores if viterbi else self._scores).view()
        view.flags.writeable = False
        return view

    def mk_dense_vector(self) -> np.ndarray:
        return np.zeros(len(self._rules), dtype=float)

    def describe(self, rule_id: int) -> str:
        rule = self._rules[rule_id]
        match rule:
            case BinaryRule(parent, left, right, score):
                rhs = f"{self._labels[left]} {self._labels[right]}"
            case UnaryRule(parent, child, score):
                rhs = self._labels[child]
        return f"{self._labels[parent]} -> {rhs} ({score:.6f})"

    def __repr__(self) -> str:
        return f"Grammar(labels={self.num_labels}, rules={self.num_rules})"


class Lexicon:
    """Log-space emission scores of words by tag labels."""

    def __init__(self, emissions: Iterable[tuple[str, Hashable, float]]):
        self._by_word: dict[Hashable, dict[str, LogProb]] = defaultdict(dict)
        tags: set[str] = set()
        for tag, word, score in emissions:
            if tag in self._by_word[word]:
                raise ValueError(f"Duplicate emission {tag}->{word!r}")
            self._by_word[word][tag] = float(score)
            tags.add(tag)
        self._by_word = dict(self._by_word)
        self._tags = frozenset(tags)

    @classmethod
    def from_probabilities(cls, emissions: Iterable[tuple[str, Hashable, float]]) -> Lexicon:
        """Build from emission probabilities, normalized per tag."""
        by_tag: dict[str, list[tuple[Hashable, float]]] = defaultdict(list)
        for tag, word, p in emissions:
            if p <= 0.0:
                raise ValueError(f"Emission {tag}->{word!r} must have p>0, got {p}")
            by_tag[tag].append((word, p))
        normalized = []
        for tag, wlist in by_tag.items():
            total = sum(p for _, p in wlist)
            normalized.extend((tag, word, math.log(p / total)) for word, p in wlist)
        return cls(normalized)

    @property
    def tags(self) -> frozenset[str]:
        return self._tags

    def emission_score(self, tag: str, word: Hashable) -> LogProb:
        return self._by_word.get(word, {}).get(tag, LOG_ZERO)

    def tag_scores(self, word: Hashable) -> dict[str, LogProb]:
        return dict(self._by_word.get(word, {}))
