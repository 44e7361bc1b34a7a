from collections.abc import Hashable, Sequence
from functools import cache

from .grammar import Grammar, Lexicon
from .util import LOG_ZERO, LogProb, logsumexp


def sentence_inside_logprob(
    grammar: Grammar, lexicon: Lexicon, tokens: Sequence[Hashable], root: str
) -> LogProb:
    """Exact inside log-probability for tokens under `grammar` from `root`.

    Plain memoized recursion over every split point and every rule, with
    no chart bookkeeping or split pruning. Slow, but independent of the
    chart builder, which makes it a cross-check for it.
    Returns LOG_ZERO if the string is not generated.
    """
    n = len(tokens)
    if n == 0:
        return LOG_ZERO

    @cache
    def inside_top(a: int, i: int, k: int) -> LogProb:
        # zero or one closed unary rule above the bottom derivation
        total = inside_bot(a, i, k)
        for r in grammar.unary_rules_with_parent(a):
            below = inside_bot(grammar.child(r), i, k)
            if below != LOG_ZERO:
                total = logsumexp(total, grammar.rule_score(r) + below)
        return total

    @cache
    def inside_bot(a: int, i: int, k: int) -> LogProb:
        if k == i + 1:
            return lexicon.emission_score(grammar.label(a), tokens[i])
        total: LogProb = LOG_ZERO
        for r in grammar.binary_rules_with_parent(a):
            for mid in range(i + 1, k):
                left = inside_top(grammar.left_child(r), i, mid)
                if left == LOG_ZERO:
                    continue
                right = inside_top(grammar.right_child(r), mid, k)
                if right == LOG_ZERO:
                    continue
                total = logsumexp(total, grammar.rule_score(r) + left + right)
        return total

    return inside_top(grammar.label_index(root), 0, n)
