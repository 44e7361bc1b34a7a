import argparse
import logging
import sys

from . import Grammar, InsideOutside, Lexicon, ViterbiParser, corpus_expected_counts


def _demo_grammar() -> tuple[Grammar, Lexicon]:
    # S -> NP VP ; VP -> V | V NP ; NP -> N | Det N
    g = Grammar.from_probabilities([
        ("S", ["NP", "VP"], 1.0),
        ("VP", ["V"], 0.5),
        ("VP", ["V", "NP"], 0.5),
        ("NP", ["N"], 0.6),
        ("NP", ["Det", "N"], 0.4),
    ])
    lex = Lexicon.from_probabilities([
        ("N", "dogs", 0.4),
        ("N", "cats", 0.4),
        ("N", "run", 0.2),
        ("V", "run", 0.5),
        ("V", "chase", 0.5),
        ("Det", "the", 1.0),
    ])
    return g, lex


def run_sentence(tokens: list[str], *, viterbi: bool = False, workers: int = 1) -> int:
    g, lex = _demo_grammar()
    if viterbi:
        tree, score = ViterbiParser("S", g, lex).best_parse(tokens)
        if tree is None:
            print("unparsable")
            return 1
        print(f"{tree}  logprob={score:.6f}")
        return 0

    result = corpus_expected_counts(
        InsideOutside.for_grammar("S", g, lex), [tokens], max_workers=workers
    )
    if result.failures:
        print(f"unparsable: {result.failures[0].reason}")
        return 1
    counts = result.counts
    print(f"logprob={counts.log_prob:.6f}")
    for r, c in enumerate(counts.rule_counts):
        if c != 0.0:
            print(f"  {g.describe(r)}: {c:.6f}")
    for tag, ctr in sorted(counts.decode(g).words.items()):
        for word, c in sorted(ctr.items()):
            print(f"  {tag} -> {word}: {c:.6f}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="cky-pcfg",
        description=(
            "Demo CLI for the cky_pcfg package. Computes inside-outside expected "
            "rule and emission counts for a sentence under a small English grammar."
        ),
    )
    parser.add_argument(
        "tokens",
        nargs="*",
        help="Space-separated input tokens (default: 'the dogs chase cats').",
    )
    parser.add_argument(
        "--viterbi",
        action="store_true",
        help="Print the best parse instead of expected counts.",
    )
    parser.add_argument("--workers", type=int, default=1, help="Worker threads.")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level, format="%(asctime)s %(name)s %(levelname)s: %(message)s"
    )
    tokens = args.tokens or ["the", "dogs", "chase", "cats"]
    return run_sentence(tokens, viterbi=args.viterbi, workers=args.workers)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
