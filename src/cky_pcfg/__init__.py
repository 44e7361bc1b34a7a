from .chart import ParseChart
from .chart_builder import CKYChartBuilder
from .closure import UnaryClosureError, unary_closure
from .corpus import (
    BatchFailedError,
    CorpusCounts,
    SentenceOutcome,
    corpus_expected_counts,
    corpus_log_likelihood,
    sentence_outcome,
)
from .expected_counts import ExpectedCounts
from .grammar import BinaryRule, Grammar, Lexicon, Rule, UnaryRule
from .inside_outside import InsideOutside
from .semiring import LOG_PROB, VITERBI
from .span_scorer import LabeledSpanScorer, SpanScorer, SpanVisitor, ThresholdingSpanScorer
from .training import ClosureFailureBudget, NumericalDegeneracyError
from .tree import Tree
from .viterbi import ViterbiParser

__all__ = [
    "Grammar",
    "Lexicon",
    "Rule",
    "BinaryRule",
    "UnaryRule",
    "UnaryClosureError",
    "unary_closure",
    "LOG_PROB",
    "VITERBI",
    "ParseChart",
    "CKYChartBuilder",
    "InsideOutside",
    "ExpectedCounts",
    "SpanScorer",
    "SpanVisitor",
    "ThresholdingSpanScorer",
    "LabeledSpanScorer",
    "Tree",
    "ViterbiParser",
    "SentenceOutcome",
    "CorpusCounts",
    "BatchFailedError",
    "sentence_outcome",
    "corpus_expected_counts",
    "corpus_log_likelihood",
    "ClosureFailureBudget",
    "NumericalDegeneracyError",
]
