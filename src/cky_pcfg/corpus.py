"""
Corpus-level expected counts: per-sentence outcomes folded in parallel.

Sentences are independent given a read-only grammar, so they are fanned
out over a thread pool in contiguous chunks. Each task folds its chunk
into a private accumulator; the caller's thread merges those in
submission order. Nothing shared is written during the parallel phase.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Hashable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from .chart_builder import CKYChartBuilder
from .expected_counts import ExpectedCounts
from .inside_outside import InsideOutside
from .span_scorer import SpanScorer
from .util import LOG_ZERO, LogProb

logger = logging.getLogger(__name__)


class BatchFailedError(RuntimeError):
    """Too many sentences in a batch failed to yield counts."""

    def __init__(self, failures: Sequence[SentenceOutcome], max_failures: int):
        self.failures = list(failures)
        msg = f"{len(self.failures)} sentences failed (allowed {max_failures})"
        if self.failures:
            first = self.failures[0]
            msg += f"; first: #{first.index} ({first.reason})"
        super().__init__(msg)


@dataclass(frozen=True)
class SentenceOutcome:
    """Counts for one sentence, or the reason there are none."""

    index: int
    counts: ExpectedCounts | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.counts is not None


@dataclass
class CorpusCounts:
    counts: ExpectedCounts
    num_sentences: int
    failures: list[SentenceOutcome] = field(default_factory=list)

    @property
    def num_parsed(self) -> int:
        return self.num_sentences - len(self.failures)


def sentence_outcome(
    engine: InsideOutside,
    index: int,
    words: Sequence[Hashable],
    scorer: SpanScorer = SpanScorer.identity,
) -> SentenceOutcome:
    """Expected counts for one sentence as a typed outcome.

    Empty and unparsable sentences become failed outcomes. Every other
    error, including a unary closure error, propagates.
    """
    if len(words) == 0:
        return SentenceOutcome(index, reason="empty sentence")
    counts = engine.expected_counts(words, scorer)
    if not counts.parsable:
        return SentenceOutcome(index, reason="unparsable")
    return SentenceOutcome(index, counts=counts)


def _fold_chunk(engine, chunk, sentences, scorers):
    local = ExpectedCounts.zeros(engine.grammar)
    failures = []
    for i in chunk:
        outcome = sentence_outcome(engine, i, sentences[i], scorers[i])
        if outcome.ok:
            local += outcome.counts
        else:
            failures.append(outcome)
    return local, failures


def _chunks(num_items: int, num_chunks: int) -> list[range]:
    size, extra = divmod(num_items, num_chunks)
    out = []
    start = 0
    for c in range(num_chunks):
        stop = start + size + (1 if c < extra else 0)
        if stop > start:
            out.append(range(start, stop))
        start = stop
    return out


def _prepare(sentences, scorers):
    sentences = [list(s) for s in sentences]
    if scorers is None:
        scorers = [SpanScorer.identity] * len(sentences)
    else:
        scorers = list(scorers)
        if len(scorers) != len(sentences):
            raise ValueError(f"Got {len(scorers)} span scorers for {len(sentences)} sentences")
    return sentences, scorers


def _run_chunks(fn, num_items: int, max_workers: int | None) -> list:
    workers = max_workers or os.cpu_count() or 1
    chunks = _chunks(num_items, min(workers, num_items)) if num_items else []
    if workers == 1 or len(chunks) <= 1:
        return [fn(chunk) for chunk in chunks]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(fn, chunk) for chunk in chunks]
        try:
            return [f.result() for f in futures]
        except BaseException:
            for f in futures:
                f.cancel()
            raise


def corpus_expected_counts(
    engine: InsideOutside,
    sentences: Iterable[Sequence[Hashable]],
    scorers: Iterable[SpanScorer] | None = None,
    *,
    max_workers: int | None = None,
    max_failures: int | None = None,
) -> CorpusCounts:
    """Sum per-sentence expected counts over a corpus.

    Failed sentences are skipped and reported in `failures`; more than
    `max_failures` of them raises BatchFailedError. A UnaryClosureError in
    any task aborts the whole batch.
    """
    if max_failures is not None and max_failures < 0:
        raise ValueError(f"max_failures must be non-negative, got {max_failures}")
    sentences, scorers = _prepare(sentences, scorers)

    def task(chunk):
        return _fold_chunk(engine, chunk, sentences, scorers)

    total = ExpectedCounts.zeros(engine.grammar)
    failures: list[SentenceOutcome] = []
    for local, local_failures in _run_chunks(task, len(sentences), max_workers):
        total += local
        failures.extend(local_failures)

    for f in failures:
        logger.warning("Skipping sentence #%d: %s", f.index, f.reason)
    if max_failures is not None and len(failures) > max_failures:
        raise BatchFailedError(failures, max_failures)
    logger.info(
        "Expected counts over %d sentences (%d skipped), log-likelihood %.4f",
        len(sentences), len(failures), total.log_prob,
    )
    return CorpusCounts(total, len(sentences), failures)


def corpus_log_likelihood(
    builder: CKYChartBuilder,
    sentences: Iterable[Sequence[Hashable]],
    scorers: Iterable[SpanScorer] | None = None,
    *,
    max_workers: int | None = None,
) -> LogProb:
    """Sum of sentence inside log-probabilities; -inf if any is unparsable."""
    sentences, scorers = _prepare(sentences, scorers)
    root = builder.root_id

    def task(chunk):
        ll = 0.0
        for i in chunk:
            words = sentences[i]
            chart = builder.build_inside_chart(words, scorers[i])
            ll += chart.top.label_score(0, len(words), root)
        return ll

    ll = 0.0
    for part in _run_chunks(task, len(sentences), max_workers):
        ll += part
    if ll == LOG_ZERO:
        logger.warning("Corpus log-likelihood is -inf: some sentence is unparsable")
    return ll
