# size_search.py
"""
Search for the highest JPEG quality whose output fits a byte ceiling.

Binary search is the canonical strategy. Linear descent is kept as a
reference for checking binary search on monotonic encoders, and the
half-step ascent is only used as the relaxed pass of the SSIM-gated search.

All strategies assume encoded size does not decrease as quality rises.
`check_monotonic` reports attempts that contradict this.
"""
import logging
from typing import Callable, Iterator, List, Optional

from .errors import SearchCancelled
from .results import (
    CompressionAttempt,
    Satisfied,
    Unsatisfiable,
    accepted_ceiling,
    validate_search_args,
)

STRATEGIES = ('binary', 'linear')
DEFAULT_STEP = 5


def _rank(attempt: CompressionAttempt) -> tuple:
    similarity = attempt.similarity if attempt.similarity is not None else -1.0
    return (attempt.quality, attempt.size, similarity)


class QualityProbe:
    """
    Runs encodes for a search and keeps only the best accepted buffer.

    `similarity_of` scores a candidate buffer; `measure_if` limits scoring
    to candidates whose size passes it.
    """

    def __init__(self, encode: Callable[[int], bytes],
                 similarity_of: Optional[Callable[[bytes], float]] = None,
                 measure_if: Optional[Callable[[int], bool]] = None,
                 cancel=None, attempts: Optional[List[CompressionAttempt]] = None):
        self.encode = encode
        self.similarity_of = similarity_of
        self.measure_if = measure_if
        self.cancel = cancel
        self.attempts = attempts if attempts is not None else []
        self.best = None
        self._best_data = None

    def __call__(self, quality: int):
        if self.cancel is not None and self.cancel.is_set():
            raise SearchCancelled(f"search cancelled before quality {quality}")
        data = self.encode(quality)
        similarity = None
        if self.similarity_of is not None and (self.measure_if is None or self.measure_if(len(data))):
            similarity = self.similarity_of(data)
        attempt = CompressionAttempt(quality, len(data), similarity)
        self.attempts.append(attempt)
        if similarity is None:
            logging.debug("Quality %d -> %d bytes", quality, attempt.size)
        else:
            logging.debug("Quality %d -> %d bytes, SSIM %.4f", quality, attempt.size, similarity)
        return attempt, data

    def keep(self, attempt: CompressionAttempt, data: bytes):
        if self.best is None or _rank(attempt) > _rank(self.best):
            self.best, self._best_data = attempt, data

    def result(self, unmet: tuple = ()):
        attempts = tuple(self.attempts)
        check_monotonic(attempts)
        if self.best is None:
            return Unsatisfiable(attempts=attempts)
        return Satisfied(
            quality=self.best.quality,
            size=self.best.size,
            data=self._best_data,
            similarity=self.best.similarity,
            attempts=attempts,
            unmet=unmet,
        )


def bisect_quality(probe: QualityProbe, fits: Callable, min_quality: int, max_quality: int,
                   accept: Optional[Callable] = None):
    """
    Binary search driven by `fits`; a fitting probe moves the search up.
    Fitting probes that also pass `accept` become candidates.
    """
    low, high = min_quality, max_quality
    while low <= high:
        mid = (low + high) // 2
        attempt, data = probe(mid)
        if fits(attempt):
            if accept is None or accept(attempt):
                probe.keep(attempt, data)
            low = mid + 1
        else:
            high = mid - 1


def descending_qualities(min_quality: int, max_quality: int, step: int) -> Iterator[int]:
    quality = max_quality
    while quality > min_quality:
        yield quality
        quality -= step
    yield min_quality


def descend_quality(probe: QualityProbe, accept: Callable, min_quality: int, max_quality: int,
                    step: int = DEFAULT_STEP):
    """Linear descent from max_quality; the first accepted attempt wins."""
    for quality in descending_qualities(min_quality, max_quality, step):
        attempt, data = probe(quality)
        if accept(attempt):
            probe.keep(attempt, data)
            return


def ascend_half_steps(probe: QualityProbe, accept: Callable, min_quality: int, max_quality: int,
                      step: int = DEFAULT_STEP):
    """Climb from min_quality + step//2 in half steps; the first accepted attempt wins."""
    half = max(1, step // 2)
    quality = min(min_quality + half, max_quality)
    while quality <= max_quality:
        attempt, data = probe(quality)
        if accept(attempt):
            probe.keep(attempt, data)
            return
        quality += half


def check_monotonic(attempts) -> bool:
    """Warn about any higher quality that encoded smaller than a lower one."""
    ordered = sorted({a.quality: a for a in attempts}.values(), key=lambda a: a.quality)
    monotonic = True
    for lower, higher in zip(ordered, ordered[1:]):
        if higher.size < lower.size:
            logging.warning(
                "Encoder size is not monotonic: quality %d -> %d bytes, quality %d -> %d bytes",
                lower.quality, lower.size, higher.quality, higher.size
            )
            monotonic = False
    return monotonic


def search(encode: Callable[[int], bytes], ceiling: int, min_quality: int = 1,
           max_quality: int = 100, tolerance: float = 0.0, strategy: str = 'binary',
           step: int = DEFAULT_STEP, cancel=None):
    """
    Find the highest quality in [min_quality, max_quality] whose encoded size
    is at most ceiling * (1 + tolerance). Returns Satisfied or Unsatisfiable.
    """
    validate_search_args(ceiling, min_quality, max_quality, tolerance)
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown strategy {strategy!r}")
    if step < 1:
        raise ValueError(f"step must be >= 1, got {step}")

    limit = accepted_ceiling(ceiling, tolerance)

    def fits(attempt):
        return attempt.size <= limit

    probe = QualityProbe(encode, cancel=cancel)
    if strategy == 'binary':
        bisect_quality(probe, fits, min_quality, max_quality)
    else:
        descend_quality(probe, fits, min_quality, max_quality, step)

    result = probe.result()
    if result.satisfied:
        logging.info("Accepted quality %d at %d bytes after %d encodes",
                     result.quality, result.size, len(result.attempts))
    else:
        logging.info("No quality in [%d..%d] fits %d bytes after %d encodes",
                     min_quality, max_quality, int(limit), len(result.attempts))
    return result
