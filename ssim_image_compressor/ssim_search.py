# ssim_search.py
import logging
from typing import Callable

import numpy as np
from skimage.metrics import structural_similarity

from .encoder import Raster, decode_to_raster
from .errors import DimensionMismatch
from .results import accepted_ceiling, validate_search_args
from .size_search import (
    DEFAULT_STEP,
    STRATEGIES,
    QualityProbe,
    ascend_half_steps,
    bisect_quality,
    descend_quality,
)

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])


def to_luma(pixels: np.ndarray) -> np.ndarray:
    """Reduce L, LA, RGB or RGBA pixels to a float luminance plane, dropping alpha."""
    pixels = np.asarray(pixels, dtype=np.float64)
    if pixels.ndim == 2:
        return pixels
    if pixels.shape[2] < 3:
        return pixels[..., 0]
    return pixels[..., :3] @ LUMA_WEIGHTS


def similarity(a: Raster, b: Raster) -> float:
    """
    SSIM between two rasters on luminance, clamped to [0, 1].
    Rasters with different channel counts are compared on luma; rasters of
    different dimensions raise DimensionMismatch.
    """
    if (a.width, a.height) != (b.width, b.height):
        raise DimensionMismatch(
            f"cannot compare {a.width}x{a.height} with {b.width}x{b.height}"
        )
    luma_a, luma_b = to_luma(a.pixels), to_luma(b.pixels)
    if np.array_equal(luma_a, luma_b):
        return 1.0
    side = min(a.width, a.height)
    if side < 3:
        # Too small for a sliding window
        return float(max(0.0, 1.0 - np.mean(np.abs(luma_a - luma_b)) / 255.0))
    win_size = min(7, side if side % 2 else side - 1)
    score = structural_similarity(luma_a, luma_b, win_size=win_size, data_range=255.0)
    return float(min(1.0, max(0.0, score)))


def similarity_to(original: Raster) -> Callable[[bytes], float]:
    """Bind the original raster; the result scores candidate buffers."""
    def score(candidate: bytes) -> float:
        return similarity(original, decode_to_raster(candidate))
    return score


def search(encode: Callable[[int], bytes], similarity_of: Callable[[bytes], float], ceiling: int,
           similarity_floor: float, min_quality: int = 1, max_quality: int = 100,
           tolerance: float = 0.0, strategy: str = 'binary', step: int = DEFAULT_STEP, cancel=None):
    """
    Find the highest quality whose output fits the ceiling and scores at
    least `similarity_floor`. When no quality meets both, climb in half
    steps from min_quality + step//2 and take the first quality meeting
    either one; the missed constraint is recorded in the result's `unmet`.
    """
    validate_search_args(ceiling, min_quality, max_quality, tolerance)
    if not 0.0 <= similarity_floor <= 1.0:
        raise ValueError(f"similarity_floor must be within 0..1, got {similarity_floor}")
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown strategy {strategy!r}")
    if step < 1:
        raise ValueError(f"step must be >= 1, got {step}")

    limit = accepted_ceiling(ceiling, tolerance)

    def fits(attempt):
        return attempt.size <= limit

    def similar(attempt):
        return attempt.similarity is not None and attempt.similarity >= similarity_floor

    def both(attempt):
        return fits(attempt) and similar(attempt)

    strict = QualityProbe(encode, similarity_of, measure_if=lambda size: size <= limit, cancel=cancel)
    if strategy == 'binary':
        bisect_quality(strict, fits, min_quality, max_quality, accept=both)
    else:
        descend_quality(strict, both, min_quality, max_quality, step)

    if strict.best is not None:
        result = strict.result()
        logging.info("Accepted quality %d at %d bytes, SSIM %.4f", result.quality, result.size, result.similarity)
        return result

    logging.info(
        "No quality in [%d..%d] fits %d bytes with SSIM >= %.4f; trying relaxed pass",
        min_quality, max_quality, int(limit), similarity_floor
    )
    loose = QualityProbe(encode, similarity_of, cancel=cancel, attempts=strict.attempts)
    ascend_half_steps(loose, lambda a: fits(a) or similar(a), min_quality, max_quality, step)
    if loose.best is None:
        result = loose.result()
        logging.info("Relaxed pass found nothing after %d encodes", len(result.attempts))
        return result

    unmet = tuple(name for name, met in (('size', fits(loose.best)), ('similarity', similar(loose.best)))
                  if not met)
    result = loose.result(unmet=unmet)
    logging.warning(
        "Relaxed acceptance at quality %d: %d bytes, SSIM %.4f, missing %s",
        result.quality, result.size, result.similarity, ', '.join(unmet)
    )
    return result
