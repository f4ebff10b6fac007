import numpy as np
import pytest

from ssim_image_compressor import ssim_search
from ssim_image_compressor.encoder import Raster
from ssim_image_compressor.errors import DimensionMismatch
from ssim_image_compressor.results import Satisfied, Unsatisfiable


def tagged_encoder(size_of):
    """Buffers start with their quality so the fake scorer can read it back."""
    def encode(quality):
        return bytes([quality]) + bytes(max(0, size_of(quality) - 1))
    return encode


def scorer(similarity_of_quality, calls=None):
    def score(data):
        if calls is not None:
            calls.append(data[0])
        return similarity_of_quality(data[0])
    return score


@pytest.mark.parametrize('strategy,step', [('binary', 5), ('linear', 1)])
def test_highest_quality_meeting_both(strategy, step):
    encode = tagged_encoder(lambda q: 1000 * q)
    result = ssim_search.search(encode, scorer(lambda q: q / 100), 60_000, 0.5,
                                min_quality=1, max_quality=100, strategy=strategy, step=step)
    assert isinstance(result, Satisfied)
    assert result.quality == 60
    assert result.similarity == pytest.approx(0.6)
    assert result.unmet == ()
    assert not result.relaxed


@pytest.mark.parametrize('strategy', ['binary', 'linear'])
@pytest.mark.parametrize('ceiling,floor', [(30_000, 0.1), (45_000, 0.45), (80_000, 0.79), (90_000, 0.2)])
def test_never_accepts_below_floor_when_both_can_be_met(strategy, ceiling, floor):
    encode = tagged_encoder(lambda q: 1000 * q)
    result = ssim_search.search(encode, scorer(lambda q: q / 100), ceiling, floor,
                                min_quality=1, max_quality=100, strategy=strategy, step=1)
    assert result.satisfied and not result.relaxed
    assert result.similarity >= floor
    assert result.size <= ceiling
    assert result.quality == ceiling // 1000


def test_similarity_only_measured_on_fitting_probes():
    calls = []
    encode = tagged_encoder(lambda q: 1000 * q)
    ssim_search.search(encode, scorer(lambda q: q / 100, calls), 60_000, 0.5,
                       min_quality=1, max_quality=100)
    assert calls
    assert all(q <= 60 for q in calls)


def test_unsatisfiable_after_both_passes():
    # ceiling=50KB, floor 0.9, nothing in [50..90] fits or is similar enough
    encode = tagged_encoder(lambda q: 60_000 + 100 * q)
    result = ssim_search.search(encode, scorer(lambda q: 0.5), 50_000, 0.9,
                                min_quality=50, max_quality=90)
    assert isinstance(result, Unsatisfiable)
    qualities = [a.quality for a in result.attempts]
    # the relaxed pass climbs from 52 in half steps of 2
    assert qualities[-3:] == [86, 88, 90]
    assert 52 in qualities


def test_relaxed_pass_accepts_similar_but_oversized(caplog):
    encode = tagged_encoder(lambda q: 1000 * q)
    result = ssim_search.search(encode, scorer(lambda q: q / 100), 50_000, 0.9,
                                min_quality=50, max_quality=90)
    assert result.satisfied
    assert result.quality == 90
    assert result.unmet == ('size',)
    assert result.relaxed
    assert 'Relaxed acceptance' in caplog.text


def test_relaxed_pass_accepts_small_but_dissimilar():
    encode = tagged_encoder(lambda q: 500 * q)
    result = ssim_search.search(encode, scorer(lambda q: q / 200), 50_000, 0.9,
                                min_quality=50, max_quality=90)
    assert result.quality == 52
    assert result.unmet == ('similarity',)
    assert result.size <= 50_000


def test_gated_search_rejects_bad_floor():
    with pytest.raises(ValueError):
        ssim_search.search(tagged_encoder(lambda q: q), scorer(lambda q: 1.0), 100, 1.5)


def raster(pixels):
    pixels = np.asarray(pixels, dtype=np.uint8)
    return Raster(pixels, pixels.shape[1], pixels.shape[0])


@pytest.fixture
def gray():
    rng = np.random.default_rng(1)
    return rng.integers(0, 256, size=(32, 48), dtype=np.uint8)


def test_identical_rasters_score_one(gray):
    assert ssim_search.similarity(raster(gray), raster(gray.copy())) == 1.0


def test_alpha_channel_is_ignored(gray):
    rgb = np.stack([gray] * 3, axis=-1)
    rgba = np.concatenate([rgb, np.full(gray.shape + (1,), 128, dtype=np.uint8)], axis=-1)
    assert ssim_search.similarity(raster(rgb), raster(rgba)) == 1.0


def test_gray_against_rgb_normalises_channels(gray):
    rgb = np.stack([gray] * 3, axis=-1)
    assert ssim_search.similarity(raster(gray), raster(rgb)) == pytest.approx(1.0, abs=1e-6)


def test_similarity_is_symmetric_and_bounded(gray):
    rng = np.random.default_rng(2)
    noisy = np.clip(gray.astype(int) + rng.integers(-40, 40, size=gray.shape), 0, 255)
    a, b = raster(gray), raster(noisy)
    forward = ssim_search.similarity(a, b)
    assert 0.0 <= forward < 1.0
    assert ssim_search.similarity(b, a) == pytest.approx(forward)


def test_dimension_mismatch(gray):
    with pytest.raises(DimensionMismatch):
        ssim_search.similarity(raster(gray), raster(gray[:, :40]))


def test_tiny_rasters():
    a = raster([[0, 255], [255, 0]])
    b = raster([[0, 255], [255, 255]])
    assert ssim_search.similarity(a, b) == pytest.approx(0.75)


def test_linear_strategy_finds_isolated_similar_quality():
    # Similarity is not monotonic here: only quality 40 clears the floor
    encode = tagged_encoder(lambda q: 1000 * q)
    score = scorer(lambda q: 0.95 if q == 40 else 0.5)

    binary = ssim_search.search(encode, score, 60_000, 0.9, min_quality=1, max_quality=100)
    assert binary.relaxed
    assert binary.unmet == ('similarity',)

    linear = ssim_search.search(encode, score, 60_000, 0.9, min_quality=1, max_quality=100,
                                strategy='linear', step=1)
    assert (linear.quality, linear.unmet) == (40, ())
