import io

import numpy as np
import pytest
from PIL import Image


def noise_image(width=128, height=128, mode='RGB', seed=0):
    rng = np.random.default_rng(seed)
    channels = {'L': 1, 'RGB': 3, 'RGBA': 4}[mode]
    shape = (height, width) if channels == 1 else (height, width, channels)
    return Image.fromarray(rng.integers(0, 256, size=shape, dtype=np.uint8))


def image_bytes(img, fmt='JPEG', **options):
    buf = io.BytesIO()
    img.save(buf, format=fmt, **options)
    return buf.getvalue()


@pytest.fixture
def noise_jpeg():
    return image_bytes(noise_image(), 'JPEG', quality=95)


@pytest.fixture
def linear_encoder():
    """encode(q) of `full_size * q / 100` bytes, recording every quality asked for."""
    def factory(full_size):
        calls = []

        def encode(quality):
            calls.append(quality)
            return bytes(full_size * quality // 100)
        return encode, calls
    return factory
