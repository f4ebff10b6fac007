# encoder.py
import io
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from PIL import Image

from .errors import DecodeFailure, EncodeFailure

# Modes the JPEG encoder accepts without conversion
JPEG_MODES = ('L', 'RGB', 'CMYK')
RASTER_MODES = ('L', 'LA', 'RGB', 'RGBA')


@dataclass(frozen=True)
class Raster:
    pixels: np.ndarray
    width: int
    height: int

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else self.pixels.shape[2]


def open_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def make_jpeg_encoder(source: bytes, progressive: bool = False, subsampling: Optional[int] = None,
                      keep_metadata: bool = True) -> Callable[[int], bytes]:
    """
    Decode `source` once and return encode(quality) -> JPEG bytes.
    Every call encodes into a fresh in-memory buffer.
    """
    try:
        img = open_image(source)
        info = dict(img.info)
        if img.mode not in JPEG_MODES:
            img = img.convert('RGB')
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise EncodeFailure(f"cannot open image: {exc}") from exc

    options = {'optimize': True, 'progressive': progressive}
    if subsampling is not None:
        options['subsampling'] = subsampling
    if keep_metadata:
        if info.get('exif'):
            options['exif'] = info['exif']
        if info.get('icc_profile'):
            options['icc_profile'] = info['icc_profile']

    def encode(quality: int) -> bytes:
        buf = io.BytesIO()
        try:
            img.save(buf, format='JPEG', quality=quality, **options)
        except (OSError, ValueError) as exc:
            raise EncodeFailure(f"JPEG encode failed at quality {quality}: {exc}") from exc
        return buf.getvalue()

    return encode


def decode_to_raster(data: bytes) -> Raster:
    """Decode image bytes to an 8-bit pixel array (L, LA, RGB or RGBA)."""
    try:
        img = open_image(data)
        if img.mode not in RASTER_MODES:
            img = img.convert('RGBA' if 'A' in img.getbands() else 'RGB')
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeFailure(f"cannot decode image: {exc}") from exc
    return Raster(np.asarray(img), img.width, img.height)
