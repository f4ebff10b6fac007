# compressor.py
"""
Request-level policy: keep inputs that already fit, otherwise run the size
search or the SSIM-gated search against a Pillow JPEG encoder.
"""
import logging

from . import size_search, ssim_search
from .encoder import decode_to_raster, make_jpeg_encoder
from .results import CompressionRequest, Satisfied
from .size_search import DEFAULT_STEP


def compress_image(request: CompressionRequest, strategy: str = 'binary', step: int = DEFAULT_STEP,
                   progressive: bool = False, keep_metadata: bool = True, cancel=None):
    """
    Return Satisfied or Unsatisfiable for `request`.

    An input at or under the ceiling comes back unchanged as
    Satisfied(quality=None) without any encode.
    """
    source_size = len(request.source)
    if source_size <= request.ceiling:
        logging.info("Input is %d bytes, within %d; no compression needed", source_size, request.ceiling)
        return Satisfied(quality=None, size=source_size, data=request.source)

    encode = make_jpeg_encoder(request.source, progressive=progressive, keep_metadata=keep_metadata)

    if request.similarity_floor is None:
        return size_search.search(
            encode, request.ceiling,
            min_quality=request.min_quality,
            max_quality=request.max_quality,
            tolerance=request.tolerance,
            strategy=strategy,
            step=step,
            cancel=cancel
        )

    original = decode_to_raster(request.source)
    return ssim_search.search(
        encode, ssim_search.similarity_to(original), request.ceiling,
        request.similarity_floor,
        min_quality=request.min_quality,
        max_quality=request.max_quality,
        tolerance=request.tolerance,
        strategy=strategy,
        step=step,
        cancel=cancel
    )
