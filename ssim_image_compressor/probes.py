# probes.py
import io
from dataclasses import dataclass

from PIL import Image

from .errors import EncodeFailure

# Formats whose encoder takes a quality parameter; MPO is a multi-picture JPEG
QUALITY_FORMATS = frozenset({'JPEG', 'MPO'})


@dataclass(frozen=True)
class ImageInfo:
    format: str
    width: int
    height: int
    mode: str

    @property
    def has_quality(self) -> bool:
        return self.format in QUALITY_FORMATS


def probe_image(data: bytes) -> ImageInfo:
    """Read the image header without decoding pixel data."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return ImageInfo(img.format or '', img.width, img.height, img.mode)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise EncodeFailure(f"unrecognised image: {exc}") from exc

