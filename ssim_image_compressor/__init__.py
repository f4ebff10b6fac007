# __init__.py
"""
ssim_image_compressor

A command-line toolkit for recompressing image trees under a byte budget.
Provides a binary search over JPEG quality, an optional SSIM floor with a
relaxed fallback pass, and a bounded worker pool that mirrors the source
tree into a target tree.
"""

__version__ = "0.1.0"
