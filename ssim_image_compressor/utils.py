# utils.py
import logging
import os
import re

SIZE_UNITS = {'': 1, 'B': 1, 'KB': 1024, 'K': 1024, 'MB': 1024 ** 2, 'M': 1024 ** 2, 'GB': 1024 ** 3, 'G': 1024 ** 3}
_SIZE_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([A-Za-z]*)\s*$')


def parse_size(text: str) -> int:
    """
    Parse a byte count such as '50000', '500KB' or '2MB' (binary units).
    """
    match = _SIZE_RE.match(str(text))
    if not match:
        raise ValueError(f"invalid size: {text!r}")
    number, unit = match.groups()
    unit = unit.upper()
    if unit not in SIZE_UNITS:
        raise ValueError(f"unknown size unit {unit!r} in {text!r}")
    size = int(float(number) * SIZE_UNITS[unit])
    if size <= 0:
        raise ValueError(f"size must be positive: {text!r}")
    return size


def parse_extensions(text: str) -> frozenset:
    exts = set()
    for part in text.split(','):
        part = part.strip().lower()
        if part:
            exts.add(part if part.startswith('.') else '.' + part)
    return frozenset(exts)


def dest_path_for(src: str, source_root: str, target_root: str) -> str:
    return os.path.join(target_root, os.path.relpath(src, source_root))


def setup_logging(verbose: bool, log_file: str = None):
    handlers = []
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    if verbose:
        handlers.append(logging.StreamHandler())
    if not handlers:
        handlers.append(logging.NullHandler())
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s %(message)s',
        handlers=handlers,
        force=True
    )
