# batch.py
"""
Mirror a source tree into a target tree, recompressing images on a bounded
worker pool. Each file yields a FileOutcome; the caller folds outcomes into
a Tally, so workers share nothing but the cancel event.
"""
import concurrent.futures
import contextlib
import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass, field, replace
from typing import List, Optional

from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from .compressor import compress_image
from .errors import CompressionError, IOFailure, SearchCancelled
from .probes import probe_image
from .results import CompressionRequest
from .size_search import DEFAULT_STEP
from .utils import dest_path_for

DEFAULT_EXTENSIONS = frozenset({'.jpg', '.jpeg'})

COMPRESSED = 'compressed'
COPIED = 'copied'
ERROR = 'error'
CANCELLED = 'cancelled'


@dataclass(frozen=True)
class BatchSettings:
    ceiling: int
    min_quality: int = 1
    max_quality: int = 95
    similarity_floor: Optional[float] = None
    tolerance: float = 0.0
    strategy: str = 'binary'
    step: int = DEFAULT_STEP
    progressive: bool = False
    keep_metadata: bool = True
    extensions: frozenset = DEFAULT_EXTENSIONS


@dataclass(frozen=True)
class FileOutcome:
    source: str
    dest: str
    action: str
    result: object = None
    error: Optional[str] = None


@dataclass(frozen=True)
class Tally:
    processed: int = 0
    compressed: int = 0
    copied: int = 0
    errors: int = 0
    cancelled: int = 0

    def fold(self, outcome: FileOutcome) -> 'Tally':
        counter = {COMPRESSED: 'compressed', COPIED: 'copied', ERROR: 'errors', CANCELLED: 'cancelled'}[outcome.action]
        changes = {counter: getattr(self, counter) + 1}
        if outcome.action != CANCELLED:
            changes['processed'] = self.processed + 1
        return replace(self, **changes)


@dataclass
class BatchReport:
    tally: Tally = field(default_factory=Tally)
    outcomes: List[FileOutcome] = field(default_factory=list)
    # 'timeout' or 'interrupted' when the batch was stopped early
    stopped: Optional[str] = None

    def add(self, outcome: FileOutcome):
        self.tally = self.tally.fold(outcome)
        self.outcomes.append(outcome)


def collect_sources(source_root: str, target_root: str = None) -> list:
    """All files under source_root in walk order, skipping target_root if nested."""
    skip = os.path.realpath(target_root) if target_root else None
    sources = []
    for dirpath, dirnames, filenames in os.walk(source_root):
        dirnames[:] = sorted(d for d in dirnames if os.path.realpath(os.path.join(dirpath, d)) != skip)
        sources.extend(os.path.join(dirpath, name) for name in sorted(filenames))
    return sources


def mirror_directories(source_root: str, target_root: str):
    skip = os.path.realpath(target_root)
    for dirpath, dirnames, _ in os.walk(source_root):
        dirnames[:] = [d for d in dirnames if os.path.realpath(os.path.join(dirpath, d)) != skip]
        try:
            os.makedirs(dest_path_for(dirpath, source_root, target_root), exist_ok=True)
        except OSError as exc:
            raise IOFailure(f"cannot create directory for {dirpath}: {exc}") from exc


def _read(path: str) -> bytes:
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as exc:
        raise IOFailure(f"cannot read {path}: {exc}") from exc


def _write(path: str, data: bytes):
    """Write into a sibling temp file and rename it over `path`."""
    directory = os.path.dirname(path)
    tmp = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix='.', suffix='.part')
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp, path)
        tmp = None
    except OSError as exc:
        raise IOFailure(f"cannot write {path}: {exc}") from exc
    finally:
        if tmp is not None:
            with contextlib.suppress(FileNotFoundError):
                os.remove(tmp)


def _copy(src: str, dest: str):
    try:
        os.makedirs(os.path.dirname(dest), exist_ok=True)
        shutil.copy2(src, dest)
    except OSError as exc:
        raise IOFailure(f"cannot copy {src} to {dest}: {exc}") from exc


def _compress_or_copy(src: str, dest: str, settings: BatchSettings, cancel) -> FileOutcome:
    if os.path.splitext(src)[1].lower() not in settings.extensions:
        _copy(src, dest)
        logging.info("Copied %s (extension not selected)", src)
        return FileOutcome(src, dest, COPIED)

    data = _read(src)
    if len(data) > settings.ceiling:
        info = probe_image(data)
        if not info.has_quality:
            _copy(src, dest)
            logging.info("Copied %s (%s has no quality setting)", src, info.format)
            return FileOutcome(src, dest, COPIED)
        logging.info("Compressing %s: %dx%d %s, %d bytes", src, info.width, info.height, info.format, len(data))

    request = CompressionRequest(
        source=data,
        ceiling=settings.ceiling,
        min_quality=settings.min_quality,
        max_quality=settings.max_quality,
        similarity_floor=settings.similarity_floor,
        tolerance=settings.tolerance,
    )
    result = compress_image(
        request,
        strategy=settings.strategy,
        step=settings.step,
        progressive=settings.progressive,
        keep_metadata=settings.keep_metadata,
        cancel=cancel
    )

    if result.satisfied and result.relaxed and result.size >= len(data):
        logging.warning(
            "Relaxed result for %s is %d bytes, not smaller than the original %d; copying original",
            src, result.size, len(data)
        )
        _copy(src, dest)
        return FileOutcome(src, dest, COPIED, result)

    if result.satisfied and not result.passthrough:
        _write(dest, result.data)
        logging.info("Compressed %s: quality %d, %d -> %d bytes", src, result.quality, len(data), result.size)
        return FileOutcome(src, dest, COMPRESSED, result)

    if not result.satisfied:
        logging.warning("Could not fit %s under %d bytes; copying original", src, settings.ceiling)
    _copy(src, dest)
    return FileOutcome(src, dest, COPIED, result)


def process_file(src: str, dest: str, settings: BatchSettings, cancel=None) -> FileOutcome:
    """
    Write exactly one output for `src` at `dest`: the accepted encode or an
    unmodified copy. Per-file failures are logged and returned, not raised.
    """
    if cancel is not None and cancel.is_set():
        return FileOutcome(src, dest, CANCELLED)
    try:
        return _compress_or_copy(src, dest, settings, cancel)
    except SearchCancelled:
        logging.info("Cancelled %s", src)
        return FileOutcome(src, dest, CANCELLED)
    except CompressionError as exc:
        logging.error("Failed %s: %s: %s", src, type(exc).__name__, exc)
        return FileOutcome(src, dest, ERROR, error=f"{type(exc).__name__}: {exc}")


def process_tree(source_root: str, target_root: str, settings: BatchSettings, workers: int = None,
                 timeout: float = None, progress: bool = True) -> BatchReport:
    """
    Process every file under source_root into the mirrored location under
    target_root with at most `workers` searches in flight. A timeout (in
    seconds, for the whole batch) or Ctrl-C stops searches between attempts.
    """
    mirror_directories(source_root, target_root)
    sources = collect_sources(source_root, target_root)
    logging.info("Found %d files under %s", len(sources), source_root)

    report = BatchReport()
    cancel = threading.Event()
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers)
    futures = {}
    try:
        for src in sources:
            dest = dest_path_for(src, source_root, target_root)
            futures[executor.submit(process_file, src, dest, settings, cancel)] = (src, dest)
        with logging_redirect_tqdm(), tqdm(total=len(futures), unit='img', disable=not progress) as bar:
            for fut in concurrent.futures.as_completed(futures, timeout=timeout):
                report.add(fut.result())
                del futures[fut]
                bar.update(1)
    except concurrent.futures.TimeoutError:
        logging.warning("Batch timed out after %s seconds; cancelling %d files", timeout, len(futures))
        report.stopped = 'timeout'
    except KeyboardInterrupt:
        logging.warning("Interrupted; cancelling %d files", len(futures))
        report.stopped = 'interrupted'
    finally:
        if report.stopped:
            cancel.set()
        executor.shutdown(wait=True, cancel_futures=bool(report.stopped))

    for fut, (src, dest) in futures.items():
        if fut.cancelled() or isinstance(fut.exception(), KeyboardInterrupt):
            report.add(FileOutcome(src, dest, CANCELLED))
        else:
            report.add(fut.result())
    return report
