# cli.py
"""
Command-line interface for ssim_image_compressor.

Parses arguments, runs the batch over the source tree and prints a summary.
"""
import argparse
import logging
import os

from .batch import DEFAULT_EXTENSIONS, BatchSettings, process_tree
from .errors import CompressionError
from .size_search import DEFAULT_STEP, STRATEGIES
from .utils import parse_extensions, parse_size, setup_logging


def _size_arg(text):
    try:
        return parse_size(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def _quality_arg(text):
    value = int(text)
    if not 1 <= value <= 100:
        raise argparse.ArgumentTypeError(f"quality must be 1-100, got {value}")
    return value


def build_parser():
    parser = argparse.ArgumentParser(
        prog='ssim-image-compressor',
        description='Recompress an image tree under a byte budget via JPEG quality binary search.'
    )
    parser.add_argument('source', help='Source directory')
    parser.add_argument('target', help='Target directory (mirrors the source tree)')
    parser.add_argument('--max-size', type=_size_arg, default='2MB', help='Byte ceiling per file, e.g. 50000 or 2MB')
    parser.add_argument('--ssim', type=float, default=None, help='Minimum SSIM against the original')
    parser.add_argument('--min-quality', dest='min_quality', type=_quality_arg, default=1, help='Min JPEG quality')
    parser.add_argument('--max-quality', dest='max_quality', type=_quality_arg, default=95, help='Max JPEG quality')
    parser.add_argument(
        '--tolerance', type=float, default=0.0,
        help='Accept sizes up to max-size * (1 + tolerance)'
    )
    parser.add_argument('--strategy', choices=STRATEGIES, default='binary', help='Quality search strategy')
    parser.add_argument(
        '--step', type=int, default=DEFAULT_STEP,
        help='Quality step for linear descent and the relaxed SSIM pass'
    )
    parser.add_argument(
        '--extensions', type=parse_extensions, default=DEFAULT_EXTENSIONS,
        help='Comma-separated extensions to recompress; other files are copied'
    )
    parser.add_argument('--workers', type=int, default=None, help='Max concurrent files')
    parser.add_argument('--timeout', type=float, default=None, help='Overall time limit in seconds')
    parser.add_argument('--progressive', action='store_true', help='Write progressive JPEGs')
    parser.add_argument(
        '--strip-metadata', dest='keep_metadata', action='store_false',
        help='Drop EXIF and ICC data from recompressed files'
    )
    parser.add_argument('--no-progress', dest='progress', action='store_false', help='Hide the progress bar')
    parser.add_argument('--log-file', help='Log file path')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.min_quality > args.max_quality:
        parser.error('--min-quality must not exceed --max-quality')
    if args.ssim is not None and not 0.0 <= args.ssim <= 1.0:
        parser.error('--ssim must be within 0..1')
    if args.tolerance < 0:
        parser.error('--tolerance must be >= 0')
    if args.step < 1:
        parser.error('--step must be >= 1')

    setup_logging(args.verbose, args.log_file)

    if not os.path.isdir(args.source):
        logging.error('Source directory not found: %s', args.source)
        print(f"Source directory not found: {args.source}")
        return 2

    settings = BatchSettings(
        ceiling=args.max_size,
        min_quality=args.min_quality,
        max_quality=args.max_quality,
        similarity_floor=args.ssim,
        tolerance=args.tolerance,
        strategy=args.strategy,
        step=args.step,
        progressive=args.progressive,
        keep_metadata=args.keep_metadata,
        extensions=args.extensions,
    )
    try:
        report = process_tree(
            args.source, args.target, settings,
            workers=args.workers,
            timeout=args.timeout,
            progress=args.progress
        )
    except CompressionError as exc:
        logging.error('Batch failed: %s', exc)
        print(f"Batch failed: {exc}")
        return 1

    tally = report.tally
    print(
        f"Processed {tally.processed} files: {tally.compressed} compressed, "
        f"{tally.copied} copied, {tally.errors} errors, {tally.cancelled} cancelled"
    )
    for outcome in report.outcomes:
        if outcome.error:
            print(f"  {outcome.source}: {outcome.error}")

    if report.stopped == 'interrupted':
        return 130
    return 1 if tally.errors or report.stopped else 0


if __name__ == '__main__':
    raise SystemExit(main())
