"""Disc-light tracer: CLI entry point.

Renders the 2-D disc-light scene by sphere tracing and writes a PNG.

Usage
-----
    python main.py                               # 512x512, 4 workers
    python main.py --width 256 --height 256 --workers 8
    python main.py --sequential --samples 16 --seed 7
    python main.py --save-data --output output/frame.png
    python main.py --encode-only --data-dir output   # re-encode saved frame
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging."""
    fmt = "%(name)s [%(levelname)s] %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        stream=sys.stdout,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="disc-tracer",
        description="Disc-light tracer: 2-D sphere tracing with Monte Carlo sampling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python main.py\n"
            "  python main.py --workers 8 --samples 128\n"
            "  python main.py --sequential --width 64 --height 64\n"
            "  python main.py --encode-only --data-dir output\n"
        ),
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/default_config.yaml",
        help="Path to render config YAML (default: config/default_config.yaml)",
    )
    parser.add_argument("--width", type=int, default=None, help="Image width (default: from config)")
    parser.add_argument("--height", type=int, default=None, help="Image height (default: from config)")
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker processes (default: from config)",
    )
    parser.add_argument(
        "--samples",
        type=int,
        default=None,
        help="Rays per pixel (default: from config)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Root random seed (default: from config)")
    parser.add_argument(
        "--strategy",
        type=str,
        default=None,
        choices=["jittered", "uniform", "random"],
        help="Ray angle pattern (default: from config)",
    )
    parser.add_argument(
        "--sequential",
        action="store_true",
        default=False,
        help="Render in this process instead of the worker pool",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output PNG path (default: from config)",
    )
    parser.add_argument(
        "--save-data",
        action="store_true",
        default=False,
        help="Also save the raw frame buffer and metadata next to the image",
    )
    parser.add_argument(
        "--encode-only",
        action="store_true",
        default=False,
        help="Skip rendering; encode a frame saved with --save-data",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Directory for --save-data / --encode-only (default: output image's directory)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main render entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    logger = logging.getLogger("disc_tracer")
    logger.info("=" * 60)
    logger.info("  Disc-Light Tracer")
    logger.info("=" * 60)

    from tracer_core.constants import (
        apply_overrides,
        load_config,
        log_platform_info,
        log_policies,
    )
    from rendering.io_manager import load_results, save_results
    from rendering.scheduler import (
        ParallelRenderer,
        RenderError,
        SharedBufferError,
        render_sequential,
    )
    from visualization.png_writer import write_png

    config = load_config(Path(args.config))
    config = apply_overrides(
        config,
        width=args.width,
        height=args.height,
        worker_count=args.workers,
        num_samples=args.samples,
        strategy=args.strategy,
        seed=args.seed,
        output_path=args.output,
    )
    output_path = Path(config.output.path)
    data_dir = Path(args.data_dir) if args.data_dir else output_path.parent

    # --encode-only mode: skip rendering, just re-encode saved data
    if args.encode_only:
        logger.info("Encode-only mode: loading saved frame from %s/", data_dir)
        saved = load_results(data_dir)
        write_png(output_path, saved["width"], saved["height"], saved["buffer"])
        return 0

    log_platform_info()
    log_policies(config)

    try:
        if args.sequential:
            result = render_sequential(config)
        else:
            result = ParallelRenderer(config).render()
    except (RenderError, SharedBufferError) as exc:
        logger.error("%s", exc)
        logger.error("No image written.")
        return 1

    write_png(output_path, result.width, result.height, result.buffer)
    if args.save_data:
        save_results(data_dir, result.buffer, result.width, result.height, result.metadata)

    meta = result.metadata
    image = result.image[:, :, 0]
    logger.info("=" * 60)
    logger.info("  RENDER COMPLETE")
    logger.info("=" * 60)
    logger.info("  Mode: %s (%d worker(s))", meta["mode"], meta["worker_count"])
    logger.info("  Size: %dx%d, N=%d, seed=%d", result.width, result.height,
                meta["num_samples"], meta["seed"])
    logger.info("  Wall time: %.2f s", meta["wall_time_s"])
    logger.info(
        "  Intensity: min=%d, max=%d, mean=%.1f",
        image.min(), image.max(), image.mean(),
    )
    logger.info("  SHA-256: %s", meta["buffer_sha256"])
    logger.info("  Output: %s", output_path)
    logger.info("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
