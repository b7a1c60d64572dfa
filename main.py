"""
clickscan CLI entrypoint.

Responsibility:
    Parse command-line arguments, configure the application, wire the
    pipeline to its default collaborators, and run one detection cycle.

Usage:
    python main.py --image qr.png --x 120 --y 80 --ref-width 300 --ref-height 300 \\
        --viewport-width 1280 --viewport-height 720
    python main.py --screenshot page.png --x 640 --y 360 \\
        --viewport-width 1280 --viewport-height 720 --region under-cursor
    python main.py --config my_config.yaml ...
    python main.py --json ...          # outcome plus code corners as JSON

This module is the executable entry point. It should not be imported
by other modules.
"""

import argparse
import asyncio
import json
import logging
import sys

from clickscan.config import ConfigProvider
from clickscan.decoder import OpenCVDecoder
from clickscan.detection import DetectionTrigger
from clickscan.dispatch import Dispatcher
from clickscan.pipeline import DetectionPipeline
from clickscan.raster_source import RasterSource, file_viewport_capture
from clickscan.sequencer import CycleStatus
from clickscan.surfaces import ClipboardCopySurface, WebbrowserOpenSurface

logger = logging.getLogger("main")


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="clickscan: decode the codes under a click and dispatch them",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("--image", type=str, help="URL or path of the image under the click.")
    parser.add_argument(
        "--screenshot",
        type=str,
        help="Viewport screenshot used whenever the region needs a page capture.",
    )
    parser.add_argument("--x", type=float, required=True, help="Click x in the reference rectangle.")
    parser.add_argument("--y", type=float, required=True, help="Click y in the reference rectangle.")
    parser.add_argument("--ref-width", type=float, help="Reference rectangle width (defaults to viewport).")
    parser.add_argument("--ref-height", type=float, help="Reference rectangle height (defaults to viewport).")
    parser.add_argument("--ref-left", type=float, default=0.0, help="Reference rectangle left offset in the viewport.")
    parser.add_argument("--ref-top", type=float, default=0.0, help="Reference rectangle top offset in the viewport.")
    parser.add_argument("--viewport-width", type=float, required=True, help="Viewport width.")
    parser.add_argument("--viewport-height", type=float, required=True, help="Viewport height.")
    parser.add_argument("--config", type=str, help="Path to YAML configuration file.")
    parser.add_argument(
        "--region",
        type=str,
        choices=["dom-element", "whole-page", "under-cursor"],
        help="Detect region. Overrides config.",
    )
    parser.add_argument("--tolerance", type=float, help="Cursor tolerance in CSS pixels. Overrides config.")
    parser.add_argument("--no-open", action="store_true", help="Do not open URLs.")
    parser.add_argument("--no-copy", action="store_true", help="Do not copy to the clipboard.")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the outcome and the codes under the click as JSON.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )

    return parser.parse_args()


def build_trigger(args: argparse.Namespace) -> DetectionTrigger:
    """Build the trigger; without an element box the viewport is the reference."""
    return DetectionTrigger(
        x=args.x,
        y=args.y,
        ref_width=args.ref_width or args.viewport_width,
        ref_height=args.ref_height or args.viewport_height,
        viewport_width=args.viewport_width,
        viewport_height=args.viewport_height,
        source_image_url=args.image,
        ref_left=args.ref_left,
        ref_top=args.ref_top,
    )


async def run(args: argparse.Namespace, config: ConfigProvider) -> int:
    """Run a single detection cycle and report its outcome."""
    try:
        trigger = build_trigger(args)
        source = RasterSource(
            viewport_capture=file_viewport_capture(args.screenshot) if args.screenshot else None,
        )
        decoder = OpenCVDecoder()
        dispatcher = Dispatcher(WebbrowserOpenSurface(), ClipboardCopySurface())
    except (ValueError, RuntimeError) as e:
        logger.error("Initialization failed: %s", e)
        return 1

    try:
        async with DetectionPipeline(config, source, decoder, dispatcher) as pipeline:
            cycle = pipeline.submit(trigger)
            outcome = await cycle.wait()
            await pipeline.badge.settle()
    finally:
        await source.aclose()

    logger.info(
        "Outcome: %s. Opened %d, copied %d.",
        outcome.status.value, len(outcome.opened), len(outcome.copied),
    )
    if args.json:
        print(json.dumps({
            "status": outcome.status.value,
            "decoded_count": outcome.decoded_count,
            "codes": [barcode.to_dict() for barcode in cycle.relevant],
            "opened": list(outcome.opened),
            "copied": list(outcome.copied),
        }, indent=2))
    else:
        for payload in outcome.copied or outcome.opened:
            print(payload)

    return 0 if outcome.status in (CycleStatus.COMPLETED, CycleStatus.NO_RASTER) else 2


def main() -> int:
    """Main execution."""
    args = parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    # 1. Load Configuration (CLI args > ENV > YAML > Defaults)
    try:
        config = ConfigProvider.from_file(args.config)

        if args.region is not None:
            config.update("region", detect_region=args.region)
        if args.tolerance is not None:
            config.update("region", tolerance=args.tolerance)
        if args.no_open:
            config.update("open", enabled=False)
        if args.no_copy:
            config.update("copy", enabled=False)

        config.snapshot()
        logger.info("Configuration active for this run.")

    except Exception as e:
        logger.error("Configuration error: %s", e)
        return 1

    # 2. Run
    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
