"""
Command-line entry point: quantize one or more images to K colours.

    kmeans-quantize photo.png -k 8 --output-dir out/
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from models.errors import KMeansError
from models.settings import QuantizerSettings
from pipeline.quantize import quantize_files, quantize_gallery
from services.kmeans_service import KMeansService

logger = logging.getLogger("kmeans-quantize")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kmeans-quantize",
        description="Reduce images to a K-colour palette with GPU k-means.",
    )
    parser.add_argument("inputs", nargs="+", help="image files or folders to quantize")
    parser.add_argument("-k", "--colors", type=int, required=True, dest="k",
                        help="palette size (1 <= K <= pixel count)")
    parser.add_argument("--seed", type=int, default=None, help="initializer seed (default: KMEANS_SEED or 42)")
    parser.add_argument("--max-iterations", type=int, default=None, help="iteration ceiling (default 30)")
    parser.add_argument("--tolerance", type=float, default=None, help="convergence tolerance in [0,1] colour units")
    parser.add_argument("--device", choices=["auto", "cuda", "mps", "cpu"], default=None)
    parser.add_argument("--channels", default=None, help="channels used for distance, e.g. rgba or rgb")
    parser.add_argument("--output-dir", default="quantized", help="where to write results")
    parser.add_argument("-r", "--recursive", action="store_true", help="descend into sub-folders of folder inputs")
    parser.add_argument("--progress", action="store_true", default=None, help="show a per-iteration progress bar")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # --- Centralized Logging Configuration ---
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s',
        datefmt='%H:%M:%S'
    )

    try:
        settings = QuantizerSettings.from_env(
            seed=args.seed,
            max_iterations=args.max_iterations,
            tolerance=args.tolerance,
            device=args.device,
            distance_channels=args.channels,
            show_progress=args.progress,
        )
    except ValueError as err:
        logger.error(f"Invalid configuration: {err}")
        return 2

    try:
        service = KMeansService(settings)
        files = [p for p in args.inputs if not Path(p).is_dir()]
        written = quantize_files(files, args.k, args.output_dir, kmeans_service=service)
        for folder in (p for p in args.inputs if Path(p).is_dir()):
            written += quantize_gallery(folder, args.k, args.output_dir,
                                        recursive=args.recursive, kmeans_service=service)
    except KMeansError as err:
        logger.error(f"{type(err).__name__}: {err}")
        return 1

    if not written:
        logger.error("No images were quantized")
        return 1
    logger.info(f"Wrote {len(written)} image(s) to {args.output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
