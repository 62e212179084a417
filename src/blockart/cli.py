"""
Command-Line Interface for Block Art Generator

Usage:
    blockart picture.png -c blocks.json -o packs/
    blockart picture.png -c blocks.json --mode structure --plane xz_y
    blockart clip.mp4 -c blocks.json --mode video --detach --max-frames 100
    blockart picture.png -c blocks.json --mode preview --texture-dir textures/

"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional
import time

from . import __version__
from .catalog import ATTRIBUTE_KEYS, Attribute, Version, refresh_catalog_colors
from .color import ColorMetric
from .generator import BlockArtGenerator, BatchProcessor
from .pack import PackManifest, PackType
from .planes import Plane


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="blockart",
        description="Block Art Generator - Convert pictures and videos into block builds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  blockart picture.png -c blocks.json -o packs/
      Function pack that places the picture over successive ticks

  blockart picture.png -c blocks.json --mode structure --plane xz_y
      Structure pack with the picture lying flat

  blockart clip.mp4 -c blocks.json --mode video --detach
      One structure per frame, played back by a marker entity

  blockart -c blocks.json --batch pictures/ -o packs/
      Batch convert all PNGs in a directory

  blockart -c blocks.json --refresh-colors textures/
      Recompute catalog colours from texture files

Modes:
  function   - Chunked fill commands run by a tick function (default)
  structure  - Single structure file
  video      - Video frames as structure(s)
  preview    - Texture mosaic image only

Planes:
  xy_z  - Upright, facing z (default)
  zy_x  - Upright, facing x
  xz_y  - Lying flat
        """
    )

    # Input
    parser.add_argument(
        "input",
        nargs="?",
        help="Input image or video file"
    )

    parser.add_argument(
        "-c", "--catalog",
        required=True,
        help="Block catalog JSON file"
    )

    # Output
    parser.add_argument(
        "-o", "--output-dir",
        help="Output directory (default: next to the input)"
    )

    parser.add_argument(
        "-m", "--mode",
        choices=["function", "structure", "video", "preview"],
        default="function",
        help="What to generate (default: function)"
    )

    parser.add_argument(
        "--name",
        help="Pack name (default: input file name)"
    )

    parser.add_argument(
        "--prefix",
        help="Function/structure namespace, folded to [a-z0-9_] (default: pack name)"
    )

    parser.add_argument(
        "--description",
        default="",
        help="Pack description"
    )

    parser.add_argument(
        "--pack-type",
        choices=["data", "resources"],
        default="data",
        help="Manifest module type (default: data)"
    )

    parser.add_argument(
        "--pack-version",
        default="1.0.0",
        help="Pack version written to the manifest (default: 1.0.0)"
    )

    parser.add_argument(
        "--engine-version",
        default="1.19.70",
        help="Minimum engine version (default: 1.19.70)"
    )

    parser.add_argument(
        "--no-compress",
        action="store_true",
        help="Leave the pack as a directory instead of an .mcpack file"
    )

    # Conversion settings
    parser.add_argument(
        "-p", "--plane",
        choices=[plane.value for plane in Plane],
        default=Plane.XY_Z.value,
        help="Build orientation (default: xy_z)"
    )

    parser.add_argument(
        "--metric",
        choices=[metric.value for metric in ColorMetric],
        default=ColorMetric.PERCEPTUAL.value,
        help="Color similarity weighting (default: perceptual)"
    )

    parser.add_argument(
        "--max-width",
        type=int,
        default=480,
        help="Maximum width in blocks, -1 for unbounded (default: 480)"
    )

    parser.add_argument(
        "--max-height",
        type=int,
        default=270,
        help="Maximum height in blocks, -1 for unbounded (default: 270)"
    )

    parser.add_argument(
        "--max-frames",
        type=int,
        default=200,
        help="Maximum video frames, -1 for all (default: 200)"
    )

    parser.add_argument(
        "--chunk-size",
        type=int,
        default=9000,
        help="Commands per function file (default: 9000)"
    )

    parser.add_argument(
        "--legacy-execute",
        action="store_true",
        help="Use the pre-1.19.50 execute syntax"
    )

    parser.add_argument(
        "--detach",
        action="store_true",
        help="Video mode: one structure per frame"
    )

    # Palette filtering
    parser.add_argument(
        "--min-version",
        default="0.0.0",
        help="Skip blocks that debuted before this version (default: 0.0.0)"
    )

    parser.add_argument(
        "--exclude",
        nargs="+",
        choices=list(ATTRIBUTE_KEYS),
        default=[],
        help="Skip blocks with these attributes"
    )

    # Preview
    parser.add_argument(
        "--texture-dir",
        help="Texture directory for preview images"
    )

    parser.add_argument(
        "--tile",
        type=int,
        default=16,
        help="Preview pixels per block (default: 16)"
    )

    # Catalog maintenance
    parser.add_argument(
        "--refresh-colors",
        metavar="TEXTURE_DIR",
        help="Recompute catalog colours from textures and exit"
    )

    # Batch processing
    parser.add_argument(
        "--batch",
        help="Batch process directory of images"
    )

    parser.add_argument(
        "--pattern",
        default="*.png",
        help="File pattern for batch processing (default: *.png)"
    )

    # Misc
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with debug logging"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print block usage statistics"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def get_attribute_mask(excluded: List[str]) -> Attribute:
    """Allowed attribute bits after removing the excluded ones."""
    mask = Attribute.ALL
    for key in excluded:
        mask &= ~ATTRIBUTE_KEYS[key]
    return mask


def create_generator(args) -> BlockArtGenerator:
    """Build a generator from parsed arguments."""
    return BlockArtGenerator.from_catalog(
        args.catalog,
        plane=Plane.parse(args.plane),
        attribute=get_attribute_mask(args.exclude),
        min_version=Version.parse(args.min_version),
        max_width=args.max_width,
        max_height=args.max_height,
        max_frames=args.max_frames,
        max_chunk_size=args.chunk_size,
        metric=ColorMetric(args.metric),
        legacy_execute=args.legacy_execute
    )


def create_manifest(args, name: str) -> PackManifest:
    return PackManifest(
        name=name,
        description=args.description,
        prefix=args.prefix or "",
        pack_type=PackType(args.pack_type),
        version=Version.parse(args.pack_version),
        min_engine_version=Version.parse(args.engine_version)
    )


def print_stats(generator: BlockArtGenerator, top: int = 10):
    info = generator.preview()
    print("\nBlock Statistics:")
    print(f"  Palette size: {info['palette_size']}")
    if "logical_size" in info:
        print(f"  Build size: {info['logical_size']}")
        print(f"  Block types used: {info['block_types']}")
    for block_id, count in generator.usage_report(top):
        print(f"  {block_id}: {count}")


def report_error(args, e: Exception) -> int:
    print(f"Error: {e}", file=sys.stderr)
    if args.verbose:
        import traceback
        traceback.print_exc()
    return 1


def process_single(args) -> int:
    """Process a single image or video file."""
    if not args.input:
        print("Error: No input file specified", file=sys.stderr)
        return 1

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir) if args.output_dir else input_path.parent
    name = args.name or input_path.stem

    start_time = time.time()

    try:
        generator = create_generator(args)

        if args.verbose:
            print(f"Loading: {input_path}")

        if args.mode == "video":
            generator.load_video(input_path)
        else:
            generator.load_image(input_path)

        generator.voxelize()

        if args.stats or args.verbose:
            print_stats(generator)

        if args.mode == "preview":
            output_dir.mkdir(parents=True, exist_ok=True)
            output_path = output_dir / f"{name}_preview.png"
            generator.render_preview(args.texture_dir, args.tile).save(output_path)
        else:
            manifest = create_manifest(args, name)
            if args.mode == "function":
                tree = generator.build_function_pack(manifest)
            elif args.mode == "structure":
                tree = generator.build_structure_pack(manifest)
            else:
                tree = generator.build_video_pack(manifest, detach=args.detach)
            output_path = generator.export(tree, output_dir, compress=not args.no_compress)

        print(f"Exported: {output_path}")

        elapsed = time.time() - start_time
        if args.verbose:
            print(f"\nCompleted in {elapsed:.2f}s")

        return 0

    except Exception as e:
        return report_error(args, e)


def process_batch(args) -> int:
    """Process a batch of images."""
    batch_dir = Path(args.batch)
    if not batch_dir.is_dir():
        print(f"Error: Batch directory not found: {batch_dir}", file=sys.stderr)
        return 1

    if args.mode not in BatchProcessor.MODES:
        print(f"Error: Batch mode must be one of {', '.join(BatchProcessor.MODES)}",
              file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir) if args.output_dir else batch_dir / "output"

    start_time = time.time()

    try:
        plane = Plane.parse(args.plane)
        palette_source = create_generator(args)
        processor = BatchProcessor(
            palette=palette_source.palette,
            max_width=args.max_width,
            max_height=args.max_height,
            max_chunk_size=args.chunk_size,
            plane=plane,
            metric=ColorMetric(args.metric),
            legacy_execute=args.legacy_execute
        )

        report = processor.process_directory(
            batch_dir,
            output_dir,
            mode=args.mode,
            pattern=args.pattern,
            compress=not args.no_compress,
            description=args.description,
            pack_type=PackType(args.pack_type),
            version=Version.parse(args.pack_version),
            min_engine_version=Version.parse(args.engine_version)
        )

        elapsed = time.time() - start_time
        print(f"Processed {len(report.outputs)} files in {elapsed:.2f}s")
        for path, reason in report.failures:
            print(f"  Skipped {path}: {reason}")
        print(f"Output directory: {output_dir}")

        return 0

    except Exception as e:
        return report_error(args, e)


def refresh_colors(args) -> int:
    """Rewrite catalog colours from textures."""
    try:
        updated = refresh_catalog_colors(args.catalog, args.refresh_colors)
    except Exception as e:
        return report_error(args, e)
    print(f"Updated {updated} colours in {args.catalog}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )

    # Determine mode
    if args.refresh_colors:
        return refresh_colors(args)
    elif args.batch:
        return process_batch(args)
    else:
        return process_single(args)


if __name__ == "__main__":
    sys.exit(main())
