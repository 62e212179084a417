#!/usr/bin/env python3
"""
Block Art Generator Demo Script

This script demonstrates the full conversion pipeline by:
1. Creating synthetic test pictures and a small palette (no files needed)
2. Voxelizing them under each placement plane
3. Building function and structure packs
4. Printing statistics and comparisons

Run with: python examples/demo.py
"""

import sys
from pathlib import Path
import numpy as np
import time

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from blockart import BlockArtGenerator, PackManifest, Plane
from blockart.color import Color, ColorMetric, PaletteEntry
from blockart.voxelizer import BlockCube
from blockart.commands import encode_commands


DEMO_PALETTE = [
    PaletteEntry("minecraft:white_concrete", "concrete_white.png", Color(207, 213, 214)),
    PaletteEntry("minecraft:black_concrete", "concrete_black.png", Color(8, 10, 15)),
    PaletteEntry("minecraft:red_concrete", "concrete_red.png", Color(142, 33, 33)),
    PaletteEntry("minecraft:lime_concrete", "concrete_lime.png", Color(94, 169, 24)),
    PaletteEntry("minecraft:blue_concrete", "concrete_blue.png", Color(45, 47, 143)),
    PaletteEntry("minecraft:yellow_concrete", "concrete_yellow.png", Color(241, 175, 21)),
    PaletteEntry("minecraft:brown_concrete", "concrete_brown.png", Color(96, 60, 32)),
    PaletteEntry("minecraft:green_concrete", "concrete_green.png", Color(73, 91, 36)),
]


def create_test_picture_flag(width: int = 48, height: int = 32) -> np.ndarray:
    """Three horizontal stripes."""
    rgb = np.zeros((height, width, 3), dtype=np.uint8)
    rgb[:height // 3] = [200, 30, 30]
    rgb[height // 3:2 * height // 3] = [250, 250, 250]
    rgb[2 * height // 3:] = [40, 40, 150]
    return rgb


def create_test_picture_gradient(size: int = 32) -> np.ndarray:
    """Diagonal colour gradient; exercises many palette entries."""
    rgb = np.zeros((size, size, 3), dtype=np.uint8)
    for y in range(size):
        for x in range(size):
            rgb[y, x] = [int(255 * x / size), int(255 * y / size), 128]
    return rgb


def create_test_picture_tree(size: int = 48) -> np.ndarray:
    """A green cone on a brown trunk against a white sky."""
    rgb = np.full((size, size, 3), 230, dtype=np.uint8)
    cx = size // 2

    for y in range(size // 2, size - 2):
        for x in range(cx - size // 8, cx + size // 8):
            rgb[y, x] = [101, 67, 33]

    foliage_top = 2
    foliage_bottom = size // 2 + size // 8
    for y in range(foliage_top, foliage_bottom):
        progress = (y - foliage_top) / (foliage_bottom - foliage_top)
        half_width = int(progress * size // 3) + 2
        for x in range(max(0, cx - half_width), min(size, cx + half_width)):
            rgb[y, x] = [34, 139, 34]

    return rgb


def run_demo():
    """Run the demonstration."""
    print("=" * 60)
    print("Block Art Generator - Demo")
    print("=" * 60)
    print()

    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    test_pictures = [
        ("flag", create_test_picture_flag()),
        ("gradient", create_test_picture_gradient()),
        ("tree", create_test_picture_tree()),
    ]

    total_start = time.time()

    for name, rgb in test_pictures:
        print(f"\n--- Processing: {name} ---")
        print(f"Input size: {rgb.shape[1]}x{rgb.shape[0]} pixels")

        for plane in Plane:
            generator = BlockArtGenerator(
                DEMO_PALETTE,
                max_width=32,
                max_height=32,
                plane=plane,
                metric=ColorMetric.PERCEPTUAL
            )

            vox_start = time.time()
            generator.load_array(rgb).voxelize()
            vox_time = time.time() - vox_start

            commands = generator.commands()
            structure = generator.structure()

            print(f"  {plane.name}:")
            print(f"    Voxelization: {vox_time*1000:.1f}ms")
            print(f"    Build size: {generator.logical_size}")
            print(f"    Fill commands: {len(commands)} for {generator.block_count} blocks")
            print(f"    Structure size: {len(structure)} bytes")

        print("\n  Most used blocks:")
        for block_id, count in generator.usage_report(3):
            print(f"    {block_id}: {count}")

        print("\n  Exporting...")
        export_start = time.time()

        function_pack = generator.build_function_pack(PackManifest(f"{name}_function"))
        print(f"    Saved: {generator.export(function_pack, output_dir)}")

        structure_pack = generator.build_structure_pack(PackManifest(f"{name}_structure"))
        print(f"    Saved: {generator.export(structure_pack, output_dir)}")

        preview_path = output_dir / f"{name}_preview.png"
        generator.render_preview(tile=8).save(preview_path)
        print(f"    Saved: {preview_path}")

        print(f"    Export time: {(time.time() - export_start)*1000:.1f}ms")

    total_time = time.time() - total_start

    print("\n" + "=" * 60)
    print(f"Demo complete! Total time: {total_time:.2f}s")
    print(f"Output files in: {output_dir}")
    print("=" * 60)

    return 0


def benchmark_run_length():
    """Compare fill command count against block count."""
    print("\n--- Run-Length Benchmark ---\n")

    for size in [16, 64, 256]:
        striped = BlockCube(size, size, 1)
        for x in range(size):
            for y in range(size):
                striped.set(x, y, 0, "minecraft:stone" if (x // 8) % 2 else "minecraft:dirt")

        start = time.time()
        commands = encode_commands(striped)
        elapsed = time.time() - start

        print(f"Grid size: {size}x{size}")
        print(f"  Blocks: {striped.size}, commands: {len(commands)}")
        print(f"  Encoding: {elapsed*1000:.1f}ms")
        print()


if __name__ == "__main__":
    run_demo()

    # Uncomment to run benchmark
    # benchmark_run_length()
