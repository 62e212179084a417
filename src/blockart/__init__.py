"""
Block Art Generator
===================

Converts pictures and videos into block builds for Bedrock add-on packs.

Every pixel is matched to the closest-coloured block from a catalog,
producing a 3D grid of block ids (one layer per video frame). The grid
is then written either as chunked fill commands replayed by a tick
function, or as palette-indexed structure files.

Key Features:
- Numba-compiled nearest-colour matching over whole rasters
- Three placement planes (upright facing z, upright facing x, flat)
- Run-length compressed fill commands, chunked and driven by a tick counter
- Little-endian NBT structure files, one combined or one per video frame
- Pack assembly with manifest, icon and optional .mcpack compression

Example Usage:
    from blockart import BlockArtGenerator, PackManifest

    generator = BlockArtGenerator.from_catalog("blocks.json")
    generator.load_image("picture.png").voxelize()
    tree = generator.build_function_pack(PackManifest("picture"))
    generator.export(tree, "packs/")
"""

__version__ = "1.0.0"
__author__ = "Block Art Generator Team"

from .errors import BlockArtError, PreconditionFailed, UnreadableSource
from .color import Color, ColorMetric, PaletteEntry, nearest
from .planes import Plane
from .voxelizer import BlockCube, Voxelizer
from .commands import CommandEncoder, encode_commands
from .structure import StructureExporter, encode_structure, encode_air
from .pack import PackManifest, assemble
from .catalog import load_catalog, load_palette
from .generator import BlockArtGenerator, BatchProcessor

__all__ = [
    "BlockArtError",
    "PreconditionFailed",
    "UnreadableSource",
    "Color",
    "ColorMetric",
    "PaletteEntry",
    "nearest",
    "Plane",
    "BlockCube",
    "Voxelizer",
    "CommandEncoder",
    "encode_commands",
    "StructureExporter",
    "encode_structure",
    "encode_air",
    "PackManifest",
    "assemble",
    "load_catalog",
    "load_palette",
    "BlockArtGenerator",
    "BatchProcessor",
]
