"""
Structure File Encoder

Encodes a BlockCube as a palette-indexed structure document:

- format_version: int 1
- size: [width, height, depth] in logical order
- structure:
  - block_indices: [primary indices, secondary indices]
  - entities: []
  - palette.default:
    - block_palette: [{states, version, name}, ...]
    - block_position_data: {}
- structure_world_origin: [0, 0, 0]

The encoding is dense: one primary and one secondary entry per voxel,
iterated x-outer, y-middle, z-inner over logical coordinates. Only the
palette is deduplicated, in first-seen order.
"""

from pathlib import Path
from typing import Dict, List, NamedTuple, Tuple, Union
import logging

from . import nbt
from .errors import PreconditionFailed
from .planes import Plane
from .voxelizer import BlockCube

logger = logging.getLogger(__name__)


FORMAT_VERSION = 1
BLOCK_VERSION = 18103297  # block state version 1.20.60.1
NO_EXTRA_DATA = -1
AIR = "minecraft:air"


class StructureData(NamedTuple):
    """Palette-indexed voxel data ready for serialization."""
    size: Tuple[int, int, int]
    primary: List[int]      # palette index per voxel
    secondary: List[int]    # NO_EXTRA_DATA per voxel
    palette: List[str]      # unique block ids, first-seen order

    def decode(self) -> Dict[Tuple[int, int, int], str]:
        """
        Map every logical coordinate back to its block id.

        Returns:
            Dictionary of (x, y, z) -> block id
        """
        width, height, depth = self.size
        result = {}
        i = 0
        for x in range(width):
            for y in range(height):
                for z in range(depth):
                    result[(x, y, z)] = self.palette[self.primary[i]]
                    i += 1
        return result


def encode_structure(cube: BlockCube, plane: Plane = Plane.XY_Z) -> StructureData:
    """
    Encode a cube under a plane convention.

    Args:
        cube: Fully voxelized grid
        plane: Axis convention

    Returns:
        StructureData with logical dimensions

    Raises:
        PreconditionFailed: If any cell is still unset
    """
    if not cube.is_complete():
        raise PreconditionFailed("Cannot encode a cube with unset cells")
    logical = plane.view(cube.data)
    size = tuple(int(s) for s in logical.shape)

    table: Dict[str, int] = {}
    primary: List[int] = []
    # C-order ravel of the logical view is x-outer, y-middle, z-inner
    for block_id in logical.ravel(order="C"):
        index = table.get(block_id)
        if index is None:
            index = len(table)
            table[block_id] = index
        primary.append(index)

    secondary = [NO_EXTRA_DATA] * len(primary)
    return StructureData(size, primary, secondary, list(table))


def encode_air(size: Tuple[int, int, int]) -> StructureData:
    """
    Placeholder structure: a volume of air.

    Args:
        size: Logical (width, height, depth)
    """
    count = size[0] * size[1] * size[2]
    return StructureData(tuple(size), [0] * count, [NO_EXTRA_DATA] * count, [AIR])


def _palette_entry(block_id: str) -> nbt.Compound:
    return (nbt.Compound()
            .add("states", nbt.Compound())
            .add("version", nbt.Int(BLOCK_VERSION))
            .add("name", nbt.String(block_id)))


def to_tag(data: StructureData) -> nbt.Compound:
    """Build the structure document for StructureData."""
    block_palette = nbt.List(nbt.TagType.COMPOUND,
                             [_palette_entry(block_id) for block_id in data.palette])

    default = (nbt.Compound()
               .add("block_palette", block_palette)
               .add("block_position_data", nbt.Compound()))

    block_indices = nbt.List(nbt.TagType.LIST,
                             [nbt.IntList(data.primary), nbt.IntList(data.secondary)])

    structure = (nbt.Compound()
                 .add("block_indices", block_indices)
                 .add("entities", nbt.List(nbt.TagType.END))
                 .add("palette", nbt.Compound().add("default", default)))

    return (nbt.Compound()
            .add("format_version", nbt.Int(FORMAT_VERSION))
            .add("size", nbt.IntList(data.size))
            .add("structure", structure)
            .add("structure_world_origin", nbt.IntList((0, 0, 0))))


def dumps(data: StructureData) -> bytes:
    """Serialize StructureData to structure file bytes."""
    return nbt.dumps(to_tag(data))


def loads(raw: bytes) -> StructureData:
    """
    Parse structure file bytes.

    Raises:
        ValueError: If the document lacks the expected fields
    """
    _, root = nbt.loads(raw)
    try:
        size = tuple(root["size"])
        primary, secondary = root["structure"]["block_indices"]
        block_palette = root["structure"]["palette"]["default"]["block_palette"]
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Not a structure document: {e}") from e
    return StructureData(size, list(primary), list(secondary),
                         [entry["name"] for entry in block_palette])


class StructureExporter:
    """
    Export BlockCubes to structure files.

    Usage:
        exporter = StructureExporter(plane=Plane.XY_Z)
        exporter.export(cube, "data.mcstructure")
    """

    def __init__(self, plane: Plane = Plane.XY_Z):
        self.plane = plane

    def encode(self, cube: BlockCube) -> bytes:
        """Structure file bytes for a cube."""
        return dumps(encode_structure(cube, self.plane))

    def export(self, cube: BlockCube, output_path: Union[str, Path]):
        """
        Write a cube to a structure file.

        Args:
            cube: Fully voxelized grid
            output_path: Output file path
        """
        output_path = Path(output_path)
        raw = self.encode(cube)
        with open(output_path, 'wb') as f:
            f.write(raw)
        logger.debug("Wrote %s (%d bytes)", output_path, len(raw))


def load_structure(file_path: Union[str, Path]) -> StructureData:
    """Read a structure file from disk."""
    with open(file_path, 'rb') as f:
        return loads(f.read())
