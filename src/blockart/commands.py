"""
Command Generation Module

Builds placement command text and run-length encodes BlockCube rows
into ranged fill commands.

Encoding order:
    for z ascending:
        for y ascending:
            runs along x ascending

Each run becomes one fill executed from the nearest player's position,
so the output never contains absolute world coordinates. Runs are
one-dimensional: no attempt is made to merge rows into rectangles.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Sequence, Tuple

from .planes import Plane
from .voxelizer import BlockCube


Coord = Tuple[int, int, int]


class Selector(Enum):
    """Target selectors."""
    ALL = "@e"
    PLAYER = "@a"
    SELF = "@s"
    NEAREST = "@p"
    RANDOM = "@r"


class PosMode(Enum):
    """Coordinate prefixes."""
    ABSOLUTE = ""
    RELATIVE = "~"   # from the executing entity
    LOCAL = "^"      # from the executing entity, along its view


class FillMode(Enum):
    DESTROY = "destroy"
    HOLLOW = "hollow"
    KEEP = "keep"
    OUTLINE = "outline"
    REPLACE = "replace"


def format_position(pos: Sequence[int], mode: PosMode = PosMode.ABSOLUTE) -> str:
    """Format a coordinate triple, e.g. ``~1 ~0 ~2``."""
    return " ".join(f"{mode.value}{int(v)}" for v in pos)


def fill(
    block_id: str,
    pos_from: Sequence[int],
    pos_to: Sequence[int],
    pos_mode: PosMode = PosMode.ABSOLUTE,
    mode: FillMode = FillMode.REPLACE,
    replaced_block_id: str = "",
    slash: bool = False
) -> str:
    """
    Build a fill command.

    Args:
        block_id: Block to place
        pos_from, pos_to: Inclusive corners
        pos_mode: Coordinate prefix
        mode: Fill behaviour
        replaced_block_id: Only replace this block (REPLACE mode only)
        slash: Prefix with ``/``
    """
    command = (
        f"{'/' if slash else ''}fill "
        f"{format_position(pos_from, pos_mode)} {format_position(pos_to, pos_mode)} "
        f"{block_id} {mode.value}"
    )
    if replaced_block_id and mode is FillMode.REPLACE:
        command += f" {replaced_block_id}"
    return command


def execute(
    sub_command: str,
    as_: Selector = Selector.NEAREST,
    at: Selector = Selector.SELF,
    slash: bool = False
) -> str:
    """Build ``execute as <as_> at <at> run <sub_command>``."""
    return f"{'/' if slash else ''}execute as {as_.value} at {at.value} run {sub_command}"


def legacy_execute(
    sub_command: str,
    target: Selector = Selector.NEAREST,
    pos: Sequence[int] = (0, 0, 0),
    pos_mode: PosMode = PosMode.RELATIVE,
    slash: bool = False
) -> str:
    """Build the pre-1.19.50 ``execute <target> <pos> <sub_command>`` form."""
    return f"{'/' if slash else ''}execute {target.value} {format_position(pos, pos_mode)} {sub_command}"


@dataclass(frozen=True)
class CommandRun:
    """A maximal span of identical blocks along x, in grid coordinates."""
    block_id: str
    start: Coord
    end: Coord


def row_runs(cube: BlockCube, y: int, z: int) -> Iterator[CommandRun]:
    """
    Split one row of the cube into runs.

    Args:
        cube: Source grid
        y, z: Row to scan

    Yields:
        CommandRuns in ascending x, covering x = 0 .. size_x-1 exactly once
    """
    data = cube.data
    width = cube.size_x
    if width == 0:
        return

    run_id = data[0, y, z]
    run_start = 0

    for x in range(1, width):
        block_id = data[x, y, z]
        if block_id != run_id:
            yield CommandRun(run_id, (run_start, y, z), (x - 1, y, z))
            run_id = block_id
            run_start = x

    # The last run always closes at the final cell
    yield CommandRun(run_id, (run_start, y, z), (width - 1, y, z))


def iter_runs(cube: BlockCube) -> Iterator[CommandRun]:
    """All runs of the cube, z-outer, y-middle, x-inner."""
    for z in range(cube.size_z):
        for y in range(cube.size_y):
            yield from row_runs(cube, y, z)


class CommandEncoder:
    """
    Convert a BlockCube into relative fill commands.

    Usage:
        encoder = CommandEncoder(plane=Plane.XY_Z)
        commands = encoder.encode(cube)
    """

    def __init__(
        self,
        plane: Plane = Plane.XY_Z,
        offset: Coord = (0, 0, 0),
        legacy: bool = False
    ):
        """
        Initialize the encoder.

        Args:
            plane: Axis convention for emitted positions
            offset: Added to every emitted position (logical axes)
            legacy: Emit the old ``execute @p ~ ~ ~`` syntax
        """
        self.plane = plane
        self.offset = offset
        self.legacy = legacy

    def _position(self, grid_pos: Coord) -> Coord:
        x, y, z = self.plane.to_logical(*grid_pos)
        ox, oy, oz = self.offset
        return (x + ox, y + oy, z + oz)

    def format_run(self, run: CommandRun) -> str:
        """Render one run as a command line."""
        body = fill(
            run.block_id,
            self._position(run.start),
            self._position(run.end),
            PosMode.RELATIVE
        )
        if self.legacy:
            return legacy_execute(body)
        return execute(body)

    def encode(self, cube: BlockCube) -> List[str]:
        """
        Encode every row of the cube.

        Args:
            cube: Fully voxelized grid

        Returns:
            Ordered command strings (empty for an empty cube)
        """
        return [self.format_run(run) for run in iter_runs(cube)]


def encode_commands(cube: BlockCube, plane: Plane = Plane.XY_Z, **kwargs) -> List[str]:
    """Shortcut for ``CommandEncoder(plane, **kwargs).encode(cube)``."""
    return CommandEncoder(plane, **kwargs).encode(cube)
