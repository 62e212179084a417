"""
Block Grid Data Structures and Voxelization Engine

This module provides:
- BlockCube: Dense 3D array of block ids
- Voxelizer: Engine for converting images and video frames to BlockCubes

Grid layout: x = mirrored image column, y = image row counted from the
bottom, z = frame index. A still image produces a cube of depth 1.

Memory consideration: cells hold references to the palette's id strings,
so a 480 x 270 x 200 video cube is ~26M pointers ≈ 200 MB.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple
import logging
import numpy as np

from .color import ColorMetric, PaletteEntry, match_raster
from .errors import PreconditionFailed, UnreadableSource
from .ingestion import limit_scale, mirror

logger = logging.getLogger(__name__)


@dataclass
class BlockCube:
    """
    Dense 3D grid of block ids.

    Cells start as None and are filled layer by layer during
    voxelization. Encoders only read from the cube.
    """

    size_x: int
    size_y: int
    size_z: int
    _data: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        self._data = np.full((self.size_x, self.size_y, self.size_z), None, dtype=object)

    @classmethod
    def from_array(cls, data: np.ndarray) -> "BlockCube":
        """
        Build a cube from an existing (x, y, z) array of ids.

        Args:
            data: Array of shape (X, Y, Z); copied into an object array
        """
        if data.ndim != 3:
            raise ValueError("BlockCube data must be 3-dimensional")
        cube = cls(*data.shape)
        cube._data[...] = data
        return cube

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[str]]) -> "BlockCube":
        """
        Build a single-layer cube from rows of ids.

        ``rows[y][x]`` becomes cell (x, y, 0).
        """
        height = len(rows)
        width = len(rows[0]) if height else 0
        cube = cls(width, height, 1 if height else 0)
        for y, row in enumerate(rows):
            if len(row) != width:
                raise ValueError("All rows must have the same length")
            for x, block_id in enumerate(row):
                cube._data[x, y, 0] = block_id
        return cube

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Get grid dimensions (x, y, z)."""
        return (self.size_x, self.size_y, self.size_z)

    @property
    def data(self) -> np.ndarray:
        """Get the raw id array."""
        return self._data

    @property
    def size(self) -> int:
        """Total number of cells."""
        return self.size_x * self.size_y * self.size_z

    @property
    def is_empty(self) -> bool:
        """True when the cube has no cells."""
        return self.size == 0

    def get(self, x: int, y: int, z: int) -> Optional[str]:
        """Block id at the given coordinates."""
        return self._data[x, y, z]

    def set(self, x: int, y: int, z: int, block_id: str):
        """Set a single cell."""
        self._data[x, y, z] = block_id

    def set_layer(self, z: int, layer: np.ndarray):
        """
        Fill one z layer.

        Args:
            z: Layer index
            layer: Array of shape (size_x, size_y) with block ids
        """
        if layer.shape != (self.size_x, self.size_y):
            raise ValueError(
                f"Layer shape {layer.shape} does not match grid "
                f"({self.size_x}, {self.size_y})"
            )
        self._data[:, :, z] = layer

    def truncate(self, size_z: int) -> "BlockCube":
        """New cube keeping only the first ``size_z`` layers."""
        return BlockCube.from_array(self._data[:, :, :size_z])

    def is_complete(self) -> bool:
        """True when every cell holds an id."""
        return not any(cell is None for cell in self._data.flat)

    def block_ids(self) -> List[str]:
        """Distinct ids in x-outer, y-middle, z-inner first-seen order."""
        return list(dict.fromkeys(self._data.flat))


class Voxelizer:
    """
    Engine for converting rasters to BlockCubes.

    The voxelizer handles:
    - Size limiting (never upscales)
    - Horizontal mirroring
    - Nearest-block matching per pixel
    - Optional usage counting across everything it processes
    """

    def __init__(
        self,
        palette: Sequence[PaletteEntry],
        max_width: Optional[int] = None,
        max_height: Optional[int] = None,
        metric: ColorMetric = ColorMetric.PERCEPTUAL,
        usage: Optional[Counter] = None
    ):
        """
        Initialize the voxelizer.

        Args:
            palette: Candidate blocks, in priority order for ties
            max_width, max_height: Size limits (None = unbounded)
            metric: Color similarity weighting
            usage: Counter to accumulate per-block pixel counts into
        """
        self.palette = list(palette)
        self.max_width = max_width
        self.max_height = max_height
        self.metric = metric
        self.usage = usage
        self._ids = np.array([entry.block_id for entry in self.palette], dtype=object)

    def _check_palette(self):
        if not self.palette:
            raise PreconditionFailed("Cannot voxelize with an empty palette")

    @staticmethod
    def _check_raster(raster: np.ndarray):
        if raster.ndim != 3 or raster.shape[2] not in (3, 4):
            raise PreconditionFailed(
                f"Raster must have shape (H, W, 3) or (H, W, 4), got {raster.shape}")

    def match_layer(self, raster: np.ndarray) -> np.ndarray:
        """
        Convert one raster into a layer of block ids.

        Args:
            raster: RGB array of shape (H, W, 3)

        Returns:
            Object array of shape (W', H') indexed [x, y], where W', H'
            are the size-limited dimensions and y counts from the bottom
        """
        self._check_palette()
        self._check_raster(raster)

        scaled = mirror(limit_scale(raster, self.max_width, self.max_height))
        indices = match_raster(scaled, self.palette, self.metric)

        if self.usage is not None:
            counts = np.bincount(indices.ravel(), minlength=len(self.palette))
            for i in np.flatnonzero(counts):
                self.usage[self.palette[i].block_id] += int(counts[i])

        # Row 0 is the top of the image; y grows upward
        return self._ids[indices[::-1, :].T]

    def voxelize(self, raster: np.ndarray) -> BlockCube:
        """
        Convert a still image to a single-layer cube.

        Args:
            raster: RGB array of shape (H, W, 3)

        Returns:
            BlockCube of shape (W', H', 1)
        """
        self._check_palette()
        self._check_raster(raster)
        if raster.size == 0:
            return BlockCube(0, 0, 0)

        layer = self.match_layer(raster)
        cube = BlockCube(layer.shape[0], layer.shape[1], 1)
        cube.set_layer(0, layer)
        return cube

    def voxelize_frames(
        self,
        frames: Iterable[np.ndarray],
        max_frames: Optional[int] = None,
        frame_count: Optional[int] = None
    ) -> BlockCube:
        """
        Convert a frame sequence to a cube with one layer per frame.

        Args:
            frames: RGB rasters in arrival order
            max_frames: Frame cap (None = no cap)
            frame_count: Frames the source reports, used to size the cube
                up front; the cube is trimmed if fewer frames arrive

        Returns:
            BlockCube of shape (W', H', frames read)
        """
        self._check_palette()

        depth = frame_count
        if max_frames is not None:
            depth = max_frames if depth is None else min(depth, max_frames)

        layers: List[np.ndarray] = []
        cube: Optional[BlockCube] = None
        z = 0

        for frame in frames:
            if depth is not None and z >= depth:
                break

            layer = self.match_layer(frame)

            if z == 0 and depth is not None:
                cube = BlockCube(layer.shape[0], layer.shape[1], depth)
            if z > 0:
                expected = cube.shape[:2] if cube is not None else layers[0].shape
                if layer.shape != tuple(expected):
                    raise UnreadableSource(
                        "<frames>", f"frame {z} has size {layer.shape}, expected {tuple(expected)}"
                    )

            if cube is not None:
                cube.set_layer(z, layer)
            else:
                layers.append(layer)
            z += 1

        if z == 0:
            return BlockCube(0, 0, 0)

        if cube is None:
            cube = BlockCube.from_array(np.stack(layers, axis=2))
        elif z < cube.size_z:
            logger.info("Stream ended after %d of %d frames", z, cube.size_z)
            cube = cube.truncate(z)

        return cube


def voxelize_image(
    raster: np.ndarray,
    palette: Sequence[PaletteEntry],
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
    metric: ColorMetric = ColorMetric.PERCEPTUAL,
    usage: Optional[Counter] = None
) -> BlockCube:
    """Convert a still image to a BlockCube of depth 1."""
    return Voxelizer(palette, max_width, max_height, metric, usage).voxelize(raster)


def voxelize_frames(
    frames: Iterable[np.ndarray],
    palette: Sequence[PaletteEntry],
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
    max_frames: Optional[int] = None,
    metric: ColorMetric = ColorMetric.PERCEPTUAL,
    usage: Optional[Counter] = None,
    frame_count: Optional[int] = None
) -> BlockCube:
    """Convert a frame sequence to a BlockCube with one layer per frame."""
    voxelizer = Voxelizer(palette, max_width, max_height, metric, usage)
    return voxelizer.voxelize_frames(frames, max_frames, frame_count)
