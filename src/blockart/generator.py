"""
Main BlockArtGenerator Class

This is the primary interface for the conversion pipeline.
It orchestrates:
1. Image or video loading
2. Voxelization against a block palette
3. Encoding to fill commands or structure files
4. Pack assembly and export

Example Usage:
    palette = load_palette("blocks.json", Plane.XY_Z)
    generator = BlockArtGenerator(palette)
    generator.load_image("picture.png").voxelize()
    tree = generator.build_function_pack(PackManifest("picture"))
    generator.export(tree, "out/")
"""

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union
import logging
import numpy as np
from PIL import Image

from .catalog import Attribute, Version, load_palette
from .color import ColorMetric, PaletteEntry
from .commands import CommandEncoder
from .errors import UnreadableSource
from .ingestion import ImageLoader, VideoLoader
from .pack import (PackManifest, build_frame_pack, build_function_pack,
                   build_structure_pack, render_icon)
from .planes import Plane
from .preview import render_block_image
from .structure import StructureExporter
from .tree import PackTree, compress_pack
from .voxelizer import BlockCube, Voxelizer

logger = logging.getLogger(__name__)


def _bound(value: Optional[int]) -> Optional[int]:
    """None or a non-positive limit means unbounded."""
    if value is None or value <= 0:
        return None
    return value


class BlockArtGenerator:
    """
    High-level interface for picture-to-block conversion.

    Attributes:
        palette: Candidate blocks
        plane: Orientation of the build in the world
        cube: The current block grid
        usage: Pixels matched per block id, accumulated over every voxelization
    """

    def __init__(
        self,
        palette: Sequence[PaletteEntry],
        max_width: Optional[int] = 480,
        max_height: Optional[int] = 270,
        max_frames: Optional[int] = 200,
        max_chunk_size: int = 9000,
        plane: Plane = Plane.XY_Z,
        metric: ColorMetric = ColorMetric.PERCEPTUAL,
        legacy_execute: bool = False
    ):
        """
        Initialize the BlockArtGenerator.

        Args:
            palette: Candidate blocks, in priority order for ties
            max_width, max_height: Size limits (None or <= 0 = unbounded)
            max_frames: Video frame cap (None or <= 0 = all frames)
            max_chunk_size: Commands per function file
            plane: Orientation of the build
            metric: Color similarity weighting
            legacy_execute: Emit the old ``execute @p ~ ~ ~`` syntax
        """
        self.palette = list(palette)
        self.max_width = _bound(max_width)
        self.max_height = _bound(max_height)
        self.max_frames = _bound(max_frames)
        self.max_chunk_size = max_chunk_size
        self.plane = plane
        self.metric = metric
        self.legacy_execute = legacy_execute
        self.usage: Counter = Counter()

        self._raster: Optional[np.ndarray] = None
        self._video_path: Optional[Path] = None
        self._thumbnail: Optional[np.ndarray] = None
        self._cube: Optional[BlockCube] = None

    @classmethod
    def from_catalog(
        cls,
        catalog_path: Union[str, Path],
        plane: Plane = Plane.XY_Z,
        attribute: Attribute = Attribute.ALL,
        min_version: Version = Version(0, 0, 0),
        **kwargs
    ) -> "BlockArtGenerator":
        """Create a generator whose palette is read from a catalog file."""
        palette = load_palette(catalog_path, plane, attribute, min_version)
        return cls(palette, plane=plane, **kwargs)

    def load_image(self, image_path: Union[str, Path]) -> "BlockArtGenerator":
        """
        Load a still image.

        Returns:
            self for method chaining

        Raises:
            UnreadableSource: If the image cannot be decoded
        """
        self._raster = ImageLoader().load(image_path).raster
        self._video_path = None
        self._cube = None
        return self

    def load_array(self, array: np.ndarray) -> "BlockArtGenerator":
        """
        Load an RGB(A) array of shape (H, W, 3|4).

        Returns:
            self for method chaining
        """
        self._raster = ImageLoader().load_from_array(array).raster
        self._video_path = None
        self._cube = None
        return self

    def load_video(self, video_path: Union[str, Path]) -> "BlockArtGenerator":
        """
        Select a video; frames are read during voxelize().

        Returns:
            self for method chaining

        Raises:
            UnreadableSource: If the file does not exist
        """
        video_path = Path(video_path)
        if not video_path.exists():
            raise UnreadableSource(video_path, "file not found")
        self._video_path = video_path
        self._raster = None
        self._cube = None
        return self

    def _voxelizer(self) -> Voxelizer:
        return Voxelizer(self.palette, self.max_width, self.max_height, self.metric, self.usage)

    def _keep_first(self, frames: Iterator[np.ndarray]) -> Iterator[np.ndarray]:
        for i, frame in enumerate(frames):
            if i == 0:
                self._thumbnail = frame
            yield frame

    def voxelize(self) -> "BlockArtGenerator":
        """
        Convert the loaded source to a block grid.

        Returns:
            self for method chaining

        Raises:
            PreconditionFailed: If the palette is empty
            UnreadableSource: If the video cannot be decoded
        """
        if self._raster is not None:
            self._cube = self._voxelizer().voxelize(self._raster)
            self._thumbnail = self._raster
        elif self._video_path is not None:
            with VideoLoader(self._video_path) as video:
                self._cube = self._voxelizer().voxelize_frames(
                    self._keep_first(video.frames(self.max_frames)),
                    self.max_frames,
                    video.frame_limit(self.max_frames)
                )
        else:
            raise RuntimeError("No source loaded. Call load_image() or load_video() first.")

        logger.info("Voxelized to %s", self._cube.shape)
        return self

    def _require_cube(self) -> BlockCube:
        if self._cube is None:
            raise RuntimeError("No block grid. Call voxelize() first.")
        return self._cube

    def commands(self, offset: Tuple[int, int, int] = (0, 0, 0)) -> List[str]:
        """Fill commands for the current grid."""
        encoder = CommandEncoder(self.plane, offset, self.legacy_execute)
        return encoder.encode(self._require_cube())

    def structure(self) -> bytes:
        """Structure file bytes for the whole grid."""
        return StructureExporter(self.plane).encode(self._require_cube())

    def frame_structures(self) -> List[bytes]:
        """One structure file per layer of the grid."""
        cube = self._require_cube()
        exporter = StructureExporter(self.plane)
        return [
            exporter.encode(BlockCube.from_array(cube.data[:, :, z:z + 1]))
            for z in range(cube.size_z)
        ]

    @property
    def logical_size(self) -> Tuple[int, int, int]:
        """(width, height, depth) of the grid as placed in the world."""
        return self.plane.logical_shape(self._require_cube().shape)

    def _icon(self) -> bytes:
        return render_icon(self._thumbnail)

    def build_function_pack(self, manifest: PackManifest) -> PackTree:
        """Function pack that replays the fill commands tick by tick."""
        return build_function_pack(self.commands(), manifest, self.logical_size,
                                   self.max_chunk_size, self._icon())

    def build_structure_pack(self, manifest: PackManifest) -> PackTree:
        """Pack holding the whole grid as one structure."""
        return build_structure_pack(self.structure(), manifest, self._icon())

    def build_video_pack(self, manifest: PackManifest, detach: bool = False) -> PackTree:
        """
        Pack for a multi-frame grid.

        Args:
            manifest: Pack identity
            detach: One structure per frame played back by a marker entity,
                instead of one combined structure with frames along depth
        """
        if not detach:
            return self.build_structure_pack(manifest)
        sx, sy, _ = self._require_cube().shape
        frame_area = self.plane.logical_shape((sx, sy, 1))
        return build_frame_pack(self.frame_structures(), manifest, frame_area, self._icon())

    def export(
        self,
        tree: PackTree,
        output_dir: Union[str, Path],
        compress: bool = True,
        overwrite: bool = True
    ) -> Path:
        """
        Write a pack to disk.

        Args:
            tree: Assembled pack
            output_dir: Parent directory
            compress: Zip into ``<name>.mcpack`` and remove the directory
            overwrite: Replace an existing pack directory

        Returns:
            Path of the package file, or of the directory if not compressed
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        root = tree.write(output_dir, overwrite=overwrite)
        if compress:
            return compress_pack(root)
        return root

    def render_preview(
        self,
        texture_dir: Optional[Union[str, Path]] = None,
        tile: int = 16,
        layer: int = 0
    ) -> Image.Image:
        """Texture mosaic of one layer of the grid."""
        return render_block_image(self._require_cube(), self.palette, texture_dir, tile, layer)

    @property
    def cube(self) -> Optional[BlockCube]:
        """Get the current block grid."""
        return self._cube

    @property
    def block_count(self) -> int:
        """Number of cells in the current grid."""
        if self._cube is None:
            return 0
        return self._cube.size

    def usage_report(self, top: Optional[int] = None) -> List[Tuple[str, int]]:
        """Most used blocks first."""
        return self.usage.most_common(top)

    def preview(self) -> dict:
        """
        Get a preview of the current state.

        Returns:
            Dictionary with current state information
        """
        info = {
            "image_loaded": self._raster is not None,
            "video_loaded": self._video_path is not None,
            "voxelized": self._cube is not None,
            "palette_size": len(self.palette),
            "plane": self.plane.name,
        }

        if self._raster is not None:
            info["image_size"] = (self._raster.shape[1], self._raster.shape[0])

        if self._cube is not None:
            info["grid_size"] = self._cube.shape
            info["logical_size"] = self.logical_size
            info["block_types"] = len(self._cube.block_ids())

        return info


@dataclass
class BatchReport:
    """Outcome of a batch run."""
    outputs: List[Path] = field(default_factory=list)
    failures: List[Tuple[Path, str]] = field(default_factory=list)


class BatchProcessor:
    """
    Batch processing for a directory of images.

    Unreadable images are logged and recorded in the report; the rest
    of the batch still runs.
    """

    MODES = ("function", "structure")

    def __init__(self, **generator_kwargs):
        """
        Initialize the batch processor.

        Args:
            **generator_kwargs: Arguments passed to BlockArtGenerator
        """
        self.generator_kwargs = generator_kwargs

    def process_directory(
        self,
        input_dir: Union[str, Path],
        output_dir: Union[str, Path],
        mode: str = "function",
        pattern: str = "*.png",
        compress: bool = True,
        **manifest_kwargs
    ) -> BatchReport:
        """
        Convert every matching image into its own pack.

        Args:
            input_dir: Input directory
            output_dir: Output directory
            mode: "function" or "structure"
            pattern: Glob pattern for input files
            compress: Zip each pack
            **manifest_kwargs: Extra PackManifest fields

        Returns:
            BatchReport with written packs and failed inputs
        """
        if mode not in self.MODES:
            raise ValueError(f"Unknown batch mode {mode!r}, expected one of {self.MODES}")

        input_dir = Path(input_dir)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        report = BatchReport()

        for image_path in sorted(input_dir.glob(pattern)):
            generator = BlockArtGenerator(**self.generator_kwargs)
            try:
                generator.load_image(image_path).voxelize()
            except UnreadableSource as e:
                logger.warning("Skipping %s: %s", image_path, e.reason)
                report.failures.append((image_path, e.reason))
                continue

            manifest = PackManifest(image_path.stem, **manifest_kwargs)
            if mode == "function":
                tree = generator.build_function_pack(manifest)
            else:
                tree = generator.build_structure_pack(manifest)

            report.outputs.append(generator.export(tree, output_dir, compress=compress))

        logger.info("Batch done: %d packs, %d failures", len(report.outputs), len(report.failures))
        return report
