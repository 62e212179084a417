"""
Block Preview Rendering

Renders one layer of a BlockCube as an image where every voxel is drawn
with its block's texture, so a conversion can be checked without
loading it into the game.
"""

from pathlib import Path
from typing import Dict, Optional, Sequence, Union
import logging
import numpy as np
from PIL import Image

from .color import PaletteEntry
from .voxelizer import BlockCube

logger = logging.getLogger(__name__)


class TileCache:
    """Texture tiles by block id, falling back to the block's flat colour."""

    def __init__(self, palette: Sequence[PaletteEntry], texture_dir: Optional[Union[str, Path]], tile: int = 16):
        self.tile = tile
        self.texture_dir = Path(texture_dir) if texture_dir is not None else None
        self._entries: Dict[str, PaletteEntry] = {}
        for entry in palette:
            self._entries.setdefault(entry.block_id, entry)
        self._tiles: Dict[str, np.ndarray] = {}

    def _load(self, block_id: str) -> np.ndarray:
        entry = self._entries.get(block_id)
        if entry is None:
            return np.zeros((self.tile, self.tile, 3), dtype=np.uint8)

        if self.texture_dir is not None and entry.texture:
            path = self.texture_dir / entry.texture
            try:
                with Image.open(path) as img:
                    img = img.convert("RGB").resize((self.tile, self.tile), Image.Resampling.NEAREST)
                    return np.array(img, dtype=np.uint8)
            except OSError as e:
                logger.warning("Texture %s unavailable, using flat colour: %s", path, e)

        return np.full((self.tile, self.tile, 3), entry.color, dtype=np.uint8)

    def get(self, block_id: str) -> np.ndarray:
        tile = self._tiles.get(block_id)
        if tile is None:
            tile = self._load(block_id)
            self._tiles[block_id] = tile
        return tile


def render_block_image(
    cube: BlockCube,
    palette: Sequence[PaletteEntry],
    texture_dir: Optional[Union[str, Path]] = None,
    tile: int = 16,
    layer: int = 0
) -> Image.Image:
    """
    Draw one layer of a cube with block textures.

    The image is oriented like the source picture: the mirroring applied
    during voxelization is undone and y points up.

    Args:
        cube: Voxelized grid
        palette: Palette the cube was built from
        texture_dir: Directory of texture files (flat colours if None)
        tile: Edge length of one block in pixels
        layer: z index to draw

    Returns:
        RGB PIL image of size (size_x * tile, size_y * tile)
    """
    if cube.is_empty:
        return Image.new("RGB", (0, 0))

    tiles = TileCache(palette, texture_dir, tile)
    width, height = cube.size_x, cube.size_y
    canvas = np.zeros((height * tile, width * tile, 3), dtype=np.uint8)

    data = cube.data
    for x in range(width):
        col = width - 1 - x
        for y in range(height):
            row = height - 1 - y
            canvas[row * tile:(row + 1) * tile, col * tile:(col + 1) * tile] = tiles.get(data[x, y, layer])

    return Image.fromarray(canvas)
