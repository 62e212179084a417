"""
Block Catalog

Reads the block catalog JSON and filters it down to a matching palette.

Catalog layout:
    {
      "blocks": [
        {
          "ids": [{"id": "minecraft:stone", "version": [1, 0, 0]}],
          "texture": {"side": "stone.png"},
          "rgbColor": {"side": "7D7D7D"},
          "debutVersion": [1, 0, 0],
          "direction": ["x", "y"],
          "burnable": false
        }
      ]
    }

Blocks that are placeable both ways with a single colour use that colour
for every face; everything else needs a texture and colour for the face
being matched.
"""

from dataclasses import dataclass, field
from enum import IntFlag
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Sequence, Tuple, Union
import json
import logging
import numpy as np
from PIL import Image, UnidentifiedImageError

from .color import Color, PaletteEntry
from .errors import PreconditionFailed
from .planes import Plane

logger = logging.getLogger(__name__)


class Face(IntFlag):
    FRONT = 0x01
    BACK = 0x02
    RIGHT = 0x04
    LEFT = 0x08
    TOP = 0x10
    BOTTOM = 0x20
    SIDE = 0x1F


class Alignment(IntFlag):
    HORIZONTAL = 1
    VERTICAL = 2


class Attribute(IntFlag):
    LIGHTING = 0x01
    TIME_VARYING = 0x02
    BURNABLE = 0x04
    ENDERMAN_PICKABLE = 0x08
    GRAVITY = 0x10
    ENERGY = 0x20
    TRANSPARENT = 0x40
    COMMAND_FORMAT_ID = 0x80
    ALL = 0xFF


FACE_KEYS = {
    "front": Face.FRONT,
    "back": Face.BACK,
    "right": Face.RIGHT,
    "left": Face.LEFT,
    "top": Face.TOP,
    "bottom": Face.BOTTOM,
    "side": Face.SIDE,
}

ALIGNMENT_KEYS = {
    "x": Alignment.HORIZONTAL,
    "y": Alignment.VERTICAL,
}

ATTRIBUTE_KEYS = {
    "isLighting": Attribute.LIGHTING,
    "isTimeVarying": Attribute.TIME_VARYING,
    "burnable": Attribute.BURNABLE,
    "endermanPickable": Attribute.ENDERMAN_PICKABLE,
    "hasGravity": Attribute.GRAVITY,
    "hasEnergy": Attribute.ENERGY,
    "isTransparency": Attribute.TRANSPARENT,
    "isCommandFormatId": Attribute.COMMAND_FORMAT_ID,
}


class Version(NamedTuple):
    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, value: Union[str, Sequence[int]]) -> "Version":
        """Accept ``[1, 19, 70]`` or ``"1.19.70"``."""
        if isinstance(value, str):
            value = value.split(".")
        parts = [int(v) for v in value]
        if len(parts) != 3:
            raise ValueError(f"Expected three version components, got {value!r}")
        return cls(*parts)

    def __str__(self):
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass
class CatalogEntry:
    """One catalog block before filtering."""
    ids: List[Tuple[Version, str]]
    textures: Dict[Face, str]
    colors: Dict[Face, Color]
    debut: Version
    alignment: Alignment
    attribute: Attribute = field(default=Attribute(0))

    @property
    def faces(self) -> Face:
        """Union of faces that carry a colour."""
        result = Face(0)
        for face in self.colors:
            result |= face
        return result

    def block_id(self, min_version: Version) -> str:
        """Earliest id valid at ``min_version``; the newest one otherwise."""
        for version, block_id in self.ids:
            if version >= min_version:
                return block_id
        return self.ids[-1][1]


def _face_map(raw: Dict[str, str], convert) -> Dict[Face, Any]:
    result = {}
    for key, value in raw.items():
        if key not in FACE_KEYS:
            raise ValueError(f"unknown face {key!r}")
        result[FACE_KEYS[key]] = convert(value)
    return result


def parse_entry(raw: Dict[str, Any]) -> CatalogEntry:
    """
    Build a CatalogEntry from its JSON object.

    Raises:
        PreconditionFailed: If a required field is missing or malformed
    """
    try:
        ids = sorted(
            (Version.parse(item["version"]), str(item["id"])) for item in raw["ids"]
        )
        if not ids:
            raise ValueError("no ids")

        alignment = Alignment(0)
        for key in raw["direction"]:
            alignment |= ALIGNMENT_KEYS[key]

        attribute = Attribute(0)
        for key, flag in ATTRIBUTE_KEYS.items():
            if raw.get(key, False):
                attribute |= flag

        return CatalogEntry(
            ids=ids,
            textures=_face_map(raw["texture"], str),
            colors=_face_map(raw["rgbColor"], Color.from_hex),
            debut=Version.parse(raw["debutVersion"]),
            alignment=alignment,
            attribute=attribute,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise PreconditionFailed(f"Malformed catalog entry {raw!r}: {e}") from e


def parse_catalog(document: Dict[str, Any]) -> List[CatalogEntry]:
    """Parse a loaded catalog document."""
    if not isinstance(document, dict) or not isinstance(document.get("blocks"), list):
        raise PreconditionFailed("Catalog must be an object with a 'blocks' list")
    return [parse_entry(raw) for raw in document["blocks"]]


def load_catalog(catalog_path: Union[str, Path]) -> List[CatalogEntry]:
    """
    Read and parse a catalog file.

    Raises:
        PreconditionFailed: If the file is not valid catalog JSON
    """
    with open(catalog_path, 'r', encoding="utf-8") as f:
        try:
            document = json.load(f)
        except json.JSONDecodeError as e:
            raise PreconditionFailed(f"Catalog {catalog_path} is not valid JSON: {e}") from e

    entries = parse_catalog(document)
    logger.debug("Loaded %d catalog entries from %s", len(entries), catalog_path)
    return entries


def filter_entries(
    entries: Sequence[CatalogEntry],
    face: Face,
    alignment: Alignment,
    attribute: Attribute = Attribute.ALL,
    min_version: Version = Version(0, 0, 0)
) -> List[PaletteEntry]:
    """
    Select the catalog entries usable for one face and orientation.

    Args:
        entries: Parsed catalog
        face: Face that will be visible
        alignment: Orientation the blocks are placed in
        attribute: Allowed attribute bits
        min_version: Oldest debut version to accept

    Returns:
        Palette entries in catalog order
    """
    palette = []
    for entry in entries:
        if not entry.alignment & alignment:
            continue
        if entry.debut < min_version:
            continue
        if entry.attribute & attribute != entry.attribute:
            continue
        if not face & entry.faces:
            continue

        if entry.alignment == Alignment.HORIZONTAL | Alignment.VERTICAL and len(entry.colors) == 1:
            texture = next(iter(entry.textures.values()), "")
            color = next(iter(entry.colors.values()))
        elif face in entry.textures and face in entry.colors:
            texture = entry.textures[face]
            color = entry.colors[face]
        else:
            logger.debug("Skipping %s: no %s face", entry.ids[-1][1], face.name)
            continue

        palette.append(PaletteEntry(entry.block_id(min_version), texture, color))
    return palette


def palette_for_plane(
    entries: Sequence[CatalogEntry],
    plane: Plane,
    attribute: Attribute = Attribute.ALL,
    min_version: Version = Version(0, 0, 0)
) -> List[PaletteEntry]:
    """Palette for a plane: upright planes show the side face, flat ones the top."""
    if plane.is_upright:
        return filter_entries(entries, Face.SIDE, Alignment.VERTICAL, attribute, min_version)
    return filter_entries(entries, Face.TOP, Alignment.HORIZONTAL, attribute, min_version)


def load_palette(
    catalog_path: Union[str, Path],
    plane: Plane = Plane.XY_Z,
    attribute: Attribute = Attribute.ALL,
    min_version: Version = Version(0, 0, 0)
) -> List[PaletteEntry]:
    """Shortcut for ``palette_for_plane(load_catalog(path), ...)``."""
    palette = palette_for_plane(load_catalog(catalog_path), plane, attribute, min_version)
    logger.info("Palette for %s: %d blocks", plane.name, len(palette))
    return palette


def average_color(image_path: Union[str, Path]) -> Color:
    """Mean RGB of an image file."""
    with Image.open(image_path) as img:
        pixels = np.asarray(img.convert("RGB"), dtype=np.float64).reshape(-1, 3)
    r, g, b = np.round(pixels.mean(axis=0)).astype(int)
    return Color(int(r), int(g), int(b))


def refresh_catalog_colors(catalog_path: Union[str, Path], texture_dir: Union[str, Path]) -> int:
    """
    Recompute side/top colours from texture files and rewrite the catalog.

    Args:
        catalog_path: Catalog JSON file, rewritten in place
        texture_dir: Directory holding the texture files

    Returns:
        Number of colours written
    """
    catalog_path = Path(catalog_path)
    texture_dir = Path(texture_dir)
    with open(catalog_path, 'r', encoding="utf-8") as f:
        document = json.load(f)
    if not isinstance(document, dict) or not isinstance(document.get("blocks"), list):
        raise PreconditionFailed("Catalog must be an object with a 'blocks' list")

    updated = 0
    for raw in document["blocks"]:
        textures = raw.get("texture")
        if not isinstance(textures, dict):
            continue
        colors = raw.setdefault("rgbColor", {})
        for face in ("side", "top"):
            name = textures.get(face)
            if not isinstance(name, str):
                continue
            try:
                colors[face] = average_color(texture_dir / name).to_hex()
            except (OSError, UnidentifiedImageError) as e:
                logger.warning("Cannot read texture %s: %s", name, e)
                continue
            updated += 1

    with open(catalog_path, 'w', encoding="utf-8") as f:
        json.dump(document, f, indent=4)

    logger.info("Refreshed %d colours in %s", updated, catalog_path)
    return updated
