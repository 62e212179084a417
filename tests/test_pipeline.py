"""
Unit tests for matching, voxelization and encoding.
"""

import sys
from collections import Counter
from pathlib import Path
import numpy as np
import struct
import tempfile
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from blockart.color import Color, ColorMetric, PaletteEntry, nearest, similarity, match_raster
from blockart.commands import CommandEncoder, encode_commands, fill, row_runs, PosMode
from blockart.errors import PreconditionFailed
from blockart.ingestion import fit_size, limit_scale
from blockart.planes import Plane, remap
from blockart.structure import (StructureExporter, encode_air, encode_structure,
                                dumps, loads, load_structure, NO_EXTRA_DATA)
from blockart.voxelizer import BlockCube, Voxelizer, voxelize_frames
from blockart import nbt


RED = PaletteEntry("red", "red.png", Color(255, 0, 0))
GREEN = PaletteEntry("green", "green.png", Color(0, 255, 0))
BLUE = PaletteEntry("blue", "blue.png", Color(0, 0, 255))
PALETTE = [RED, GREEN, BLUE]


def random_cube(shape, ids=("a", "b", "c"), seed=0) -> BlockCube:
    rng = np.random.default_rng(seed)
    data = np.array(ids, dtype=object)[rng.integers(0, len(ids), size=shape)]
    return BlockCube.from_array(data)


class TestColor(unittest.TestCase):
    """Tests for color matching."""

    def test_hex_roundtrip(self):
        """Test hex parsing and formatting."""
        color = Color.from_hex("#7d7D7d")
        assert color == Color(125, 125, 125)
        assert color.to_hex() == "7D7D7D"

    def test_bad_hex(self):
        """Test malformed hex strings."""
        with self.assertRaises(ValueError):
            Color.from_hex("12345")

    def test_identical_similarity(self):
        """Identical colors score exactly 1."""
        assert similarity((10, 20, 30), (10, 20, 30)) == 1.0
        assert similarity((10, 20, 30), (10, 20, 30), ColorMetric.LUMA) == 1.0

    def test_metric_weights_differ(self):
        """The two metrics weigh channels differently."""
        perceptual = similarity((0, 0, 0), (255, 0, 0), ColorMetric.PERCEPTUAL)
        luma = similarity((0, 0, 0), (255, 0, 0), ColorMetric.LUMA)
        assert np.isclose(perceptual, 1 - 0.32)
        assert np.isclose(luma, 1 - 0.299)

    def test_nearest(self):
        """Test nearest entry lookup."""
        assert nearest((250, 10, 10), PALETTE) is RED
        assert nearest((10, 200, 30), PALETTE) is GREEN
        assert nearest((0, 0, 180), PALETTE) is BLUE

    def test_nearest_deterministic(self):
        """Repeated calls return the same entry."""
        results = {nearest((90, 90, 90), PALETTE).block_id for _ in range(10)}
        assert len(results) == 1

    def test_tie_keeps_first(self):
        """Equal scores keep the earliest entry."""
        darker = PaletteEntry("darker", "", Color(90, 100, 100))
        lighter = PaletteEntry("lighter", "", Color(110, 100, 100))
        assert nearest((100, 100, 100), [darker, lighter]) is darker
        assert nearest((100, 100, 100), [lighter, darker]) is lighter

        twin = PaletteEntry("twin", "", RED.color)
        assert nearest((255, 0, 0), [RED, twin]) is RED

    def test_raster_tie_keeps_first(self):
        """The compiled kernel follows the same tie-break."""
        twin = PaletteEntry("twin", "", RED.color)
        raster = np.full((2, 2, 3), [255, 0, 0], dtype=np.uint8)
        assert np.all(match_raster(raster, [RED, twin]) == 0)
        assert np.all(match_raster(raster, [twin, RED]) == 0)

    def test_raster_matches_scalar(self):
        """Whole-raster matching agrees with nearest() per pixel."""
        rng = np.random.default_rng(1)
        raster = rng.integers(0, 256, size=(6, 5, 3), dtype=np.uint8)
        indices = match_raster(raster, PALETTE)
        for row in range(6):
            for col in range(5):
                assert PALETTE[indices[row, col]] is nearest(raster[row, col], PALETTE)

    def test_empty_palette(self):
        """Empty palettes fail fast."""
        with self.assertRaises(PreconditionFailed):
            nearest((0, 0, 0), [])
        with self.assertRaises(PreconditionFailed):
            match_raster(np.zeros((1, 1, 3), dtype=np.uint8), [])


class TestPlane(unittest.TestCase):
    """Tests for plane conventions."""

    def test_identity(self):
        """The identity plane leaves coordinates unchanged."""
        translate, size = remap((4, 3, 2), Plane.XY_Z)
        assert size == (4, 3, 2)
        for x in range(4):
            for y in range(3):
                for z in range(2):
                    assert translate(x, y, z) == (x, y, z)

    def test_permutations(self):
        """Test the two swapping planes."""
        assert Plane.ZY_X.to_grid(1, 2, 3) == (3, 2, 1)
        assert Plane.XZ_Y.to_grid(1, 2, 3) == (1, 3, 2)
        assert Plane.ZY_X.logical_shape((4, 3, 2)) == (2, 3, 4)
        assert Plane.XZ_Y.logical_shape((4, 3, 2)) == (4, 2, 3)

    def test_view_matches_translation(self):
        """view()[logical] equals the grid cell at to_grid(logical)."""
        cube = random_cube((4, 3, 2))
        for plane in Plane:
            logical = plane.view(cube.data)
            for (x, y, z), block_id in np.ndenumerate(logical):
                assert block_id == cube.get(*plane.to_grid(x, y, z))

    def test_parse(self):
        """Test plane name parsing."""
        assert Plane.parse("XZ_Y") is Plane.XZ_Y
        assert Plane.parse(Plane.ZY_X) is Plane.ZY_X
        with self.assertRaises(PreconditionFailed):
            Plane.parse("diagonal")


class TestIngestion(unittest.TestCase):
    """Tests for size limiting."""

    def test_fit_size(self):
        """Test non-upscaling, aspect-preserving sizes."""
        assert fit_size(100, 50, 10, None) == (10, 5)
        assert fit_size(100, 50, None, 10) == (20, 10)
        assert fit_size(100, 50, 40, 10) == (20, 10)
        assert fit_size(100, 50, 200, 200) == (100, 50)
        assert fit_size(100, 50, None, None) == (100, 50)
        assert fit_size(100, 50, -1, -1) == (100, 50)

    def test_limit_scale_averages(self):
        """Downscaling averages the covered pixels."""
        raster = np.zeros((2, 4, 3), dtype=np.uint8)
        raster[:, 0::2] = 200
        scaled = limit_scale(raster, 2, None)
        assert scaled.shape == (1, 2, 3)
        assert np.all(np.abs(scaled.astype(int) - 100) <= 1)


class TestVoxelizer(unittest.TestCase):
    """Tests for the voxelizer."""

    def test_grayscale_rejected(self):
        """Single-channel rasters fail with PreconditionFailed."""
        voxelizer = Voxelizer(PALETTE)
        with self.assertRaises(PreconditionFailed):
            voxelizer.voxelize(np.zeros((4, 4), dtype=np.uint8))
        with self.assertRaises(ValueError):
            voxelizer.match_layer(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_orientation(self):
        """Image columns are mirrored and rows counted from the bottom."""
        raster = np.zeros((2, 3, 3), dtype=np.uint8)
        raster[:, :] = [0, 0, 255]
        raster[0, 0] = [255, 0, 0]     # top-left
        raster[1, 2] = [0, 255, 0]     # bottom-right

        cube = Voxelizer(PALETTE).voxelize(raster)

        assert cube.shape == (3, 2, 1)
        assert cube.get(2, 1, 0) == "red"
        assert cube.get(0, 0, 0) == "green"
        assert cube.get(1, 0, 0) == "blue"
        assert cube.is_complete()

    def test_resize(self):
        """Size limits shrink the grid without upscaling."""
        raster = np.full((50, 100, 3), [255, 0, 0], dtype=np.uint8)
        assert Voxelizer(PALETTE, max_width=10).voxelize(raster).shape == (10, 5, 1)
        assert Voxelizer(PALETTE, max_width=1000).voxelize(raster).shape == (100, 50, 1)

    def test_ids_come_from_palette(self):
        """Every cell holds an id from the palette."""
        rng = np.random.default_rng(2)
        raster = rng.integers(0, 256, size=(8, 8, 3), dtype=np.uint8)
        cube = Voxelizer(PALETTE).voxelize(raster)
        assert set(cube.block_ids()) <= {entry.block_id for entry in PALETTE}

    def test_empty_palette(self):
        """Voxelizing with an empty palette fails fast."""
        with self.assertRaises(PreconditionFailed):
            Voxelizer([]).voxelize(np.zeros((2, 2, 3), dtype=np.uint8))

    def test_usage_counts(self):
        """Usage counts every matched pixel."""
        raster = np.zeros((2, 2, 3), dtype=np.uint8)
        raster[:, :] = [255, 0, 0]
        raster[0, 0] = [0, 0, 255]
        usage = Counter()
        Voxelizer(PALETTE, usage=usage).voxelize(raster)
        assert usage == Counter({"red": 3, "blue": 1})

    def test_frames(self):
        """Frames stack along z in arrival order."""
        frames = [np.full((2, 2, 3), color, dtype=np.uint8)
                  for color in ([255, 0, 0], [0, 255, 0], [0, 0, 255])]
        cube = voxelize_frames(iter(frames), PALETTE)
        assert cube.shape == (2, 2, 3)
        assert [cube.get(0, 0, z) for z in range(3)] == ["red", "green", "blue"]

    def test_frame_cap(self):
        """The frame count is clamped to the smaller of stream and cap."""
        frames = [np.full((2, 2, 3), 255, dtype=np.uint8) for _ in range(5)]
        assert voxelize_frames(iter(frames), PALETTE, max_frames=3).size_z == 3
        assert voxelize_frames(iter(frames), PALETTE, max_frames=10, frame_count=5).size_z == 5

    def test_short_stream(self):
        """A stream ending early trims the cube."""
        frames = [np.full((2, 2, 3), 255, dtype=np.uint8) for _ in range(2)]
        cube = voxelize_frames(iter(frames), PALETTE, frame_count=6)
        assert cube.size_z == 2
        assert cube.is_complete()

    def test_no_frames(self):
        """An empty stream gives an empty cube."""
        assert voxelize_frames(iter([]), PALETTE).is_empty


class TestCommandEncoder(unittest.TestCase):
    """Tests for fill command generation."""

    def test_single_run(self):
        """A row of identical blocks is one command."""
        cube = BlockCube.from_rows([["stone", "stone"]])
        assert encode_commands(cube) == [
            "execute as @p at @s run fill ~0 ~0 ~0 ~1 ~0 ~0 stone replace"
        ]

    def test_run_boundaries(self):
        """Runs close where the id changes and at the row end."""
        cube = BlockCube.from_rows([["a", "a", "b", "a"]])
        runs = list(row_runs(cube, 0, 0))
        assert [(r.block_id, r.start[0], r.end[0]) for r in runs] == [
            ("a", 0, 1), ("b", 2, 2), ("a", 3, 3)
        ]

    def test_runs_cover_rows(self):
        """Runs tile every row exactly, matching the cells they span."""
        cube = random_cube((9, 4, 3), seed=5)
        for z in range(cube.size_z):
            for y in range(cube.size_y):
                next_x = 0
                for run in row_runs(cube, y, z):
                    assert run.start[0] == next_x
                    for x in range(run.start[0], run.end[0] + 1):
                        assert cube.get(x, y, z) == run.block_id
                    next_x = run.end[0] + 1
                assert next_x == cube.size_x

    def test_order(self):
        """Commands go z-outer, y-middle, x-inner."""
        cube = BlockCube.from_array(np.array([[["a", "b"], ["c", "d"]]], dtype=object))
        ids = [line.split()[-2] for line in encode_commands(cube)]
        assert ids == ["a", "c", "b", "d"]

    def test_plane_positions(self):
        """Positions are written in logical axis order."""
        cube = BlockCube.from_rows([["stone", "stone"]])
        assert encode_commands(cube, Plane.ZY_X) == [
            "execute as @p at @s run fill ~0 ~0 ~0 ~0 ~0 ~1 stone replace"
        ]
        assert encode_commands(cube, Plane.XZ_Y) == [
            "execute as @p at @s run fill ~0 ~0 ~0 ~1 ~0 ~0 stone replace"
        ]

    def test_legacy_and_offset(self):
        """Legacy execute syntax and position offset."""
        cube = BlockCube.from_rows([["stone"]])
        encoder = CommandEncoder(offset=(1, 2, 3), legacy=True)
        assert encoder.encode(cube) == [
            "execute @p ~0 ~0 ~0 fill ~1 ~2 ~3 ~1 ~2 ~3 stone replace"
        ]

    def test_empty_cube(self):
        """An empty cube gives no commands."""
        assert encode_commands(BlockCube(0, 0, 0)) == []

    def test_builders(self):
        """Test command builders."""
        assert fill("dirt", (0, 0, 0), (1, 1, 1)) == "fill 0 0 0 1 1 1 dirt replace"
        assert fill("dirt", (1, 2, 3), (1, 2, 3), PosMode.LOCAL, slash=True) == "/fill ^1 ^2 ^3 ^1 ^2 ^3 dirt replace"


class TestNbt(unittest.TestCase):
    """Tests for the tag writer and reader."""

    def test_compound_roundtrip(self):
        """Written tags read back as plain values."""
        root = (nbt.Compound()
                .add("byte", nbt.Byte(-3))
                .add("long", nbt.Long(2 ** 40))
                .add("name", nbt.String("héllo"))
                .add("ints", nbt.IntList([1, -1, 7]))
                .add("empty", nbt.List())
                .add("nested", nbt.Compound().add("d", nbt.Int(5))))
        name, value = nbt.loads(nbt.dumps(root, "root"))
        assert name == "root"
        assert value == {
            "byte": -3, "long": 2 ** 40, "name": "héllo", "ints": [1, -1, 7],
            "empty": [], "nested": {"d": 5},
        }

    def test_little_endian_header(self):
        """The root header is type, uint16 name length, name."""
        raw = nbt.dumps(nbt.Int(1), "ab")
        assert raw == b"\x03\x02\x00ab\x01\x00\x00\x00"

    def test_list_type_check(self):
        """Lists reject elements of the wrong type."""
        with self.assertRaises(TypeError):
            nbt.List(nbt.TagType.INT, [nbt.String("x")])

    def test_truncated(self):
        """Truncated data is rejected."""
        raw = nbt.dumps(nbt.Compound().add("a", nbt.Int(1)))
        with self.assertRaises(ValueError):
            nbt.loads(raw[:-3])

    def test_negative_count(self):
        """A negative list or array length is rejected."""
        raw = nbt.dumps(nbt.Compound().add("ints", nbt.IntList([7, 9])))
        count = struct.pack("<i", 2)
        assert raw.count(count) == 1
        with self.assertRaises(ValueError):
            nbt.loads(raw.replace(count, struct.pack("<i", -1)))


class TestStructureEncoder(unittest.TestCase):
    """Tests for structure encoding."""

    def test_single_air(self):
        """A single air cell."""
        data = encode_structure(BlockCube.from_rows([["air"]]))
        assert data.palette == ["air"]
        assert data.primary == [0]
        assert data.secondary == [NO_EXTRA_DATA]
        assert data.size == (1, 1, 1)

    def test_first_seen_palette(self):
        """The palette keeps first-seen order over x-outer iteration."""
        cube = BlockCube.from_array(np.array(
            [[["b"], ["a"]], [["a"], ["c"]]], dtype=object))
        data = encode_structure(cube)
        assert data.palette == ["b", "a", "c"]
        assert data.primary == [0, 1, 1, 2]

    def test_roundtrip(self):
        """Decoding through the palette reproduces every logical cell."""
        cube = random_cube((5, 4, 3), seed=3)
        for plane in Plane:
            data = loads(dumps(encode_structure(cube, plane)))
            assert data.size == plane.logical_shape(cube.shape)
            assert len(data.primary) == len(data.secondary) == cube.size
            for (x, y, z), block_id in data.decode().items():
                assert block_id == cube.get(*plane.to_grid(x, y, z))

    def test_document_layout(self):
        """Field names and order of the written document."""
        _, root = nbt.loads(dumps(encode_structure(BlockCube.from_rows([["stone"]]))))
        assert list(root) == ["format_version", "size", "structure", "structure_world_origin"]
        assert root["format_version"] == 1
        assert root["structure_world_origin"] == [0, 0, 0]
        structure = root["structure"]
        assert list(structure) == ["block_indices", "entities", "palette"]
        assert structure["entities"] == []
        default = structure["palette"]["default"]
        assert default["block_position_data"] == {}
        assert default["block_palette"] == [
            {"states": {}, "version": 18103297, "name": "stone"}
        ]

    def test_corrupt_size(self):
        """A structure with a negative size length fails with ValueError."""
        raw = dumps(encode_structure(BlockCube.from_rows([["stone"]])))
        header = b"\x09\x04\x00size\x03" + struct.pack("<i", 3)
        assert header in raw
        corrupt = raw.replace(header, b"\x09\x04\x00size\x03" + struct.pack("<i", -1))
        with self.assertRaises(ValueError):
            loads(corrupt)

    def test_unset_cells(self):
        """Cells that were never filled cannot be encoded."""
        with self.assertRaises(PreconditionFailed):
            encode_structure(BlockCube(2, 1, 1))

    def test_air_volume(self):
        """The air placeholder has the same layout."""
        data = loads(dumps(encode_air((2, 3, 4))))
        assert data.size == (2, 3, 4)
        assert data.palette == ["minecraft:air"]
        assert data.primary == [0] * 24
        assert data.secondary == [NO_EXTRA_DATA] * 24

    def test_export(self):
        """Test writing and reading a structure file."""
        cube = random_cube((3, 2, 1))
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "data.mcstructure"
            StructureExporter(Plane.XZ_Y).export(cube, path)
            data = load_structure(path)
        assert data.size == (3, 1, 2)

    def test_not_a_structure(self):
        """Documents without structure fields are rejected."""
        with self.assertRaises(ValueError):
            loads(nbt.dumps(nbt.Compound().add("a", nbt.Int(1))))


if __name__ == "__main__":
    unittest.main(verbosity=2)
