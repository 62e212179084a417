"""
Unit tests for pack assembly, the block catalog and previews.
"""

import sys
from pathlib import Path
import json
import numpy as np
import tempfile
import unittest
import zipfile
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from blockart.catalog import (Alignment, Attribute, Face, Version, filter_entries,
                              load_catalog, load_palette, palette_for_plane,
                              parse_catalog, refresh_catalog_colors)
from blockart.color import Color, PaletteEntry
from blockart.errors import PreconditionFailed
from blockart.pack import (ControlState, CounterMachine, PackManifest, PackType,
                           assemble, build_frame_pack, build_function_pack,
                           build_structure_pack, control_script, frame_control_script,
                           namespace)
from blockart.planes import Plane
from blockart.preview import render_block_image
from blockart.tree import PackTree, compress_pack
from blockart.voxelizer import BlockCube


def make_catalog() -> dict:
    return {
        "blocks": [
            {
                "ids": [{"id": "minecraft:stone", "version": [1, 0, 0]}],
                "texture": {"side": "stone.png"},
                "rgbColor": {"side": "7D7D7D"},
                "debutVersion": [1, 0, 0],
                "direction": ["x", "y"],
            },
            {
                "ids": [{"id": "minecraft:log", "version": [1, 0, 0]}],
                "texture": {"side": "log.png", "top": "log_top.png"},
                "rgbColor": {"side": "6B5133", "top": "9A7B4F"},
                "debutVersion": [1, 0, 0],
                "direction": ["y"],
                "burnable": True,
            },
            {
                "ids": [
                    {"id": "minecraft:concrete", "version": [1, 12, 0]},
                    {"id": "minecraft:white_concrete", "version": [1, 19, 70]},
                ],
                "texture": {"side": "concrete.png", "top": "concrete.png"},
                "rgbColor": {"side": "CFD5D6", "top": "CFD5D6"},
                "debutVersion": [1, 12, 0],
                "direction": ["x", "y"],
            },
        ]
    }


class TestChunking(unittest.TestCase):
    """Tests for chunk partitioning."""

    def test_sizes(self):
        """25 commands in chunks of 10."""
        commands = [f"say {i}" for i in range(25)]
        chunks = assemble(commands, 10)
        assert [index for index, _ in chunks] == [0, 1, 2]
        assert [len(chunk) for _, chunk in chunks] == [10, 10, 5]

    def test_coverage(self):
        """Chunks concatenate back to the input."""
        for count in (1, 9, 10, 11, 37):
            commands = [f"say {i}" for i in range(count)]
            for size in (1, 3, 10, 100):
                chunks = assemble(commands, size)
                joined = [c for _, chunk in chunks for c in chunk]
                assert joined == commands
                assert 1 <= len(chunks[-1][1]) <= size

    def test_empty(self):
        """No commands, no chunks."""
        assert assemble([], 10) == []

    def test_bad_size(self):
        """Non-positive chunk sizes fail fast."""
        with self.assertRaises(PreconditionFailed):
            assemble(["say hi"], 0)
        with self.assertRaises(PreconditionFailed):
            assemble(["say hi"], -5)


class TestControlScript(unittest.TestCase):
    """Tests for the tick-driven counter machine."""

    def test_states(self):
        """RUNNING until the counter reaches the step count."""
        machine = CounterMachine("p", 3)
        assert machine.state(0) is ControlState.RUNNING
        assert machine.state(2) is ControlState.RUNNING
        assert machine.state(3) is ControlState.EXHAUSTED

    def test_state_guards(self):
        """Only RUNNING values dispatch and only the EXHAUSTED value tears down."""
        machine = CounterMachine("p", 2)
        assert machine.dispatch(1, "say go") == "execute if score p_Dummy p_Control matches 1 run say go"
        with self.assertRaises(PreconditionFailed):
            machine.dispatch(2, "say go")
        with self.assertRaises(PreconditionFailed):
            machine.dispatch(-1, "say go")
        with self.assertRaises(PreconditionFailed):
            machine.teardown(1)
        assert machine.teardown(2, ["say bye"])[1] == "execute if score p_Dummy p_Control matches 2 run say bye"

    def test_script_walk(self):
        """The script dispatches every RUNNING value before the teardown."""
        lines = CounterMachine("p", 3).script(lambda i: f"say {i}")
        assert [line.rsplit(" run ", 1)[1] for line in lines] == [
            "say 0", "say 1", "say 2", "scoreboard players add p_Dummy p_Control 1",
            "tickingarea remove p_Tickarea", "scoreboard objectives remove p_Control",
        ]

    def test_dispatch_and_teardown(self):
        """One dispatch per chunk, then increment and teardown."""
        chunks = assemble(["a", "b", "c"], 2)
        assert control_script(chunks, "p") == [
            "execute if score p_Dummy p_Control matches 0 run function p/data/d0",
            "execute if score p_Dummy p_Control matches 1 run function p/data/d1",
            "execute if score p_Dummy p_Control matches 0.. run scoreboard players add p_Dummy p_Control 1",
            "execute if score p_Dummy p_Control matches 2 run tickingarea remove p_Tickarea",
            "execute if score p_Dummy p_Control matches 2 run scoreboard objectives remove p_Control",
        ]

    def test_empty(self):
        """Without chunks only the teardown remains, guarded by zero."""
        assert control_script([], "p") == [
            "execute if score p_Dummy p_Control matches 0 run tickingarea remove p_Tickarea",
            "execute if score p_Dummy p_Control matches 0 run scoreboard objectives remove p_Control",
        ]

    def test_setup(self):
        """Start statements cover the build area."""
        assert CounterMachine("p", 1).setup((4, 3, 1)) == [
            "scoreboard objectives add p_Control dummy",
            "tickingarea add ~~~ ~3 ~2 ~0 p_Tickarea",
            "execute unless score p_Dummy p_Control matches 0.. run scoreboard players set p_Dummy p_Control 0",
        ]

    def test_frame_script(self):
        """Frames load at the marker and teardown removes it."""
        lines = frame_control_script(2, "v")
        assert lines[0] == ("execute as @e[name=__v,c=1] at @s if score v_Dummy v_Control "
                            "matches 0 run structure load v:d0 ~~~")
        assert lines[1].endswith("structure load v:d1 ~~~")
        assert "kill @e[type=armor_stand,name=__v]" in lines[-2]
        assert lines[-1].endswith("scoreboard objectives remove v_Control")


class TestPackAssembly(unittest.TestCase):
    """Tests for pack trees."""

    def test_manifest(self):
        """Manifest fields and defaults."""
        manifest = PackManifest("art", "my art", pack_type=PackType.RESOURCES)
        document = json.loads(manifest.to_json())
        assert manifest.prefix == "art"
        assert document["format_version"] == 2
        assert document["header"]["name"] == "art"
        assert document["header"]["version"] == [1, 0, 0]
        assert document["header"]["min_engine_version"] == [1, 19, 70]
        assert document["modules"][0]["type"] == "resources"
        assert document["header"]["uuid"] != document["modules"][0]["uuid"]

    def test_prefix_namespace(self):
        """Prefixes are folded into lowercase identifiers."""
        assert PackManifest("My Photo.v2").prefix == "my_photo_v2"
        assert PackManifest("art", prefix="Big-Art").prefix == "big_art"
        assert namespace("clip_01") == "clip_01"

    def test_empty_name(self):
        """A pack needs a name."""
        with self.assertRaises(PreconditionFailed):
            PackManifest("")

    def test_function_pack(self):
        """Function pack layout."""
        commands = [f"say {i}" for i in range(5)]
        tree = build_function_pack(commands, PackManifest("art", prefix="a"), (2, 2, 1), 2)

        assert "manifest.json" in tree
        assert "pack_icon.png" in tree
        assert tree.read_file("functions/a/data/d0.mcfunction") == "say 0\nsay 1\n"
        assert tree.read_file("functions/a/data/d2.mcfunction") == "say 4\n"
        assert "functions/a/data/d3.mcfunction" not in tree
        assert "function a/data/d2" in tree.read_file("functions/a/aux/control.mcfunction")
        assert "functions/a/start.mcfunction" in tree
        assert json.loads(tree.read_file("functions/tick.json")) == {"values": ["a/aux/control"]}

    def test_structure_pack(self):
        """Structure pack layout."""
        tree = build_structure_pack(b"\x0a\x00\x00\x00", PackManifest("art"))
        assert tree.read_file("structures/art/data.mcstructure") == b"\x0a\x00\x00\x00"

    def test_frame_pack(self):
        """Detached frame pack layout."""
        tree = build_frame_pack([b"0", b"1"], PackManifest("clip"), (3, 2, 1))
        assert tree.read_file("structures/clip/d1.mcstructure") == b"1"
        assert "summon minecraft:armor_stand __clip" in tree.read_file("functions/clip/setO.mcfunction")
        play = tree.read_file("functions/clip/play.mcfunction")
        assert "execute as @e[name=__clip,c=1] at @s run tickingarea add ~~~ ~2 ~1 ~0 clip_Tickarea" in play
        assert json.loads(tree.read_file("functions/tick.json")) == {"values": ["clip/aux/control"]}


class TestPackTree(unittest.TestCase):
    """Tests for writing and compressing trees."""

    def test_write(self):
        """Files land under target/name."""
        tree = PackTree("pack")
        tree.write_file("a/b.txt", "hi")
        tree.write_file("c.bin", b"\x00\x01")
        tree.append_line("a/log.txt", "one")
        tree.append_line("a/log.txt", "two")

        with tempfile.TemporaryDirectory() as tmp:
            root = tree.write(tmp)
            assert root == Path(tmp) / "pack"
            assert (root / "a" / "b.txt").read_text() == "hi"
            assert (root / "c.bin").read_bytes() == b"\x00\x01"
            assert (root / "a" / "log.txt").read_text() == "one\ntwo\n"

            with self.assertRaises(FileExistsError):
                tree.write(tmp, overwrite=False)

    def test_escape(self):
        """Paths may not leave the tree."""
        tree = PackTree("pack")
        with self.assertRaises(ValueError):
            tree.write_file("../evil.txt", "x")

    def test_compress(self):
        """Archive entries are prefixed with the directory name."""
        tree = PackTree("pack")
        tree.write_file("manifest.json", "{}")
        tree.write_file("functions/x.mcfunction", "say hi\n")

        with tempfile.TemporaryDirectory() as tmp:
            package = compress_pack(tree.write(tmp))
            assert package == Path(tmp) / "pack.mcpack"
            assert not (Path(tmp) / "pack").exists()
            with zipfile.ZipFile(package) as zf:
                assert sorted(zf.namelist()) == ["pack/functions/x.mcfunction", "pack/manifest.json"]


class TestCatalog(unittest.TestCase):
    """Tests for catalog parsing and filtering."""

    def test_parse(self):
        """Test entry parsing."""
        entries = parse_catalog(make_catalog())
        assert len(entries) == 3
        assert entries[1].attribute == Attribute.BURNABLE
        assert entries[1].alignment == Alignment.VERTICAL
        assert entries[1].colors[Face.TOP] == Color.from_hex("9A7B4F")

    def test_malformed(self):
        """Missing fields are precondition failures."""
        catalog = make_catalog()
        del catalog["blocks"][0]["ids"]
        with self.assertRaises(PreconditionFailed):
            parse_catalog(catalog)
        with self.assertRaises(PreconditionFailed):
            parse_catalog({"items": []})

    def test_upright_palette(self):
        """Upright planes use side colours of vertically placeable blocks."""
        palette = palette_for_plane(parse_catalog(make_catalog()), Plane.XY_Z)
        assert [entry.block_id for entry in palette] == [
            "minecraft:stone", "minecraft:log", "minecraft:concrete"
        ]
        assert palette[1].color == Color.from_hex("6B5133")
        assert palette[1].texture == "log.png"

    def test_flat_palette(self):
        """Flat planes use top colours of horizontally placeable blocks."""
        palette = palette_for_plane(parse_catalog(make_catalog()), Plane.XZ_Y)
        assert [entry.block_id for entry in palette] == ["minecraft:stone", "minecraft:concrete"]
        assert palette[0].color == Color.from_hex("7D7D7D")

    def test_attribute_filter(self):
        """Blocks with disallowed attributes are dropped."""
        entries = parse_catalog(make_catalog())
        palette = filter_entries(entries, Face.SIDE, Alignment.VERTICAL,
                                 attribute=Attribute.ALL & ~Attribute.BURNABLE)
        assert "minecraft:log" not in [entry.block_id for entry in palette]

    def test_version_filter(self):
        """Old blocks are skipped and ids follow the version."""
        entries = parse_catalog(make_catalog())
        palette = filter_entries(entries, Face.SIDE, Alignment.VERTICAL,
                                 min_version=Version(1, 12, 0))
        assert [entry.block_id for entry in palette] == ["minecraft:concrete"]

        palette = filter_entries(entries, Face.SIDE, Alignment.VERTICAL,
                                 min_version=Version.parse("1.12.5"))
        assert palette == []

        concrete = entries[2]
        assert concrete.block_id(Version(1, 12, 0)) == "minecraft:concrete"
        assert concrete.block_id(Version(1, 19, 0)) == "minecraft:white_concrete"
        assert concrete.block_id(Version(2, 0, 0)) == "minecraft:white_concrete"

    def test_load_palette(self):
        """Test loading from disk."""
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "blocks.json"
            path.write_text(json.dumps(make_catalog()))
            assert len(load_catalog(path)) == 3
            assert len(load_palette(path, Plane.ZY_X)) == 3

            path.write_text("{not json")
            with self.assertRaises(PreconditionFailed):
                load_catalog(path)

    def test_refresh_colors(self):
        """Colours are recomputed from textures."""
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            Image.new("RGB", (2, 2), (10, 20, 30)).save(tmp / "stone.png")
            path = tmp / "blocks.json"
            path.write_text(json.dumps(make_catalog()))

            updated = refresh_catalog_colors(path, tmp)

            document = json.loads(path.read_text())
            assert updated == 1
            assert document["blocks"][0]["rgbColor"]["side"] == "0A141E"
            assert document["blocks"][1]["rgbColor"]["side"] == "6B5133"


class TestPreview(unittest.TestCase):
    """Tests for block preview images."""

    def test_flat_colours(self):
        """Without textures each block is drawn in its colour."""
        red = PaletteEntry("red", "red.png", Color(255, 0, 0))
        blue = PaletteEntry("blue", "blue.png", Color(0, 0, 255))
        cube = BlockCube.from_rows([["red", "blue"]])

        image = np.array(render_block_image(cube, [red, blue], tile=4))

        assert image.shape == (4, 8, 3)
        # x = 0 is the right-hand side of the source picture
        assert tuple(image[0, 7]) == (255, 0, 0)
        assert tuple(image[0, 0]) == (0, 0, 255)

    def test_textures(self):
        """Textures are scaled to the tile size."""
        with tempfile.TemporaryDirectory() as tmp:
            Image.new("RGB", (16, 16), (1, 2, 3)).save(Path(tmp) / "t.png")
            entry = PaletteEntry("t", "t.png", Color(200, 200, 200))
            image = render_block_image(BlockCube.from_rows([["t"]]), [entry], tmp, tile=8)
            assert image.size == (8, 8)
            assert image.getpixel((3, 3)) == (1, 2, 3)


if __name__ == "__main__":
    unittest.main(verbosity=2)
