"""
Pack Assembly

Turns encoded output into an add-on pack tree:

    <name>/
        manifest.json
        pack_icon.png
        functions/
            tick.json
            <prefix>/...
        structures/
            <prefix>/...

Command output is too large for one function file, so it is split into
chunks of at most ``max_chunk_size`` commands. A control function listed
in tick.json runs every tick and drives a small counter machine:

    RUNNING    counter in [0, chunks)   run chunk <counter>, counter += 1
    EXHAUSTED  counter == chunks        remove ticking area and objective

Removing the objective is what stops the machine; the start function
creates it again for the next run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple
import io
import json
import logging
import re
import uuid
import numpy as np
from PIL import Image

from .errors import PreconditionFailed
from .tree import PackTree

logger = logging.getLogger(__name__)


Chunk = Tuple[int, List[str]]

_NAMESPACE_INVALID = re.compile(r"[^a-z0-9_]")


def namespace(text: str) -> str:
    """
    Fold free text into a function/structure namespace.

    Lowercases and replaces every character outside ``[a-z0-9_]`` with
    an underscore, e.g. ``My Photo.v2`` becomes ``my_photo_v2``.
    """
    return _NAMESPACE_INVALID.sub("_", text.lower())


class PackType(Enum):
    DATA = "data"
    RESOURCES = "resources"


@dataclass
class PackManifest:
    """Identity and version information for a pack."""
    name: str
    description: str = ""
    prefix: str = ""
    pack_type: PackType = PackType.DATA
    version: Tuple[int, int, int] = (1, 0, 0)
    min_engine_version: Tuple[int, int, int] = (1, 19, 70)
    format_version: int = 2
    header_uuid: str = field(default_factory=lambda: str(uuid.uuid4()))
    module_uuid: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not self.name:
            raise PreconditionFailed("Pack name must not be empty")
        self.prefix = namespace(self.prefix or self.name)

    def to_json(self) -> str:
        """Render manifest.json."""
        manifest = {
            "format_version": self.format_version,
            "header": {
                "name": self.name,
                "description": self.description,
                "uuid": self.header_uuid,
                "version": list(self.version),
                "min_engine_version": list(self.min_engine_version),
            },
            "modules": [
                {
                    "description": self.description,
                    "type": self.pack_type.value,
                    "uuid": self.module_uuid,
                    "version": list(self.version),
                }
            ],
        }
        return json.dumps(manifest, indent=4)


def render_icon(raster: Optional[np.ndarray] = None, size: int = 64) -> bytes:
    """
    PNG pack icon.

    Args:
        raster: RGB image to thumbnail; a neutral placeholder if None
        size: Icon edge length

    Returns:
        PNG bytes
    """
    if raster is None or raster.size == 0:
        img = Image.new("RGB", (size, size), (96, 96, 96))
    else:
        img = Image.fromarray(np.ascontiguousarray(raster[:, :, :3]))
        img.thumbnail((size, size), Image.Resampling.NEAREST)
        canvas = Image.new("RGB", (size, size), (0, 0, 0))
        canvas.paste(img, ((size - img.width) // 2, (size - img.height) // 2))
        img = canvas

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def assemble(commands: Sequence[str], max_chunk_size: int) -> List[Chunk]:
    """
    Partition commands into contiguous chunks.

    Args:
        commands: Ordered command lines
        max_chunk_size: Maximum commands per chunk

    Returns:
        List of (chunk_index, commands), indices 0-based and contiguous

    Raises:
        PreconditionFailed: If max_chunk_size <= 0
    """
    if max_chunk_size <= 0:
        raise PreconditionFailed(f"max_chunk_size must be positive, got {max_chunk_size}")

    return [
        (index, list(commands[start:start + max_chunk_size]))
        for index, start in enumerate(range(0, len(commands), max_chunk_size))
    ]


class ControlState(Enum):
    RUNNING = "running"
    EXHAUSTED = "exhausted"


@dataclass
class CounterMachine:
    """
    Tick-driven counter over ``steps`` steps.

    The counter lives on a fake scoreboard holder in a per-pack
    objective, both derived from the pack prefix. Values ``0..steps-1``
    are RUNNING and dispatch one step each; ``steps`` is EXHAUSTED and
    fires the teardown.
    """
    prefix: str
    steps: int

    @property
    def objective(self) -> str:
        return f"{self.prefix}_Control"

    @property
    def holder(self) -> str:
        return f"{self.prefix}_Dummy"

    @property
    def ticking_area(self) -> str:
        return f"{self.prefix}_Tickarea"

    def state(self, counter: int) -> ControlState:
        """State for a counter value."""
        if counter < self.steps:
            return ControlState.RUNNING
        return ControlState.EXHAUSTED

    def _condition(self, matches: str) -> str:
        return f"if score {self.holder} {self.objective} matches {matches}"

    def guard(self, matches: str, action: str) -> str:
        return f"execute {self._condition(matches)} run {action}"

    def dispatch(self, step: int, action: str, context: str = "") -> str:
        """
        Run ``action`` while the counter equals ``step``.

        Raises:
            PreconditionFailed: If ``step`` is not a RUNNING counter value
        """
        if step < 0 or self.state(step) is not ControlState.RUNNING:
            raise PreconditionFailed(f"Step {step} is outside 0..{self.steps - 1}")
        if context:
            return f"execute {context} {self._condition(str(step))} run {action}"
        return self.guard(str(step), action)

    def advance(self) -> str:
        """Increment the counter every tick while it is non-negative."""
        return self.guard("0..", f"scoreboard players add {self.holder} {self.objective} 1")

    def teardown(self, counter: int, extra: Sequence[str] = ()) -> List[str]:
        """
        Statements fired when the counter reaches ``counter``.

        Raises:
            PreconditionFailed: If ``counter`` is not the EXHAUSTED value
        """
        if self.state(counter) is not ControlState.EXHAUSTED or counter != self.steps:
            raise PreconditionFailed(f"Teardown must fire at {self.steps}, not {counter}")
        actions = [f"tickingarea remove {self.ticking_area}", *extra,
                   f"scoreboard objectives remove {self.objective}"]
        return [self.guard(str(counter), action) for action in actions]

    def script(
        self,
        step_action: Callable[[int], str],
        extra: Sequence[str] = (),
        context: str = ""
    ) -> List[str]:
        """
        Walk the counter from 0 to ``steps``.

        Each RUNNING value dispatches ``step_action(value)``. The
        EXHAUSTED value adds the increment line (when there was at least
        one step) followed by the teardown.
        """
        lines = []
        for counter in range(self.steps + 1):
            if self.state(counter) is ControlState.RUNNING:
                lines.append(self.dispatch(counter, step_action(counter), context))
                continue
            if self.steps:
                lines.append(self.advance())
            lines.extend(self.teardown(counter, extra))
        return lines

    def setup(self, area: Tuple[int, int, int], context: str = "") -> List[str]:
        """
        Start statements: objective, ticking area, counter reset.

        Args:
            area: Logical (width, height, depth) to keep loaded
            context: Optional ``execute`` prefix for the ticking area origin
        """
        dx, dy, dz = (max(0, int(v) - 1) for v in area)
        tickingarea = f"tickingarea add ~~~ ~{dx} ~{dy} ~{dz} {self.ticking_area}"
        if context:
            tickingarea = f"execute {context} run {tickingarea}"
        return [
            f"scoreboard objectives add {self.objective} dummy",
            tickingarea,
            f"execute unless score {self.holder} {self.objective} matches 0.. "
            f"run scoreboard players set {self.holder} {self.objective} 0",
        ]


def control_script(chunks: Sequence[Chunk], prefix: str) -> List[str]:
    """
    Control function lines for a chunked command pack.

    An empty chunk list yields only the teardown, guarded by counter 0.
    """
    return CounterMachine(prefix, len(chunks)).script(lambda index: f"function {prefix}/data/d{index}")


def marker_name(prefix: str) -> str:
    return f"__{prefix}"


def frame_control_script(frame_count: int, prefix: str) -> List[str]:
    """Control function lines loading one structure per frame."""
    marker = marker_name(prefix)
    return CounterMachine(prefix, frame_count).script(
        lambda i: f"structure load {prefix}:d{i} ~~~",
        [f"kill @e[type=armor_stand,name={marker}]"],
        f"as @e[name={marker},c=1] at @s"
    )


def marker_script(prefix: str) -> List[str]:
    """Summon the invisible marker used as the structure load anchor."""
    marker = marker_name(prefix)
    return [
        f"execute as @p at @s run summon minecraft:armor_stand {marker}",
        f"execute as @e[type=minecraft:armor_stand,name={marker}] at @s "
        f"run effect @s invisibility 999999 0 true",
    ]


def _lines(lines: Sequence[str]) -> str:
    return "".join(f"{line}\n" for line in lines)


def pack_frame(manifest: PackManifest, icon: Optional[bytes] = None) -> PackTree:
    """
    Base tree every pack starts from.

    Returns:
        PackTree with manifest, icon, empty tick.json and function/structure roots
    """
    tree = PackTree(manifest.name)
    tree.write_file("manifest.json", manifest.to_json())
    tree.write_file("pack_icon.png", icon if icon is not None else render_icon())
    tree.write_file("functions/tick.json", json.dumps({"values": []}, indent=4))
    return tree


def _register_tick(tree: PackTree, function_path: str):
    tick = json.loads(tree.read_file("functions/tick.json"))
    tick["values"].append(function_path)
    tree.write_file("functions/tick.json", json.dumps(tick, indent=4))


def build_function_pack(
    commands: Sequence[str],
    manifest: PackManifest,
    area: Tuple[int, int, int],
    max_chunk_size: int = 9000,
    icon: Optional[bytes] = None
) -> PackTree:
    """
    Function pack replaying commands over successive ticks.

    Args:
        commands: Ordered command lines
        manifest: Pack identity
        area: Logical (width, height, depth) of the build
        max_chunk_size: Maximum commands per function file
        icon: PNG icon bytes

    Returns:
        PackTree ready to write
    """
    prefix = manifest.prefix
    chunks = assemble(commands, max_chunk_size)
    tree = pack_frame(manifest, icon)

    for index, chunk in chunks:
        tree.write_file(f"functions/{prefix}/data/d{index}.mcfunction", _lines(chunk))

    tree.write_file(f"functions/{prefix}/aux/control.mcfunction",
                    _lines(control_script(chunks, prefix)))
    tree.write_file(f"functions/{prefix}/start.mcfunction",
                    _lines(CounterMachine(prefix, len(chunks)).setup(area)))
    _register_tick(tree, f"{prefix}/aux/control")

    logger.info("Function pack %s: %d commands in %d chunks",
                manifest.name, len(commands), len(chunks))
    return tree


def build_structure_pack(
    structure: bytes,
    manifest: PackManifest,
    icon: Optional[bytes] = None
) -> PackTree:
    """Pack holding a single structure file."""
    tree = pack_frame(manifest, icon)
    tree.write_file(f"structures/{manifest.prefix}/data.mcstructure", structure)
    return tree


def build_frame_pack(
    frames: Sequence[bytes],
    manifest: PackManifest,
    frame_area: Tuple[int, int, int],
    icon: Optional[bytes] = None
) -> PackTree:
    """
    Pack playing one structure per frame.

    Args:
        frames: Structure file bytes, one per frame
        manifest: Pack identity
        frame_area: Logical (width, height, depth) of one frame
        icon: PNG icon bytes
    """
    prefix = manifest.prefix
    tree = pack_frame(manifest, icon)

    for i, structure in enumerate(frames):
        tree.write_file(f"structures/{prefix}/d{i}.mcstructure", structure)

    machine = CounterMachine(prefix, len(frames))
    tree.write_file(f"functions/{prefix}/aux/control.mcfunction",
                    _lines(frame_control_script(len(frames), prefix)))
    tree.write_file(f"functions/{prefix}/setO.mcfunction", _lines(marker_script(prefix)))
    tree.write_file(f"functions/{prefix}/play.mcfunction",
                    _lines(machine.setup(frame_area, f"as @e[name={marker_name(prefix)},c=1] at @s")))
    _register_tick(tree, f"{prefix}/aux/control")

    logger.info("Frame pack %s: %d frames", manifest.name, len(frames))
    return tree
