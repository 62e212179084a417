"""
Plane Conventions for Block Placement

A BlockCube is built with x = image column, y = image row (bottom-up)
and z = frame index. A Plane decides which world axes those map to when
the cube is written out:

- XY_Z: the image stands in the XY plane, frames advance along Z
- ZY_X: the image stands in the ZY plane, frames advance along X
- XZ_Y: the image lies flat in the XZ plane, frames advance along Y

Every permutation used here swaps at most two axes, so each one is its
own inverse: the same mapping takes logical coordinates to grid
coordinates and grid coordinates back to logical ones.
"""

from enum import Enum
from typing import Callable, Tuple, Union
import numpy as np

from .errors import PreconditionFailed


Coord = Tuple[int, int, int]


class Plane(Enum):
    """Axis permutation between a BlockCube and the world."""
    XY_Z = "xy_z"
    ZY_X = "zy_x"
    XZ_Y = "xz_y"

    @classmethod
    def parse(cls, name: Union[str, "Plane"]) -> "Plane":
        """Accept a Plane or its case-insensitive name."""
        if isinstance(name, Plane):
            return name
        try:
            return cls(name.lower())
        except ValueError:
            raise PreconditionFailed(
                f"Unknown plane {name!r}; expected one of "
                f"{', '.join(p.value for p in cls)}"
            ) from None

    @property
    def axes(self) -> Coord:
        """Grid axis feeding each logical axis (x, y, z)."""
        return _PLANE_AXES[self]

    def to_grid(self, x: int, y: int, z: int) -> Coord:
        """Translate a logical coordinate into grid coordinates."""
        coord = (x, y, z)
        ax = self.axes
        return (coord[ax[0]], coord[ax[1]], coord[ax[2]])

    def to_logical(self, x: int, y: int, z: int) -> Coord:
        """Translate a grid coordinate into logical coordinates."""
        # Every permutation is an involution
        return self.to_grid(x, y, z)

    def logical_shape(self, shape: Coord) -> Coord:
        """(width, height, depth) of a grid of the given shape."""
        return self.to_grid(*shape)

    def view(self, data: np.ndarray) -> np.ndarray:
        """
        Logical view of a grid array.

        The result is a numpy transpose, so no cell data is copied;
        ``view(data)[x, y, z]`` is the grid cell at ``to_grid(x, y, z)``.
        """
        return np.transpose(data, self.axes)

    @property
    def is_upright(self) -> bool:
        """True when the image stands vertically in the world."""
        return self is not Plane.XZ_Y


_PLANE_AXES = {
    Plane.XY_Z: (0, 1, 2),
    Plane.ZY_X: (2, 1, 0),
    Plane.XZ_Y: (0, 2, 1),
}


def remap(shape: Coord, plane: Plane) -> Tuple[Callable[[int, int, int], Coord], Coord]:
    """
    Coordinate translation for a grid under a plane.

    Args:
        shape: Physical grid shape (x, y, z)
        plane: Plane convention

    Returns:
        Tuple of (logical-to-grid function, logical (width, height, depth))
    """
    return plane.to_grid, plane.logical_shape(shape)
