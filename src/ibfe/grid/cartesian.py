"""
Uniform Cartesian grid and patch data.

The coupling engine consumes Eulerian fields through a narrow interface:
ghost-extended numpy arrays, their centering, and the grid geometry. This
module provides a single-patch implementation of that interface with
cell-centered and side-centered (staggered, MAC) storage, periodic ghost
filling and periodic ghost accumulation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

import numpy as np


class DataCentering(str, Enum):
    """Location of the degrees of freedom inside a grid cell."""

    CELL = "CELL"
    SIDE = "SIDE"


@dataclass
class CartesianGrid:
    """
    Uniform Cartesian grid covering a rectangular domain.

    Parameters
    ----------
    x_lower : Sequence[float]
        Lower corner of the domain.
    x_upper : Sequence[float]
        Upper corner of the domain.
    n_cells : Sequence[int]
        Number of cells per direction.
    periodic : Sequence[bool], optional
        Periodicity flags per direction; default non-periodic.
    """

    x_lower: Sequence[float]
    x_upper: Sequence[float]
    n_cells: Sequence[int]
    periodic: Optional[Sequence[bool]] = None
    dx: np.ndarray = field(init=False)

    def __post_init__(self):
        self.x_lower = np.asarray(self.x_lower, dtype=float)
        self.x_upper = np.asarray(self.x_upper, dtype=float)
        self.n_cells = np.asarray(self.n_cells, dtype=np.int64)
        if not (self.x_lower.shape == self.x_upper.shape == self.n_cells.shape):
            raise ValueError("x_lower, x_upper and n_cells must have the same length")
        if self.dim not in (2, 3):
            raise ValueError(f"Unsupported grid dimension: {self.dim}")
        if np.any(self.x_upper <= self.x_lower):
            raise ValueError("x_upper must be larger than x_lower in every direction")
        if np.any(self.n_cells < 2):
            raise ValueError("at least two cells are needed per direction")
        if self.periodic is None:
            self.periodic = (False,) * self.dim
        self.periodic = tuple(bool(p) for p in self.periodic)
        if len(self.periodic) != self.dim:
            raise ValueError("periodic must have one flag per direction")
        self.dx = (self.x_upper - self.x_lower) / self.n_cells

    @property
    def dim(self) -> int:
        return int(self.x_lower.size)

    @property
    def cell_volume(self) -> float:
        return float(np.prod(self.dx))

    @property
    def dx_min(self) -> float:
        return float(np.min(self.dx))

    @property
    def extent(self) -> np.ndarray:
        return self.x_upper - self.x_lower

    def allocate(self, centering: DataCentering, ghost_width: int, depth: int = 1) -> "GridData":
        """Allocate zero-initialized patch data with the given ghost width."""
        return GridData(self, DataCentering(centering), ghost_width, depth)


class GridData:
    """
    Ghost-extended data on a single patch covering the whole grid.

    Side-centered data has one component per direction, component ``d``
    living on the faces normal to ``d``. Cell-centered data has ``depth``
    components. ``arrays[c]`` includes ``ghost_width`` layers on every side.

    Parameters
    ----------
    grid : CartesianGrid
        Underlying grid.
    centering : DataCentering
        Data centering.
    ghost_width : int
        Number of ghost layers.
    depth : int
        Number of components of cell-centered data (ignored for side data).
    """

    def __init__(self, grid: CartesianGrid, centering: DataCentering, ghost_width: int, depth: int = 1):
        if ghost_width < 0:
            raise ValueError("ghost_width must be non-negative")
        self.grid = grid
        self.centering = DataCentering(centering)
        self.ghost_width = int(ghost_width)
        n_comps = grid.dim if self.centering == DataCentering.SIDE else int(depth)
        self.arrays: List[np.ndarray] = [np.zeros(self.padded_shape(c)) for c in range(n_comps)]

    @property
    def depth(self) -> int:
        return len(self.arrays)

    def interior_shape(self, comp: int) -> tuple:
        shape = self.grid.n_cells.copy()
        if self.centering == DataCentering.SIDE:
            shape[comp] += 1
        return tuple(int(n) for n in shape)

    def padded_shape(self, comp: int) -> tuple:
        return tuple(n + 2 * self.ghost_width for n in self.interior_shape(comp))

    def origin(self, comp: int) -> np.ndarray:
        """Physical coordinates of padded index ``(0, ..., 0)`` of component ``comp``."""
        offset = np.full(self.grid.dim, 0.5)
        if self.centering == DataCentering.SIDE:
            offset[comp] = 0.0
        return self.grid.x_lower + (offset - self.ghost_width) * self.grid.dx

    def point_coordinates(self, comp: int) -> np.ndarray:
        """Coordinates of every padded point, shape ``padded_shape(comp) + (dim,)``."""
        axes = [
            self.origin(comp)[d] + self.grid.dx[d] * np.arange(n)
            for d, n in enumerate(self.padded_shape(comp))
        ]
        return np.stack(np.meshgrid(*axes, indexing="ij"), axis=-1)

    def interior_slices(self, comp: int, unique: bool = False) -> tuple:
        """Slices selecting interior points; ``unique`` drops periodic duplicate faces."""
        g = self.ghost_width
        slices = []
        for d, n in enumerate(self.interior_shape(comp)):
            if unique and self.centering == DataCentering.SIDE and d == comp and self.grid.periodic[d]:
                n -= 1
            slices.append(slice(g, g + n))
        return tuple(slices)

    def interior(self, comp: int, unique: bool = False) -> np.ndarray:
        return self.arrays[comp][self.interior_slices(comp, unique)]

    def fill(self, value: float = 0.0) -> None:
        for arr in self.arrays:
            arr.fill(value)

    def set_from_function(self, fcn: Callable[[np.ndarray, int], np.ndarray]) -> None:
        """Set every padded value (ghosts included) from ``fcn(coords, comp)``."""
        for c in range(self.depth):
            self.arrays[c][...] = fcn(self.point_coordinates(c), c)

    def copy(self) -> "GridData":
        other = GridData(self.grid, self.centering, self.ghost_width, self.depth)
        other.arrays = [arr.copy() for arr in self.arrays]
        return other

    # =========================================================================
    # Ghost handling
    # =========================================================================

    def _periodic_map(self, comp: int, axis: int) -> np.ndarray:
        g = self.ghost_width
        length = self.padded_shape(comp)[axis]
        return (np.arange(length) - g) % int(self.grid.n_cells[axis]) + g

    def fill_ghost_cells(self) -> None:
        """
        Fill ghost values from interior values.

        Periodic directions copy periodic images (and make duplicate periodic
        faces consistent); non-periodic directions use linear extrapolation.
        """
        g = self.ghost_width
        for c in range(self.depth):
            arr = self.arrays[c]
            for axis in range(self.grid.dim):
                if self.grid.periodic[axis]:
                    arr = np.take(arr, self._periodic_map(c, axis), axis=axis)
                elif g > 0:
                    b = np.moveaxis(arr, axis, 0)
                    n = self.interior_shape(c)[axis]
                    lo, hi = g, g + n - 1
                    for k in range(1, g + 1):
                        b[lo - k] = b[lo] + k * (b[lo] - b[lo + 1])
                        b[hi + k] = b[hi] + k * (b[hi] - b[hi - 1])
            self.arrays[c] = np.ascontiguousarray(arr)

    def accumulate_ghost_values(self) -> None:
        """
        Fold values deposited in ghost regions back onto the interior.

        Periodic directions add every ghost (and duplicate face) value onto
        its periodic image; non-periodic ghost values are discarded.
        """
        g = self.ghost_width
        for c in range(self.depth):
            arr = self.arrays[c]
            for axis in range(self.grid.dim):
                b = np.moveaxis(arr, axis, 0)
                if self.grid.periodic[axis]:
                    src = self._periodic_map(c, axis)
                    folded = np.zeros_like(b)
                    np.add.at(folded, src, b)
                    b = np.take(folded, src, axis=0)
                elif g > 0:
                    b = b.copy()
                    b[:g] = 0.0
                    b[b.shape[0] - g:] = 0.0
                arr = np.moveaxis(b, 0, axis)
            self.arrays[c] = np.ascontiguousarray(arr)

    # =========================================================================
    # Reductions
    # =========================================================================

    def integral(self, comp: int) -> float:
        """Sum of unique interior values times the cell volume."""
        return float(np.sum(self.interior(comp, unique=True)) * self.grid.cell_volume)

    def inner_product(self, other: "GridData") -> float:
        """Discrete L2 inner product over unique interior points."""
        if other.centering != self.centering or other.depth != self.depth:
            raise ValueError("inner product needs data with matching centering and depth")
        total = 0.0
        for c in range(self.depth):
            total += float(np.sum(self.interior(c, unique=True) * other.interior(c, unique=True)))
        return total * self.grid.cell_volume
