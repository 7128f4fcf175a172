"""
Physical boundary treatment for spread forces.

Forces spread next to a non-periodic boundary leave part of their stencil in
ghost cells. A boundary policy decides what happens to those contributions
before the ghost values are discarded.
"""

from abc import ABC, abstractmethod

import numpy as np

from ibfe.grid.cartesian import DataCentering, GridData


class PhysicalBoundaryPolicy(ABC):
    """Interface consumed by ``IBFEMethod.spread_force``."""

    @abstractmethod
    def accumulate_from_physical_boundary(self, data: GridData) -> None:
        """Fold ghost contributions across non-periodic boundaries into the interior."""


class ReflectionBoundaryPolicy(PhysicalBoundaryPolicy):
    """
    Reflect ghost contributions across the physical boundary.

    Parameters
    ----------
    normal_sign : float
        Sign applied to the boundary-normal component (side-centered data
        whose component axis is the reflection axis). ``-1`` corresponds to
        a no-penetration condition.
    tangential_sign : float
        Sign applied to every other component. ``-1`` is no-slip, ``+1``
        is free-slip.
    """

    def __init__(self, normal_sign: float = -1.0, tangential_sign: float = -1.0):
        self.normal_sign = float(normal_sign)
        self.tangential_sign = float(tangential_sign)

    def accumulate_from_physical_boundary(self, data: GridData) -> None:
        g = data.ghost_width
        if g == 0:
            return
        for c in range(data.depth):
            for axis in range(data.grid.dim):
                if data.grid.periodic[axis]:
                    continue
                b = np.moveaxis(data.arrays[c], axis, 0)
                n = data.interior_shape(c)[axis]
                on_faces = data.centering == DataCentering.SIDE and c == axis
                sign = self.normal_sign if on_faces else self.tangential_sign
                for k in range(1, g + 1):
                    if on_faces:
                        # Boundary faces sit at g and g + n - 1
                        lower, upper = g + k, g + n - 1 - k
                    else:
                        lower, upper = g + k - 1, g + n - k
                    b[lower] += sign * b[g - k]
                    b[upper] += sign * b[g + n - 1 + k]
                    b[g - k] = 0.0
                    b[g + n - 1 + k] = 0.0
