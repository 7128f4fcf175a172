"""
Regularized delta-function kernels for Lagrangian-Eulerian interaction.

Each kernel is a one-dimensional function ``phi(r)`` of the distance ``r``
measured in grid-spacing units; the multidimensional kernel is the tensor
product ``delta_h(x) = prod_d phi(x_d / h_d) / h_d``.

All kernels here satisfy the zeroth and first discrete moment conditions,

    sum_i phi(s - i) = 1,    sum_i (s - i) phi(s - i) = 0,

for every shift ``s``, so spreading conserves force and interpolation
reproduces linear fields exactly.
"""

from enum import Enum
from typing import Callable, Dict

import numpy as np

from ibfe.core.exceptions import ConfigurationError


class KernelFunction(str, Enum):
    """Available interaction kernels."""

    PIECEWISE_LINEAR = "PIECEWISE_LINEAR"
    PIECEWISE_CUBIC = "PIECEWISE_CUBIC"
    IB_3 = "IB_3"
    IB_4 = "IB_4"
    BSPLINE_3 = "BSPLINE_3"
    BSPLINE_4 = "BSPLINE_4"


def _piecewise_linear(r: np.ndarray) -> np.ndarray:
    r = np.abs(r)
    return np.where(r < 1.0, 1.0 - r, 0.0)


def _piecewise_cubic(r: np.ndarray) -> np.ndarray:
    r = np.abs(r)
    inner = 1.0 - 0.5 * r - r**2 + 0.5 * r**3
    outer = 1.0 - 11.0 / 6.0 * r + r**2 - r**3 / 6.0
    return np.where(r < 1.0, inner, np.where(r < 2.0, outer, 0.0))


def _ib_3(r: np.ndarray) -> np.ndarray:
    r = np.abs(r)
    inner = (1.0 + np.sqrt(np.clip(1.0 - 3.0 * r**2, 0.0, None))) / 3.0
    outer = (5.0 - 3.0 * r - np.sqrt(np.clip(1.0 - 3.0 * (1.0 - r) ** 2, 0.0, None))) / 6.0
    return np.where(r < 0.5, inner, np.where(r < 1.5, outer, 0.0))


def _ib_4(r: np.ndarray) -> np.ndarray:
    r = np.abs(r)
    inner = (3.0 - 2.0 * r + np.sqrt(np.clip(1.0 + 4.0 * r - 4.0 * r**2, 0.0, None))) / 8.0
    outer = (5.0 - 2.0 * r - np.sqrt(np.clip(-7.0 + 12.0 * r - 4.0 * r**2, 0.0, None))) / 8.0
    return np.where(r < 1.0, inner, np.where(r < 2.0, outer, 0.0))


def _bspline_3(r: np.ndarray) -> np.ndarray:
    r = np.abs(r)
    inner = 0.75 - r**2
    outer = 0.5 * (1.5 - r) ** 2
    return np.where(r < 0.5, inner, np.where(r < 1.5, outer, 0.0))


def _bspline_4(r: np.ndarray) -> np.ndarray:
    r = np.abs(r)
    inner = 2.0 / 3.0 - r**2 + 0.5 * r**3
    outer = (2.0 - r) ** 3 / 6.0
    return np.where(r < 1.0, inner, np.where(r < 2.0, outer, 0.0))


_KERNELS: Dict[KernelFunction, Callable[[np.ndarray], np.ndarray]] = {
    KernelFunction.PIECEWISE_LINEAR: _piecewise_linear,
    KernelFunction.PIECEWISE_CUBIC: _piecewise_cubic,
    KernelFunction.IB_3: _ib_3,
    KernelFunction.IB_4: _ib_4,
    KernelFunction.BSPLINE_3: _bspline_3,
    KernelFunction.BSPLINE_4: _bspline_4,
}

_STENCIL_SIZE: Dict[KernelFunction, int] = {
    KernelFunction.PIECEWISE_LINEAR: 2,
    KernelFunction.PIECEWISE_CUBIC: 4,
    KernelFunction.IB_3: 3,
    KernelFunction.IB_4: 4,
    KernelFunction.BSPLINE_3: 3,
    KernelFunction.BSPLINE_4: 4,
}


def as_kernel(kernel) -> KernelFunction:
    """Coerce a kernel name or enum member into a KernelFunction."""
    try:
        return KernelFunction(kernel)
    except ValueError:
        raise ConfigurationError(
            f"Unknown kernel function '{kernel}'. "
            f"Available: {[k.value for k in KernelFunction]}"
        )


def kernel_weights(kernel: KernelFunction, r: np.ndarray) -> np.ndarray:
    """Evaluate the one-dimensional kernel at distances ``r`` (grid units)."""
    return _KERNELS[as_kernel(kernel)](np.asarray(r, dtype=float))


def stencil_size(kernel: KernelFunction) -> int:
    """Number of grid points touched per direction."""
    return _STENCIL_SIZE[as_kernel(kernel)]


def min_ghost_width(kernel: KernelFunction) -> int:
    """Ghost-cell width needed to evaluate the kernel next to a patch boundary."""
    return stencil_size(kernel) // 2 + 1


def stencil_start(kernel: KernelFunction, s: np.ndarray) -> np.ndarray:
    """
    First stencil index for index-space coordinates ``s``.

    The stencil of a point at ``s`` is ``start, ..., start + stencil_size - 1``
    and covers every index ``i`` with ``|s - i| < stencil_size / 2``.
    """
    w = stencil_size(kernel)
    return np.floor(np.asarray(s) - 0.5 * w).astype(np.int64) + 1
