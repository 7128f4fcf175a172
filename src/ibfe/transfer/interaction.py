"""
Kernel interpolation and spreading between scattered points and grid data.

Both operations use the same tensor-product stencil, so for a fixed set of
points and weights they are discrete adjoints of each other:

    sum_q w_q I[u](x_q) f_q = <u, S[f w]>_grid

where ``S`` divides by the cell volume, and ``<.,.>_grid`` is the
volume-weighted grid inner product.
"""

from typing import List, Optional, Tuple

import numpy as np

from ibfe.core.exceptions import StencilError
from ibfe.grid.cartesian import GridData
from ibfe.transfer.kernels import KernelFunction, kernel_weights, stencil_size, stencil_start


def wrap_periodic_points(data: GridData, points: np.ndarray) -> np.ndarray:
    """Map points into the domain along periodic directions."""
    grid = data.grid
    points = np.array(points, dtype=float, copy=True)
    for d in range(grid.dim):
        if grid.periodic[d]:
            points[:, d] = grid.x_lower[d] + np.mod(points[:, d] - grid.x_lower[d], grid.extent[d])
    return points


def _stencil(
    data: GridData, comp: int, points: np.ndarray, kernel: KernelFunction
) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """Per-direction stencil indices and weights, each of shape ``(n_points, width)``."""
    grid = data.grid
    s = (points - data.origin(comp)) / grid.dx
    start = stencil_start(kernel, s)
    width = stencil_size(kernel)
    shape = np.asarray(data.padded_shape(comp))

    outside = np.any((start < 0) | (start + width > shape), axis=1)
    if np.any(outside):
        first = points[np.argmax(outside)]
        raise StencilError(
            f"{int(np.count_nonzero(outside))} point(s) have a {kernel.value} stencil outside "
            f"the ghost-extended data (component {comp}, ghost width {data.ghost_width}); "
            f"first offending point: {first.tolist()}"
        )

    offsets = np.arange(width)
    indices, weights = [], []
    for d in range(grid.dim):
        idx = start[:, d, None] + offsets
        indices.append(idx)
        weights.append(kernel_weights(kernel, s[:, d, None] - idx))
    return indices, weights


def _tensor_product(indices: List[np.ndarray], weights: List[np.ndarray]):
    """Broadcast per-direction stencils to ``(n_points, w, ..., w)`` index tuples and weights."""
    dim = len(indices)
    n = indices[0].shape[0]
    index_tuple = []
    weight = np.ones((n,) + (1,) * dim)
    for d in range(dim):
        shape = [n] + [1] * dim
        shape[d + 1] = indices[d].shape[1]
        index_tuple.append(indices[d].reshape(shape))
        weight = weight * weights[d].reshape(shape)
    index_tuple = tuple(np.broadcast_arrays(*index_tuple))
    return index_tuple, weight


def _stencil_coordinates(data: GridData, comp: int, index_tuple) -> List[np.ndarray]:
    origin = data.origin(comp)
    return [origin[d] + data.grid.dx[d] * index_tuple[d] for d in range(data.grid.dim)]


def interpolate(
    data: GridData,
    comp: int,
    points: np.ndarray,
    kernel: KernelFunction,
    normals: Optional[np.ndarray] = None,
    normal_jumps: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Interpolate one component of ghost-filled grid data to points.

    Parameters
    ----------
    data : GridData
        Grid data with valid ghost values.
    comp : int
        Component (axis for side-centered data).
    points : np.ndarray
        Physical coordinates, shape ``(n, dim)``.
    kernel : KernelFunction
        Interpolation kernel.
    normals, normal_jumps : np.ndarray, optional
        Unit normals ``(n, dim)`` and jumps of the normal derivative of the
        interpolated component ``(n,)``. When given, each grid sample at
        signed normal distance ``d`` from its point is corrected by
        ``-0.5 * jump * |d|``.

    Returns
    -------
    np.ndarray
        Interpolated values, shape ``(n,)``.

    Raises
    ------
    StencilError
        If a stencil reaches outside the ghost-extended data.
    """
    points = np.atleast_2d(np.asarray(points, dtype=float))
    if points.shape[0] == 0:
        return np.zeros(0)
    points = wrap_periodic_points(data, points)
    indices, weights = _stencil(data, comp, points, kernel)
    index_tuple, weight = _tensor_product(indices, weights)
    samples = data.arrays[comp][index_tuple]

    if normals is not None and normal_jumps is not None:
        dim = data.grid.dim
        coords = _stencil_coordinates(data, comp, index_tuple)
        expand = (slice(None),) + (None,) * dim
        dist = np.zeros_like(samples)
        for d in range(dim):
            dist += (coords[d] - points[:, d][expand]) * normals[:, d][expand]
        samples = samples - 0.5 * np.asarray(normal_jumps)[expand] * np.abs(dist)

    return np.sum((weight * samples).reshape(points.shape[0], -1), axis=1)


def spread(
    data: GridData,
    comp: int,
    values: np.ndarray,
    points: np.ndarray,
    kernel: KernelFunction,
) -> None:
    """
    Spread point values onto one component of grid data.

    Each value is distributed with the kernel weights and divided by the
    cell volume, so the grid integral of the result equals ``sum(values)``
    once ghost contributions are accumulated. Contributions landing in ghost
    cells are kept there until ``GridData.accumulate_ghost_values``.
    """
    points = np.atleast_2d(np.asarray(points, dtype=float))
    if points.shape[0] == 0:
        return
    points = wrap_periodic_points(data, points)
    indices, weights = _stencil(data, comp, points, kernel)
    index_tuple, weight = _tensor_product(indices, weights)
    expand = (slice(None),) + (None,) * data.grid.dim
    contrib = weight * (np.asarray(values, dtype=float)[expand] / data.grid.cell_volume)
    np.add.at(data.arrays[comp], index_tuple, contrib)


def interpolate_vector(data: GridData, points: np.ndarray, kernel: KernelFunction) -> np.ndarray:
    """Interpolate every component of ``data``; returns ``(n, depth)``."""
    points = np.atleast_2d(np.asarray(points, dtype=float))
    return np.stack([interpolate(data, c, points, kernel) for c in range(data.depth)], axis=1)


def spread_vector(data: GridData, values: np.ndarray, points: np.ndarray, kernel: KernelFunction) -> None:
    """Spread ``(n, depth)`` point values onto every component of ``data``."""
    values = np.asarray(values, dtype=float)
    for c in range(data.depth):
        spread(data, c, values[:, c], points, kernel)
