"""
Imposition of pressure and velocity-gradient jump conditions on the grid force.

Jumps are oriented with the outward normal: ``[q] = q(outside) - q(inside)``.

Two forms are available:

- weak: the traction rebuilt from the jumps, ``[p] n - mu [grad u] n``, is
  spread as a surface integral over the current configuration;
- pointwise: every grid line crossing the interface gets a correction at
  the two grid points next to the crossing, so that centered differences
  of the smooth one-sided extensions reproduce the jump.

Pointwise corrections need the crossing of grid lines with mesh elements,
which is computed for straight segments (2D) and flat triangles (3D;
4-node quadrilaterals are split in two triangles).
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ibfe.core.config import SpreadSpec
from ibfe.core.exceptions import ConfigurationError, StencilError
from ibfe.core.mesh import ElementType, MeshModel
from ibfe.fe.data_manager import FEDataManager
from ibfe.fe.quadrature import current_geometry
from ibfe.grid.cartesian import GridData
from ibfe.transfer.interaction import spread

logger = logging.getLogger(__name__)

# Element types whose crossings with grid lines can be computed, per spatial dimension
INTERSECTION_ELEMENT_TYPES = {
    2: (ElementType.line,),
    3: (ElementType.triangle, ElementType.quad),
}

# Tolerance on barycentric coordinates when testing whether a line hits a simplex
BARYCENTRIC_TOLERANCE = 1.0e-12

# Tolerance, in lattice units, for crossings that lie on a lattice point or line
LATTICE_TOLERANCE = 1.0e-10


@dataclass
class JumpFieldValues:
    """Ghosted nodal values of the jump fields of one part."""

    P_j: np.ndarray
    dP_j: np.ndarray
    du_j: List[np.ndarray]
    d2u_j: Optional[List[np.ndarray]] = None


def check_intersection_support(mesh: MeshModel, part: int) -> None:
    """Raise ConfigurationError if pointwise jumps cannot be imposed on ``mesh``."""
    supported = INTERSECTION_ELEMENT_TYPES[mesh.spatial_dim]
    for etype in mesh.element_groups():
        if etype not in supported:
            raise ConfigurationError(
                f"Jump conditions in part {part} need {[t.name for t in supported]} elements "
                f"in {mesh.spatial_dim}D, found {etype.name}"
            )


def interface_simplices(manager: FEDataManager, x_nodes: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Straight segments (2D) or flat triangles (3D) covering the local elements.

    Returns
    -------
    vertices : np.ndarray
        Vertex positions, ``(n_simplex, dim, dim)``.
    nodes : np.ndarray
        Local node index of every vertex, ``(n_simplex, dim)``.
    """
    check_intersection_support(manager.mesh, manager.part)
    nodes = []
    for etype, _, conn in manager.local_elements():
        if etype == ElementType.quad:
            nodes.append(conn[:, [0, 1, 2]])
            nodes.append(conn[:, [0, 2, 3]])
        else:
            nodes.append(conn)
    dim = manager.dim
    nodes = np.concatenate(nodes) if nodes else np.zeros((0, dim), dtype=np.int64)
    return x_nodes[nodes], nodes


def simplex_normals(vertices: np.ndarray) -> np.ndarray:
    """Unit normals with the same orientation as the element normals."""
    if vertices.shape[-1] == 2:
        t = vertices[:, 1] - vertices[:, 0]
        n = np.stack([t[:, 1], -t[:, 0]], axis=-1)
    else:
        n = np.cross(vertices[:, 1] - vertices[:, 0], vertices[:, 2] - vertices[:, 0])
    return n / np.linalg.norm(n, axis=-1, keepdims=True)


def find_intersections(vertices: np.ndarray, origin: np.ndarray, h: np.ndarray, axis: int):
    """
    Crossings of lattice lines parallel to ``axis`` with the simplices.

    The lattice has points ``origin + idx * h``. Each crossing is reported
    once per lattice interval.

    Returns
    -------
    idx : np.ndarray
        Lattice index of the grid point just below each crossing, ``(n, dim)``.
    x_c : np.ndarray
        Crossing positions, ``(n, dim)``.
    owner : np.ndarray
        Simplex of each crossing, ``(n,)``.
    bary : np.ndarray
        Barycentric coordinates of each crossing in its simplex, ``(n, dim)``.
    """
    dim = vertices.shape[-1]
    others = [d for d in range(dim) if d != axis]
    found_idx, found_x, found_owner, found_bary = [], [], [], []

    for s, v in enumerate(vertices):
        q = (v - origin) / h
        p = q[:, others]
        lo = np.ceil(p.min(axis=0) - LATTICE_TOLERANCE).astype(np.int64)
        hi = np.floor(p.max(axis=0) + LATTICE_TOLERANCE).astype(np.int64)
        if np.any(hi < lo):
            continue
        T = (p[1:] - p[0]).T
        det = np.linalg.det(T)
        if abs(det) <= BARYCENTRIC_TOLERANCE * np.max(np.abs(T)) ** (dim - 1):
            # Simplex parallel to the lines
            continue
        axes = np.meshgrid(*[np.arange(a, b + 1) for a, b in zip(lo, hi)], indexing="ij")
        m = np.stack([a.ravel() for a in axes], axis=1)
        lam = np.linalg.solve(T, (m - p[0]).T).T
        bary = np.concatenate([1.0 - lam.sum(axis=1, keepdims=True), lam], axis=1)
        hit = np.all(bary >= -BARYCENTRIC_TOLERANCE, axis=1)
        if not np.any(hit):
            continue
        bary = np.clip(bary[hit], 0.0, None)
        bary /= bary.sum(axis=1, keepdims=True)
        x_c = bary @ v
        idx = np.zeros((bary.shape[0], dim), dtype=np.int64)
        idx[:, others] = m[hit]
        # A crossing on a lattice point belongs to the interval above it
        q_c = (x_c[:, axis] - origin[axis]) / h[axis]
        idx[:, axis] = np.floor(q_c + LATTICE_TOLERANCE).astype(np.int64)
        found_idx.append(idx)
        found_x.append(x_c)
        found_owner.append(np.full(bary.shape[0], s, dtype=np.int64))
        found_bary.append(bary)

    if not found_idx:
        return (
            np.zeros((0, dim), dtype=np.int64),
            np.zeros((0, dim)),
            np.zeros(0, dtype=np.int64),
            np.zeros((0, dim)),
        )
    idx = np.concatenate(found_idx)
    # Crossings through shared vertices or edges are found once per element
    _, first = np.unique(idx, axis=0, return_index=True)
    keep = np.sort(first)
    return idx[keep], np.concatenate(found_x)[keep], np.concatenate(found_owner)[keep], np.concatenate(found_bary)[keep]


def _values_at(nodal: np.ndarray, nodes: np.ndarray, owner: np.ndarray, bary: np.ndarray) -> np.ndarray:
    return np.einsum("nv,nvk->nk", bary, nodal[nodes[owner]])


def _fold_periodic(data: GridData, idx: np.ndarray) -> np.ndarray:
    """Map padded indices onto their interior images along periodic directions."""
    grid = data.grid
    g = data.ghost_width
    idx = idx.copy()
    for d in range(grid.dim):
        if grid.periodic[d]:
            idx[:, d] = (idx[:, d] - g) % int(grid.n_cells[d]) + g
    return idx


def _check_bounds(data: GridData, comp: int, idx: np.ndarray, label: str) -> None:
    shape = np.asarray(data.padded_shape(comp))
    outside = np.any((idx < 0) | (idx >= shape), axis=1)
    if np.any(outside):
        raise StencilError(
            f"{int(np.count_nonzero(outside))} {label} jump correction(s) fall outside the "
            f"ghost-extended data (component {comp}, ghost width {data.ghost_width})"
        )


def _apply_pressure_jumps(f_data, vertices, nodes, normals, jumps, first_order):
    grid = f_data.grid
    dim = grid.dim
    # Lines through cell centers
    origin = grid.x_lower + (0.5 - f_data.ghost_width) * grid.dx
    for d in range(dim):
        idx, x_c, owner, bary = find_intersections(vertices, origin, grid.dx, d)
        if idx.shape[0] == 0:
            continue
        n = normals[owner]
        upper = idx.copy()
        upper[:, d] += 1
        dist = np.sum((origin + upper * grid.dx - x_c) * n, axis=1)
        s_Q = np.where(dist > 0.0, 1.0, -1.0)
        jump = _values_at(jumps.dP_j, nodes, owner, bary)[:, 0] * dist
        if first_order:
            jump += _values_at(jumps.P_j, nodes, owner, bary)[:, 0]
        # Face between cells idx and upper carries side index upper along d
        face = _fold_periodic(f_data, upper)
        _check_bounds(f_data, d, face, "pressure")
        np.add.at(f_data.arrays[d], tuple(face.T), s_Q * jump / grid.dx[d])


def _apply_velocity_jumps(f_data, vertices, nodes, normals, jumps, mu, first_order):
    grid = f_data.grid
    dim = grid.dim
    for i in range(dim):
        origin = f_data.origin(i)
        for j in range(dim):
            idx, x_c, owner, bary = find_intersections(vertices, origin, grid.dx, j)
            if idx.shape[0] == 0:
                continue
            n = normals[owner]
            du = _values_at(jumps.du_j[i], nodes, owner, bary)[:, j] if first_order else 0.0
            d2u = 0.0
            if jumps.d2u_j is not None:
                d2u = _values_at(jumps.d2u_j[i], nodes, owner, bary)[:, j] * n[:, j]
            for offset in (0, 1):
                target = idx.copy()
                target[:, j] += offset
                far = idx.copy()
                far[:, j] += 1 - offset
                r = origin + far * grid.dx - x_c
                s_Q = np.where(np.sum(r * n, axis=1) > 0.0, 1.0, -1.0)
                delta = r[:, j]
                C = du * delta + 0.5 * d2u * delta**2
                target = _fold_periodic(f_data, target)
                _check_bounds(f_data, i, target, "velocity")
                np.add.at(f_data.arrays[i], tuple(target.T), -mu * s_Q * C / grid.dx[j] ** 2)


def impose_jump_conditions_pointwise(
    f_data: GridData,
    manager: FEDataManager,
    x_nodes: np.ndarray,
    jumps: JumpFieldValues,
    mu: float,
    first_order: bool = True,
) -> None:
    """
    Correct the side-centered force next to every interface crossing.

    Pressure: along each direction ``d``, the face between the two cells
    around a crossing ``x_c`` gets ``s_Q ([p] + [dp/dn] (x_Q - x_c) . n) / h_d``.
    Velocity: component ``i`` at both lattice neighbours ``P`` along
    direction ``j`` gets ``-mu s_Q C(Q) / h_j**2`` with
    ``C(Q) = [du_i/dx_j] delta + 0.5 [d2u_i/dx_j2] delta**2`` and
    ``delta = (x_Q - x_c)_j``, where ``Q`` is the other neighbour and
    ``s_Q`` is ``+1`` when ``Q`` is outside.

    With ``first_order=False`` only the second-order terms are applied.

    Raises
    ------
    ConfigurationError
        If the mesh has elements whose crossings cannot be computed.
    StencilError
        If a correction falls outside the ghost-extended data.
    """
    vertices, nodes = interface_simplices(manager, x_nodes)
    if vertices.shape[0] == 0:
        return
    normals = simplex_normals(vertices)
    _apply_pressure_jumps(f_data, vertices, nodes, normals, jumps, first_order)
    if mu > 0.0:
        _apply_velocity_jumps(f_data, vertices, nodes, normals, jumps, mu, first_order)
    logger.debug("Pointwise jump conditions imposed on part %d", manager.part)


def impose_jump_conditions_weak(
    f_data: GridData,
    manager: FEDataManager,
    x_nodes: np.ndarray,
    jumps: JumpFieldValues,
    spec: SpreadSpec,
    mu: float,
) -> None:
    """
    Spread the traction ``[p] n - mu [grad u] n`` over the current surface.

    When second-derivative jumps are present, their pointwise corrections
    are applied as well.
    """
    dim = manager.dim
    for batch in manager.batches_for_spec(spec, x_nodes, f_data.grid.dx_min):
        geom = current_geometry(batch, x_nodes)
        n = geom.normals
        traction = batch.values(jumps.P_j) * n
        for i in range(dim):
            du_n = np.sum(batch.values(jumps.du_j[i]) * n, axis=-1)
            traction[..., i] -= mu * du_n
        weights = (geom.J * batch.JxW0)[..., None]
        values = (traction * weights).reshape(-1, dim)
        points = geom.x.reshape(-1, dim)
        for c in range(dim):
            spread(f_data, c, values[:, c], points, spec.kernel_fcn)

    if jumps.d2u_j is not None:
        impose_jump_conditions_pointwise(f_data, manager, x_nodes, jumps, mu, first_order=False)
