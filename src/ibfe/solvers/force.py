"""
Lagrangian force density, force splitting and jump fields.

Every routine here works on one part: it evaluates an integrand at the
quadrature points of the part's elements (current configuration given by
local node positions ``x_nodes``), assembles the weak form and L2-projects
the result into a nodal PETSc vector.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
from petsc4py import PETSc

from ibfe.core.exceptions import ConfigurationError
from ibfe.elements import QuadratureType
from ibfe.fe.data_manager import FEDataManager
from ibfe.fe.quadrature import CurrentGeometry, QuadratureBatch, current_geometry
from ibfe.solvers.callbacks import LagForceFcnData, PK1StressFcnData

logger = logging.getLogger(__name__)

# Gauss rule used for the force weak form and the jump-field projections
FORCE_QUAD_ORDER = 5


def force_batches(manager: FEDataManager) -> List[QuadratureBatch]:
    return manager.quadrature_batches(QuadratureType.GAUSS, FORCE_QUAD_ORDER)


def _geometries(batches: Sequence[QuadratureBatch], x_nodes: np.ndarray) -> Dict[int, CurrentGeometry]:
    return {id(batch): current_geometry(batch, x_nodes) for batch in batches}


def _flat(values: np.ndarray) -> np.ndarray:
    return values.reshape((-1,) + values.shape[2:])


def evaluate_pk1_stress(
    pk1_fcns: Sequence[PK1StressFcnData],
    batch: QuadratureBatch,
    geom: CurrentGeometry,
    X: np.ndarray,
    data_time: float,
) -> np.ndarray:
    """Sum of the registered PK1 stresses at the batch points, ``(ne, nq, dim, dim)``."""
    dim = geom.FF.shape[-1]
    PP = np.zeros(geom.FF.shape)
    FF = _flat(geom.FF)
    x = _flat(geom.x)
    X = _flat(X)
    element_ids = batch.flat_element_ids()
    for fcn_data in pk1_fcns:
        if fcn_data.fcn is None:
            continue
        PP += np.asarray(fcn_data.fcn(FF, x, X, element_ids, data_time)).reshape(PP.shape)
    return PP.reshape(batch.n_elem, batch.n_qp, dim, dim)


def normalize_stress(PP: np.ndarray, geom: CurrentGeometry, H: np.ndarray) -> np.ndarray:
    """Remove the pressure-like part ``H J FF^+T`` from ``PP``."""
    FF_pinv_T = np.swapaxes(np.linalg.pinv(geom.FF), -1, -2)
    return PP - (H * geom.J)[..., None, None] * FF_pinv_T


def compute_stress_normalization(
    manager: FEDataManager,
    x_nodes: np.ndarray,
    data_time: float,
    pk1_fcns: Sequence[PK1StressFcnData],
    consistent: bool,
    out: PETSc.Vec,
) -> PETSc.Vec:
    """Project ``tr(PP FF^T) / (NDIM J)`` into the scalar vector ``out``."""
    dim = manager.dim
    X_nodes = manager.reference_coords

    def integrand(batch):
        geom = current_geometry(batch, x_nodes)
        PP = evaluate_pk1_stress(pk1_fcns, batch, geom, batch.values(X_nodes), data_time)
        trace = np.einsum("eqij,eqij->eq", PP, geom.FF)
        return (trace / (dim * geom.J))[..., None]

    return manager.project_integrand(force_batches(manager), integrand, 1, consistent, out)


def _body_force(
    fcn_data: LagForceFcnData,
    batch: QuadratureBatch,
    geom: CurrentGeometry,
    X: np.ndarray,
    data_time: float,
    system_nodes: Dict[str, np.ndarray],
) -> np.ndarray:
    values = []
    for name in fcn_data.system_names:
        if name not in system_nodes:
            raise ConfigurationError(
                f"Lagrangian force function requires system '{name}', which is not available"
            )
        values.append(_flat(batch.values(system_nodes[name])))
    F_b = fcn_data.fcn(_flat(geom.x), _flat(X), batch.flat_element_ids(), data_time, values)
    return np.asarray(F_b, dtype=float).reshape(batch.n_elem, batch.n_qp, -1)


def compute_interior_force_density(
    manager: FEDataManager,
    x_nodes: np.ndarray,
    data_time: float,
    pk1_fcns: Sequence[PK1StressFcnData],
    lag_force_fcns: Sequence[LagForceFcnData],
    system_nodes: Dict[str, np.ndarray],
    consistent: bool,
    out: PETSc.Vec,
    H_nodes: Optional[np.ndarray] = None,
) -> PETSc.Vec:
    """
    Nodal force density of one part.

    Assembles ``G_a = -int PP : grad_X phi_a dX + int F_b phi_a dX`` and
    projects it into ``out``.

    Parameters
    ----------
    manager : FEDataManager
        Data manager of the part.
    x_nodes : np.ndarray
        Current positions of the local nodes.
    data_time : float
        Time passed to the callbacks.
    pk1_fcns, lag_force_fcns : sequence
        Registered stress and body-force callbacks.
    system_nodes : dict
        Ghosted nodal values of the systems the body-force callbacks need.
    consistent : bool
        Use the consistent mass matrix for the projection.
    out : PETSc.Vec
        Destination vector.
    H_nodes : np.ndarray, optional
        Ghosted stress normalization field; when given, the normalized
        stress is used.

    Raises
    ------
    DegenerateElementError
        If an element has a vanishing reference or current metric.
    """
    dim = manager.dim
    X_nodes = manager.reference_coords
    active_pk1 = [f for f in pk1_fcns if f.fcn is not None]
    active_lag = [f for f in lag_force_fcns if f.fcn is not None]

    def contributions():
        for batch in force_batches(manager):
            geom = current_geometry(batch, x_nodes)
            X = batch.values(X_nodes)
            G = np.zeros((batch.n_elem, batch.conn.shape[1], dim))
            if active_pk1:
                PP = evaluate_pk1_stress(active_pk1, batch, geom, X, data_time)
                if H_nodes is not None:
                    PP = normalize_stress(PP, geom, batch.values(H_nodes)[..., 0])
                G -= np.einsum("eqij,eqaj,eq->eai", PP, geom.grad_X_phi, batch.JxW0)
            for fcn_data in active_lag:
                G += batch.integrate(_body_force(fcn_data, batch, geom, X, data_time, system_nodes))
            yield batch.conn, G

    rhs = manager.assemble(contributions(), dim)
    manager.project(rhs, dim, consistent, out)
    rhs.destroy()
    return out


def split_force(
    manager: FEDataManager,
    x_nodes: np.ndarray,
    F_nodes: np.ndarray,
    consistent: bool,
    F_n: Optional[PETSc.Vec] = None,
    F_t: Optional[PETSc.Vec] = None,
    F_b: Optional[PETSc.Vec] = None,
) -> None:
    """
    Project the normal, tangential and binormal parts of the force density.

    In 2D the tangential part is ``(I - n n^T) F``; in 3D it is split into
    ``(F . t) t`` and ``(F . b) b`` with ``b = n x t``. Vectors passed as
    ``None`` are skipped.
    """
    dim = manager.dim
    batches = force_batches(manager)
    geoms = _geometries(batches, x_nodes)

    def direction(geom, which):
        if which == "normal":
            return geom.normals
        if which == "tangent":
            return geom.tangents
        return np.cross(geom.normals, geom.tangents)

    def component(which):
        def integrand(batch):
            d = direction(geoms[id(batch)], which)
            F = batch.values(F_nodes)
            return np.sum(F * d, axis=-1, keepdims=True) * d

        return integrand

    if F_n is not None:
        manager.project_integrand(batches, component("normal"), dim, consistent, F_n)
    if F_t is not None:
        if dim == 2:

            def tangential(batch):
                n = geoms[id(batch)].normals
                F = batch.values(F_nodes)
                return F - np.sum(F * n, axis=-1, keepdims=True) * n

            manager.project_integrand(batches, tangential, dim, consistent, F_t)
        else:
            manager.project_integrand(batches, component("tangent"), dim, consistent, F_t)
    if F_b is not None and dim == 3:
        manager.project_integrand(batches, component("binormal"), dim, consistent, F_b)


def compute_jump_fields(
    manager: FEDataManager,
    x_nodes: np.ndarray,
    F_nodes: np.ndarray,
    mu: float,
    split_normal: bool,
    split_tangential: bool,
    consistent: bool,
    P_j: PETSc.Vec,
    dP_j: PETSc.Vec,
    du_j: Sequence[PETSc.Vec],
    d2u_j: Optional[Sequence[PETSc.Vec]] = None,
) -> None:
    """
    Pressure and velocity-gradient jumps carried by the split force.

    With the traction per unit current area ``f = F / J`` and its tangential
    part ``tau = (I - n n^T) f``:

    - ``[p] = f . n`` (normal force split);
    - ``[du_i/dx_j] = -tau_i n_j / mu`` (tangential force split);
    - ``[dp/dn] = div_s tau`` (both splits);
    - ``[d2u_i/dn2] n_j`` with
      ``[u_nn] = ([dp/dn] n + grad_s [p]) / mu - kappa [u_n]``, when
      ``d2u_j`` is given.

    Jumps of disabled components are set to zero.
    """
    dim = manager.dim
    batches = force_batches(manager)
    geoms = _geometries(batches, x_nodes)

    def project(integrand, n_vars, out):
        return manager.project_integrand(batches, integrand, n_vars, consistent, out)

    def traction(batch):
        geom = geoms[id(batch)]
        n = geom.normals
        f = batch.values(F_nodes) / geom.J[..., None]
        tau = f - np.sum(f * n, axis=-1, keepdims=True) * n
        return n, f, tau

    if split_normal:

        def pressure_jump(batch):
            n, f, _ = traction(batch)
            return np.sum(f * n, axis=-1, keepdims=True)

        project(pressure_jump, 1, P_j)
    else:
        P_j.set(0.0)

    for i in range(dim):
        if split_tangential:

            def gradient_jump(batch, i=i):
                n, _, tau = traction(batch)
                return -tau[..., i, None] * n / mu

            project(gradient_jump, dim, du_j[i])
        else:
            du_j[i].set(0.0)

    if split_normal and split_tangential:
        tau_vec = project(lambda batch: traction(batch)[2], dim, None)
        tau_nodes = manager.get_ghosted_values(tau_vec, dim)
        tau_vec.destroy()

        def normal_pressure_derivative(batch):
            grad_s = geoms[id(batch)].surface_gradient(batch)
            return np.einsum("eai,eqai->eq", tau_nodes[batch.conn], grad_s)[..., None]

        project(normal_pressure_derivative, 1, dP_j)
    else:
        dP_j.set(0.0)

    if d2u_j is None:
        return

    n_vec = project(lambda batch: geoms[id(batch)].normals, dim, None)
    n_nodes = manager.get_ghosted_values(n_vec, dim)
    n_vec.destroy()
    P_nodes = manager.get_ghosted_values(P_j, 1)
    dP_nodes = manager.get_ghosted_values(dP_j, 1)

    def second_normal_derivative(batch):
        n, _, tau = traction(batch)
        grad_s = geoms[id(batch)].surface_gradient(batch)
        kappa = np.einsum("eai,eqai->eq", n_nodes[batch.conn], grad_s)
        grad_P = np.einsum("ea,eqai->eqi", P_nodes[batch.conn, 0], grad_s)
        dP = batch.values(dP_nodes)
        u_n = -tau / mu if split_tangential else np.zeros_like(tau)
        return (dP * n + grad_P) / mu - kappa[..., None] * u_n

    u_nn = {id(batch): second_normal_derivative(batch) for batch in batches}
    for i in range(dim):

        def second_jump(batch, i=i):
            n = geoms[id(batch)].normals
            return u_nn[id(batch)][..., i, None] * n

        project(second_jump, dim, d2u_j[i])
