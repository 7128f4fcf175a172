"""
Fluid traction diagnostics on codimension-one parts.

One-sided fluid quantities are sampled at probes a fixed distance
``width * h`` from the interface along the normal (``h`` = smallest grid
spacing): ``x_i = x - width h n`` inside, ``x_o = x + width h n`` outside.
"""

import logging
from typing import Dict, Sequence

import numpy as np
from mpi4py import MPI
from petsc4py import PETSc

from ibfe.core.config import InterpSpec
from ibfe.fe.data_manager import FEDataManager
from ibfe.fe.quadrature import QuadratureBatch, current_geometry
from ibfe.grid.cartesian import GridData
from ibfe.solvers.system_names import EXTERIOR_DERIVATIVE_SYSTEMS
from ibfe.transfer.interaction import interpolate, interpolate_vector

logger = logging.getLogger(__name__)


def _probes(batch: QuadratureBatch, x_nodes: np.ndarray, offset: float):
    geom = current_geometry(batch, x_nodes)
    n = geom.normals
    return geom, n, geom.x - offset * n, geom.x + offset * n


def interpolate_pressure_for_traction(
    manager: FEDataManager,
    p_data: GridData,
    x_nodes: np.ndarray,
    spec: InterpSpec,
    width: float,
    P_i: PETSc.Vec,
    P_o: PETSc.Vec,
) -> None:
    """Project the pressure sampled at the interior and exterior probes into ``P_i`` and ``P_o``."""
    dim = manager.dim
    offset = width * p_data.grid.dx_min
    batches = manager.batches_for_spec(spec, x_nodes, p_data.grid.dx_min)
    samples = {}
    for batch in batches:
        _, _, x_in, x_out = _probes(batch, x_nodes, offset)
        shape = (batch.n_elem, batch.n_qp, 1)
        samples[id(batch)] = (
            interpolate(p_data, 0, x_in.reshape(-1, dim), spec.kernel_fcn).reshape(shape),
            interpolate(p_data, 0, x_out.reshape(-1, dim), spec.kernel_fcn).reshape(shape),
        )
    consistent = spec.use_consistent_mass_matrix
    manager.project_integrand(batches, lambda b: samples[id(b)][0], 1, consistent, P_i)
    manager.project_integrand(batches, lambda b: samples[id(b)][1], 1, consistent, P_o)


def velocity_gradient(u_data: GridData, points: np.ndarray, spec: InterpSpec, h: float) -> np.ndarray:
    """Central-difference velocity gradient ``grad[:, a, b] = du_a/dx_b`` at points ``(n, dim)``."""
    dim = u_data.grid.dim
    grad = np.zeros((points.shape[0], dim, dim))
    for b in range(dim):
        step = np.zeros(dim)
        step[b] = h
        plus = interpolate_vector(u_data, points + step, spec.kernel_fcn)
        minus = interpolate_vector(u_data, points - step, spec.kernel_fcn)
        grad[:, :, b] = (plus - minus) / (2.0 * h)
    return grad


def wall_shear_stress(grad: np.ndarray, n: np.ndarray, mu: float) -> np.ndarray:
    """``mu omega x n``; in 2D, with scalar vorticity, ``mu omega (-n_y, n_x)``."""
    if grad.shape[-1] == 2:
        omega = grad[:, 1, 0] - grad[:, 0, 1]
        return mu * omega[:, None] * np.stack([-n[:, 1], n[:, 0]], axis=-1)
    omega = np.stack(
        [
            grad[:, 2, 1] - grad[:, 1, 2],
            grad[:, 0, 2] - grad[:, 2, 0],
            grad[:, 1, 0] - grad[:, 0, 1],
        ],
        axis=-1,
    )
    return mu * np.cross(omega, n)


def compute_vorticity_for_traction(
    manager: FEDataManager,
    u_data: GridData,
    x_nodes: np.ndarray,
    spec: InterpSpec,
    width: float,
    mu: float,
    WSS_i: PETSc.Vec,
    WSS_o: PETSc.Vec,
    exterior_derivatives: Dict[str, PETSc.Vec],
) -> None:
    """
    Wall shear stress on both sides and exterior velocity derivatives.

    ``exterior_derivatives`` maps system names (see
    ``EXTERIOR_DERIVATIVE_SYSTEMS``) to the scalar vectors to fill.
    """
    dim = manager.dim
    h = u_data.grid.dx_min
    offset = width * h
    batches = manager.batches_for_spec(spec, x_nodes, h)
    components = EXTERIOR_DERIVATIVE_SYSTEMS[dim]
    fields = {}
    for batch in batches:
        _, n, x_in, x_out = _probes(batch, x_nodes, offset)
        n = n.reshape(-1, dim)
        grad_i = velocity_gradient(u_data, x_in.reshape(-1, dim), spec, h)
        grad_o = velocity_gradient(u_data, x_out.reshape(-1, dim), spec, h)
        shape = (batch.n_elem, batch.n_qp)
        values = {
            "WSS_I": wall_shear_stress(grad_i, n, mu).reshape(shape + (dim,)),
            "WSS_O": wall_shear_stress(grad_o, n, mu).reshape(shape + (dim,)),
        }
        for name, (a, b) in components.items():
            values[name] = grad_o[:, a, b].reshape(shape + (1,))
        fields[id(batch)] = values

    consistent = spec.use_consistent_mass_matrix

    def project(key, n_vars, out):
        manager.project_integrand(batches, lambda b: fields[id(b)][key], n_vars, consistent, out)

    project("WSS_I", dim, WSS_i)
    project("WSS_O", dim, WSS_o)
    for name, vec in exterior_derivatives.items():
        project(name, 1, vec)


def compute_fluid_traction(
    manager: FEDataManager,
    x_nodes: np.ndarray,
    P_i: np.ndarray,
    P_o: np.ndarray,
    WSS_i: np.ndarray,
    WSS_o: np.ndarray,
    add_vorticity_term: bool,
    consistent: bool,
    out: PETSc.Vec,
    batches: Sequence[QuadratureBatch],
) -> PETSc.Vec:
    """
    Project ``TAU = (P_i - P_o) n`` (plus ``WSS_o - WSS_i``) into ``out``.

    The one-sided fields are ghosted nodal arrays.
    """

    def integrand(batch):
        n = current_geometry(batch, x_nodes).normals
        tau = (batch.values(P_i) - batch.values(P_o)) * n
        if add_vorticity_term:
            tau += batch.values(WSS_o) - batch.values(WSS_i)
        return tau

    return manager.project_integrand(batches, integrand, manager.dim, consistent, out)


def integrate_traction(
    manager: FEDataManager, x_nodes: np.ndarray, tau_nodes: np.ndarray, batches: Sequence[QuadratureBatch]
) -> np.ndarray:
    """Total force ``int TAU da`` over the current configuration, summed over ranks."""
    total = np.zeros(manager.dim)
    for batch in batches:
        geom = current_geometry(batch, x_nodes)
        weights = geom.J * batch.JxW0
        total += np.einsum("eqi,eq->i", batch.values(tau_nodes), weights)
    return manager.comm.allreduce(total, op=MPI.SUM)
