"""
Quadrature batches and element geometry.

A batch groups elements of one type that share a quadrature rule, so every
geometric quantity is a numpy array with leading axes ``(n_elem, n_qp)``.
Index conventions in the einsum strings below: ``e`` element, ``q``
quadrature point, ``a``/``b`` element node, ``i``/``j`` spatial direction,
``k``/``l`` reference direction.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ibfe.core.exceptions import DegenerateElementError
from ibfe.core.mesh import ElementType

# Relative threshold below which a metric determinant is treated as vanishing
METRIC_TOLERANCE = 1.0e-12


def _check_metric(det: np.ndarray, metric: np.ndarray, element_ids: np.ndarray, part: int, label: str):
    k = metric.shape[-1]
    scale = np.max(np.abs(metric), axis=(-2, -1)) ** k
    bad = ~(det > METRIC_TOLERANCE * scale)
    if np.any(bad):
        e = int(np.argwhere(bad)[0][0])
        raise DegenerateElementError(
            part, int(element_ids[e]), f"vanishing {label} metric (det = {float(det[bad][0]):.3e})"
        )


@dataclass
class QuadratureBatch:
    """
    Elements of one type sharing a quadrature rule, with reference geometry.

    Attributes
    ----------
    part : int
        Owning part.
    element_type : ElementType
        Element type of every element in the batch.
    element_ids : np.ndarray
        Global element ids, shape ``(ne,)``.
    conn : np.ndarray
        Connectivity in local (owned + ghost) node numbering, ``(ne, nn)``.
    global_conn : np.ndarray
        Connectivity in global node numbering, ``(ne, nn)``.
    xi, weights : np.ndarray
        Reference quadrature points ``(nq, k)`` and weights ``(nq,)``.
    phi, dphi : np.ndarray
        Shape functions ``(nq, nn)`` and reference derivatives ``(nq, nn, k)``.
    dX : np.ndarray
        Reference tangents ``dX/dxi``, ``(ne, nq, dim, k)``.
    G0_inv : np.ndarray
        Inverse reference metric, ``(ne, nq, k, k)``.
    JxW0 : np.ndarray
        Reference measure times weight, ``(ne, nq)``.
    """

    part: int
    element_type: ElementType
    element_ids: np.ndarray
    conn: np.ndarray
    global_conn: np.ndarray
    xi: np.ndarray
    weights: np.ndarray
    phi: np.ndarray
    dphi: np.ndarray
    dX: np.ndarray = None
    G0_inv: np.ndarray = None
    JxW0: np.ndarray = None

    @classmethod
    def build(cls, part, element, element_ids, conn, global_conn, xi, weights, X_nodes):
        """Create a batch and evaluate its reference geometry from local node coordinates."""
        batch = cls(
            part=part,
            element_type=element.element_type,
            element_ids=element_ids,
            conn=conn,
            global_conn=global_conn,
            xi=xi,
            weights=weights,
            phi=element.shape_functions(xi),
            dphi=element.shape_function_derivatives(xi),
        )
        batch.dX = batch.tangents(X_nodes)
        G0 = np.einsum("eqik,eqil->eqkl", batch.dX, batch.dX)
        det_G0 = np.linalg.det(G0)
        _check_metric(det_G0, G0, element_ids, part, "reference")
        batch.G0_inv = np.linalg.inv(G0)
        batch.JxW0 = np.sqrt(det_G0) * weights[None, :]
        return batch

    @property
    def n_elem(self) -> int:
        return self.conn.shape[0]

    @property
    def n_qp(self) -> int:
        return self.xi.shape[0]

    @property
    def n_points(self) -> int:
        return self.n_elem * self.n_qp

    def values(self, nodal: np.ndarray) -> np.ndarray:
        """Interpolate local nodal values ``(n_local, n_vars)`` to ``(ne, nq, n_vars)``."""
        return np.einsum("qa,eav->eqv", self.phi, nodal[self.conn])

    def tangents(self, nodal: np.ndarray) -> np.ndarray:
        """Reference derivatives of a nodal field, ``(ne, nq, n_vars, k)``."""
        return np.einsum("eai,qak->eqik", nodal[self.conn], self.dphi)

    def integrate(self, integrand: np.ndarray, JxW: Optional[np.ndarray] = None) -> np.ndarray:
        """Element load vectors ``sum_q g_q phi_a JxW_q``, shape ``(ne, nn, n_vars)``."""
        if JxW is None:
            JxW = self.JxW0
        return np.einsum("eqv,qa,eq->eav", integrand, self.phi, JxW)

    def flat_element_ids(self) -> np.ndarray:
        """Element id of every quadrature point, ``(ne * nq,)``."""
        return np.repeat(self.element_ids, self.n_qp)


@dataclass
class CurrentGeometry:
    """
    Deformation quantities at the quadrature points of a batch.

    ``FF = (dx/dxi) G0^-1 (dX/dxi)^T`` is the deformation gradient restricted
    to the element tangent space; for full-dimensional elements it equals
    ``(dx/dxi)(dX/dxi)^-1``. ``J = sqrt(det G / det G0)`` is the ratio of
    current to reference measure.
    """

    x: np.ndarray
    dx: np.ndarray
    G_inv: np.ndarray
    FF: np.ndarray
    J: np.ndarray
    grad_X_phi: np.ndarray

    @property
    def normals(self) -> np.ndarray:
        """Unit normals of codimension-one elements, ``(ne, nq, dim)``."""
        if self.dx.shape[-2] == 2:
            t = self.dx[..., 0]
            n = np.stack([t[..., 1], -t[..., 0]], axis=-1)
        else:
            n = np.cross(self.dx[..., 0], self.dx[..., 1])
        return n / np.linalg.norm(n, axis=-1, keepdims=True)

    @property
    def tangents(self) -> np.ndarray:
        """Unit tangents along the first reference direction, ``(ne, nq, dim)``."""
        t = self.dx[..., 0]
        return t / np.linalg.norm(t, axis=-1, keepdims=True)

    def surface_gradient(self, batch: QuadratureBatch) -> np.ndarray:
        """Current-configuration tangential gradient of the shape functions, ``(ne, nq, nn, dim)``."""
        return np.einsum("eqik,eqkl,qal->eqai", self.dx, self.G_inv, batch.dphi)


def current_geometry(batch: QuadratureBatch, x_nodes: np.ndarray) -> CurrentGeometry:
    """Evaluate the current configuration of a batch from local node positions."""
    x = batch.values(x_nodes)
    dx = batch.tangents(x_nodes)
    G = np.einsum("eqik,eqil->eqkl", dx, dx)
    det_G = np.linalg.det(G)
    _check_metric(det_G, G, batch.element_ids, batch.part, "current")
    det_G0 = (batch.JxW0 / batch.weights[None, :]) ** 2
    FF = np.einsum("eqik,eqkl,eqjl->eqij", dx, batch.G0_inv, batch.dX)
    grad_X_phi = np.einsum("eqik,eqkl,qal->eqai", batch.dX, batch.G0_inv, batch.dphi)
    return CurrentGeometry(
        x=x,
        dx=dx,
        G_inv=np.linalg.inv(G),
        FF=FF,
        J=np.sqrt(det_G / det_G0),
        grad_X_phi=grad_X_phi,
    )
