"""Quadrilateral Element for Immersed Surfaces and Plane Bodies (QUAD4)

Node numbering convention:

    3-------2
    |       |
    |       |
    0-------1

Tensor-product rules on [-1, 1]^2.
"""

from typing import Tuple

import numpy as np

from ibfe.core.mesh import ElementType
from ibfe.elements.elements import QuadratureType, ReferenceElement, line_rule


class QUAD4(ReferenceElement):
    """4-node Bilinear Quadrilateral Element"""

    element_type = ElementType.quad
    reference_nodes = np.array([[-1.0, -1.0], [1.0, -1.0], [1.0, 1.0], [-1.0, 1.0]])

    def __init__(self):
        super().__init__("QUAD4")

    def integration_points(self, n_points: int, quad_type: QuadratureType) -> Tuple[np.ndarray, np.ndarray]:
        """Tensor-product quadrature points and weights

        Returns
        -------
        points : np.ndarray
            Array of (xi, eta) coordinates (n_points**2 x 2)
        weights : np.ndarray
            Integration weights (n_points**2,)
        """
        p, w = line_rule(n_points, quad_type)
        xi, eta = np.meshgrid(p, p, indexing="ij")
        wx, wy = np.meshgrid(w, w, indexing="ij")
        points = np.stack([xi.ravel(), eta.ravel()], axis=1)
        return points, (wx * wy).ravel()

    def shape_functions(self, xi: np.ndarray) -> np.ndarray:
        """Bilinear shape functions

        N0 = 0.25(1 - xi)(1 - eta)
        N1 = 0.25(1 + xi)(1 - eta)
        N2 = 0.25(1 + xi)(1 + eta)
        N3 = 0.25(1 - xi)(1 + eta)
        """
        xi = np.asarray(xi)
        s, t = xi[:, 0], xi[:, 1]
        return 0.25 * np.stack(
            [(1 - s) * (1 - t), (1 + s) * (1 - t), (1 + s) * (1 + t), (1 - s) * (1 + t)], axis=1
        )

    def shape_function_derivatives(self, xi: np.ndarray) -> np.ndarray:
        """Shape function derivatives, shape (nq, 4, 2)"""
        xi = np.asarray(xi)
        s, t = xi[:, 0], xi[:, 1]
        dN_dxi = 0.25 * np.stack([-(1 - t), (1 - t), (1 + t), -(1 + t)], axis=1)
        dN_deta = 0.25 * np.stack([-(1 - s), -(1 + s), (1 + s), (1 - s)], axis=1)
        return np.stack([dN_dxi, dN_deta], axis=2)
