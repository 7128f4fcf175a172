"""Linear Triangle Element (TRI3)

Reference triangle with vertices (0, 0), (1, 0), (0, 1):

    2
    | \\
    |   \\
    0-----1

Quadrature uses the collapsed (Duffy) map of the unit square onto the
triangle, ``xi = a, eta = b (1 - a)``, with one extra Gauss point along
``a`` to absorb the ``(1 - a)`` Jacobian.
"""

from typing import Tuple

import numpy as np

from ibfe.core.mesh import ElementType
from ibfe.elements.elements import QuadratureType, ReferenceElement, line_rule


def _unit_rule(n_points: int, quad_type: QuadratureType) -> Tuple[np.ndarray, np.ndarray]:
    p, w = line_rule(n_points, quad_type)
    return 0.5 * (p + 1.0), 0.5 * w


class TRI3(ReferenceElement):
    element_type = ElementType.triangle
    reference_nodes = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])

    def __init__(self):
        super().__init__("TRI3")

    def integration_points(self, n_points: int, quad_type: QuadratureType) -> Tuple[np.ndarray, np.ndarray]:
        extra = 1 if QuadratureType(quad_type) == QuadratureType.GAUSS else 0
        a, wa = _unit_rule(n_points + extra, quad_type)
        b, wb = _unit_rule(n_points, quad_type)
        A, B = np.meshgrid(a, b, indexing="ij")
        WA, WB = np.meshgrid(wa, wb, indexing="ij")
        xi = A.ravel()
        eta = (B * (1.0 - A)).ravel()
        weights = (WA * WB * (1.0 - A)).ravel()
        return np.stack([xi, eta], axis=1), weights

    def shape_functions(self, xi: np.ndarray) -> np.ndarray:
        xi = np.asarray(xi)
        s, t = xi[:, 0], xi[:, 1]
        return np.stack([1.0 - s - t, s, t], axis=1)

    def shape_function_derivatives(self, xi: np.ndarray) -> np.ndarray:
        n = np.asarray(xi).shape[0]
        dN = np.array([[-1.0, -1.0], [1.0, 0.0], [0.0, 1.0]])
        return np.broadcast_to(dN, (n, 3, 2)).copy()
