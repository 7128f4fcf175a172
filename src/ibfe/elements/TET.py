"""Linear Tetrahedron Element (TET4)

Reference tetrahedron with vertices (0,0,0), (1,0,0), (0,1,0), (0,0,1).
Quadrature collapses the unit cube: ``xi = a``, ``eta = b (1 - a)``,
``zeta = c (1 - a)(1 - b)``.
"""

from typing import Tuple

import numpy as np

from ibfe.core.mesh import ElementType
from ibfe.elements.elements import QuadratureType, ReferenceElement, line_rule


class TET4(ReferenceElement):
    element_type = ElementType.tetra
    reference_nodes = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])

    def __init__(self):
        super().__init__("TET4")

    def integration_points(self, n_points: int, quad_type: QuadratureType) -> Tuple[np.ndarray, np.ndarray]:
        gauss = QuadratureType(quad_type) == QuadratureType.GAUSS
        rules = []
        for extra in ((2, 1, 0) if gauss else (0, 0, 0)):
            p, w = line_rule(n_points + extra, quad_type)
            rules.append((0.5 * (p + 1.0), 0.5 * w))
        (a, wa), (b, wb), (c, wc) = rules
        A, B, C = np.meshgrid(a, b, c, indexing="ij")
        WA, WB, WC = np.meshgrid(wa, wb, wc, indexing="ij")
        xi = A.ravel()
        eta = (B * (1.0 - A)).ravel()
        zeta = (C * (1.0 - A) * (1.0 - B)).ravel()
        weights = (WA * WB * WC * (1.0 - A) ** 2 * (1.0 - B)).ravel()
        return np.stack([xi, eta, zeta], axis=1), weights

    def shape_functions(self, xi: np.ndarray) -> np.ndarray:
        xi = np.asarray(xi)
        return np.concatenate([1.0 - xi.sum(axis=1, keepdims=True), xi], axis=1)

    def shape_function_derivatives(self, xi: np.ndarray) -> np.ndarray:
        n = np.asarray(xi).shape[0]
        dN = np.vstack([-np.ones(3), np.eye(3)])
        return np.broadcast_to(dN, (n, 4, 3)).copy()
