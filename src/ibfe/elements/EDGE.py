"""Edge Elements for Immersed Curves (EDGE2, EDGE3)

Elements supported:
- EDGE2: 2-node linear segment
- EDGE3: 3-node quadratic segment

Node numbering convention (reference coordinate xi in [-1, 1]):

    EDGE2          EDGE3
    0-------1      0---2---1
"""

from typing import Tuple

import numpy as np

from ibfe.core.mesh import ElementType
from ibfe.elements.elements import QuadratureType, ReferenceElement, line_rule


class EDGE(ReferenceElement):
    """Base class for line elements"""

    def integration_points(self, n_points: int, quad_type: QuadratureType) -> Tuple[np.ndarray, np.ndarray]:
        points, weights = line_rule(n_points, quad_type)
        return points[:, None].copy(), weights.copy()


class EDGE2(EDGE):
    element_type = ElementType.line
    reference_nodes = np.array([[-1.0], [1.0]])

    def __init__(self):
        super().__init__("EDGE2")

    def shape_functions(self, xi: np.ndarray) -> np.ndarray:
        """Linear shape functions

        N0 = 0.5(1 - xi)
        N1 = 0.5(1 + xi)
        """
        s = np.asarray(xi)[:, 0]
        return 0.5 * np.stack([1 - s, 1 + s], axis=1)

    def shape_function_derivatives(self, xi: np.ndarray) -> np.ndarray:
        n = np.asarray(xi).shape[0]
        return np.broadcast_to(np.array([[-0.5], [0.5]]), (n, 2, 1)).copy()


class EDGE3(EDGE):
    element_type = ElementType.line3
    reference_nodes = np.array([[-1.0], [1.0], [0.0]])

    def __init__(self):
        super().__init__("EDGE3")

    def shape_functions(self, xi: np.ndarray) -> np.ndarray:
        """Quadratic shape functions

        N0 = 0.5 xi (xi - 1)
        N1 = 0.5 xi (xi + 1)
        N2 = 1 - xi^2
        """
        s = np.asarray(xi)[:, 0]
        return np.stack([0.5 * s * (s - 1), 0.5 * s * (s + 1), 1 - s**2], axis=1)

    def shape_function_derivatives(self, xi: np.ndarray) -> np.ndarray:
        s = np.asarray(xi)[:, 0]
        return np.stack([s - 0.5, s + 0.5, -2 * s], axis=1)[:, :, None]
