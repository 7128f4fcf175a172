from enum import Enum
from functools import lru_cache
from typing import Dict, Tuple

import numpy as np

from ibfe.core.exceptions import ConfigurationError
from ibfe.core.mesh import ELEMENT_DIM, ELEMENT_NODE_COUNT, ElementType


class QuadratureType(str, Enum):
    """Quadrature families available to the interaction rules."""

    GAUSS = "QGAUSS"
    GRID = "QGRID"


@lru_cache(maxsize=64)
def line_rule(n_points: int, quad_type: QuadratureType = QuadratureType.GAUSS) -> Tuple[np.ndarray, np.ndarray]:
    """
    One-dimensional rule on ``[-1, 1]``.

    GAUSS is Gauss-Legendre (exact for degree ``2 n - 1``); GRID is the
    composite midpoint rule with equally spaced points.
    """
    n_points = max(int(n_points), 1)
    if QuadratureType(quad_type) == QuadratureType.GAUSS:
        points, weights = np.polynomial.legendre.leggauss(n_points)
    else:
        points = -1.0 + (2.0 * np.arange(n_points) + 1.0) / n_points
        weights = np.full(n_points, 2.0 / n_points)
    points.setflags(write=False)
    weights.setflags(write=False)
    return points, weights


def points_per_direction(order: int) -> int:
    """Gauss points per direction needed to integrate polynomials of degree ``order``."""
    return max(int(np.ceil((int(order) + 1) / 2.0)), 1)


class ReferenceElement:
    """
    Lagrange reference element evaluated at batches of reference points.

    Subclasses provide ``shape_functions`` and ``shape_function_derivatives``
    for arrays of points ``xi`` of shape ``(nq, dim)`` and the rule
    ``integration_points(n, quad_type)``.
    """

    element_type: ElementType = None
    reference_nodes: np.ndarray = None

    def __init__(self, name: str):
        self.name = name
        self.dim = ELEMENT_DIM[self.element_type]
        self.node_count = ELEMENT_NODE_COUNT[self.element_type]

    def shape_functions(self, xi: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def shape_function_derivatives(self, xi: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def integration_points(self, n_points: int, quad_type: QuadratureType) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError

    def rule(self, order: int, quad_type: QuadratureType = QuadratureType.GAUSS):
        """Rule exact (for GAUSS) up to polynomial degree ``order``."""
        return self.integration_points(points_per_direction(order), quad_type)

    def __repr__(self):
        return f"<ReferenceElement name={self.name} nodes={self.node_count}>"


class ElementFactory:
    _instances: Dict[ElementType, ReferenceElement] = {}

    @staticmethod
    def get_element(element_type: ElementType) -> ReferenceElement:
        from .EDGE import EDGE2, EDGE3
        from .QUAD import QUAD4
        from .TET import TET4
        from .TRI import TRI3

        ELEMENT_MAP = {
            ElementType.line: EDGE2,
            ElementType.line3: EDGE3,
            ElementType.triangle: TRI3,
            ElementType.quad: QUAD4,
            ElementType.tetra: TET4,
        }
        element_type = ElementType(element_type)
        if element_type not in ElementFactory._instances:
            try:
                ElementFactory._instances[element_type] = ELEMENT_MAP[element_type]()
            except KeyError:
                raise ConfigurationError(f"Unsupported element type: {element_type.name}")
        return ElementFactory._instances[element_type]
