from .EDGE import EDGE2, EDGE3
from .elements import ElementFactory, QuadratureType, ReferenceElement, line_rule, points_per_direction
from .QUAD import QUAD4
from .TET import TET4
from .TRI import TRI3

__all__ = [
    "ElementFactory",
    "QuadratureType",
    "ReferenceElement",
    "line_rule",
    "points_per_direction",
    "EDGE2",
    "EDGE3",
    "QUAD4",
    "TRI3",
    "TET4",
]
