"""
Mesh entities module.

This module contains the fundamental building blocks for mesh representation:
- Node: A point in 2D or 3D space
- MeshElement: A connectivity element defined by node ids
- NodeSet: A named collection of nodes
"""

from enum import IntEnum
from typing import Iterable, Sequence, Tuple, Union

import numpy as np
from pyvista.core.celltype import CellType


class ElementType(IntEnum):
    """Enumeration of supported element types.

    Values correspond to PyVista/VTK cell type constants.
    """

    # Curve elements (codimension one in 2D)
    line = CellType.LINE
    line3 = CellType.QUADRATIC_EDGE

    # Surface elements (codimension one in 3D, volumetric in 2D)
    triangle = CellType.TRIANGLE
    quad = CellType.QUAD

    # Volumetric elements
    tetra = CellType.TETRA


# Topological dimension of each element type
ELEMENT_DIM = {
    ElementType.line: 1,
    ElementType.line3: 1,
    ElementType.triangle: 2,
    ElementType.quad: 2,
    ElementType.tetra: 3,
}

# Number of nodes of each element type
ELEMENT_NODE_COUNT = {
    ElementType.line: 2,
    ElementType.line3: 3,
    ElementType.triangle: 3,
    ElementType.quad: 4,
    ElementType.tetra: 4,
}


class Node:
    """
    Represents a mesh node.

    Attributes
    ----------
    id : int
        Index of the node inside its mesh.
    coords : np.ndarray
        Reference coordinates, of length equal to the spatial dimension.
    """

    def __init__(self, node_id: int, coords: Union[Iterable[float], np.ndarray]):
        self.id = node_id
        self.coords = np.asarray(coords, dtype=float)

    @property
    def x(self) -> float:
        return float(self.coords[0])

    @property
    def y(self) -> float:
        return float(self.coords[1])

    @property
    def z(self) -> float:
        return float(self.coords[2]) if self.coords.size > 2 else 0.0

    def __repr__(self):
        return f"<Node id={self.id} coords={self.coords.tolist()}>"


class MeshElement:
    """
    Represents a mesh element defined solely by node connectivity.

    Attributes
    ----------
    id : int
        Index of the element inside its mesh.
    node_ids : tuple of int
        Node indices forming the element, in the reference-element order.
    element_type : ElementType
        Type of the element.
    """

    def __init__(self, element_id: int, node_ids: Sequence[int], element_type: ElementType):
        expected = ELEMENT_NODE_COUNT[element_type]
        if len(node_ids) != expected:
            raise ValueError(
                f"Element type {element_type.name} needs {expected} nodes, got {len(node_ids)}"
            )
        self.id = element_id
        self.node_ids: Tuple[int, ...] = tuple(int(n) for n in node_ids)
        self.element_type = element_type

    @property
    def node_count(self) -> int:
        """Get the number of nodes in this element."""
        return len(self.node_ids)

    @property
    def dim(self) -> int:
        """Topological dimension of the element."""
        return ELEMENT_DIM[self.element_type]

    def __repr__(self):
        return f"<MeshElement id={self.id} type={self.element_type.name} nodes={self.node_ids}>"


class NodeSet:
    """
    A named collection of node ids.

    Parameters
    ----------
    name : str
        Name of the set.
    node_ids : Iterable[int]
        Node indices in the set.
    """

    def __init__(self, name: str, node_ids: Iterable[int]):
        self.name = name
        self.node_ids = frozenset(int(n) for n in node_ids)

    def __len__(self) -> int:
        return len(self.node_ids)

    def __repr__(self):
        return f"<NodeSet name={self.name} size={len(self.node_ids)}>"
