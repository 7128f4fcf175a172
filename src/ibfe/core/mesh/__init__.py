"""
Mesh package for ibfe.

This package provides the reference-configuration description of immersed
structures:
- Mesh entities (Node, MeshElement, NodeSet)
- Mesh model (MeshModel)
- Mesh generators (RingMesh, RectangleMesh, SphereSurfaceMesh)

Usage
-----
>>> from ibfe.core.mesh import RingMesh
>>> mesh = RingMesh.create_ring(radius=1.0, n_elements=32)
"""

from ibfe.core.mesh.entities import (
    ELEMENT_DIM,
    ELEMENT_NODE_COUNT,
    ElementType,
    MeshElement,
    Node,
    NodeSet,
)
from ibfe.core.mesh.generators import RectangleMesh, RingMesh, SphereSurfaceMesh
from ibfe.core.mesh.model import MeshModel

__all__ = [
    # Entities
    "Node",
    "MeshElement",
    "NodeSet",
    "ElementType",
    "ELEMENT_DIM",
    "ELEMENT_NODE_COUNT",
    # Model
    "MeshModel",
    # Generators
    "RingMesh",
    "RectangleMesh",
    "SphereSurfaceMesh",
]
