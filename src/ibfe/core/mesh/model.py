"""
MeshModel class module.

This module contains the MeshModel class that represents the reference
(Lagrangian) configuration of one immersed structure.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

import numpy as np

from ibfe.core.mesh.entities import ELEMENT_DIM, ElementType, MeshElement, Node, NodeSet


class MeshModel:
    """
    Represents a mesh composed of nodes and connectivity elements.

    Node and element ids are their indices in ``nodes`` and ``elements``;
    meshes are always built through ``add_node`` and ``add_element``.

    Parameters
    ----------
    spatial_dim : int
        Dimension of the space the mesh is embedded in (2 or 3).

    Attributes
    ----------
    nodes : list of Node
        Nodes of the mesh.
    elements : list of MeshElement
        Connectivity elements of the mesh.
    node_sets : dict
        Dictionary mapping node set names to NodeSet instances.
    """

    def __init__(self, spatial_dim: int):
        if spatial_dim not in (2, 3):
            raise ValueError(f"Unsupported spatial dimension: {spatial_dim}")
        self.spatial_dim = spatial_dim
        self.nodes: List[Node] = []
        self.elements: List[MeshElement] = []
        self.node_sets: Dict[str, NodeSet] = {}
        self._coords_cache: np.ndarray | None = None
        self._groups_cache: Dict[ElementType, Tuple[np.ndarray, np.ndarray]] | None = None

    # =========================================================================
    # Add/Get Methods
    # =========================================================================

    def add_node(self, coords: Iterable[float]) -> Node:
        """Add a node to the mesh and return it."""
        coords = np.asarray(coords, dtype=float)
        if coords.shape != (self.spatial_dim,):
            raise ValueError(
                f"Node coordinates must have shape ({self.spatial_dim},), got {coords.shape}"
            )
        node = Node(len(self.nodes), coords)
        self.nodes.append(node)
        self._coords_cache = None
        return node

    def add_element(self, node_ids: Iterable[int], element_type: ElementType) -> MeshElement:
        """Add a connectivity element to the mesh and return it."""
        node_ids = tuple(node_ids)
        for nid in node_ids:
            if not 0 <= nid < len(self.nodes):
                raise ValueError(f"Node with id {nid} not found.")
        element = MeshElement(len(self.elements), node_ids, element_type)
        self.elements.append(element)
        self._groups_cache = None
        return element

    def add_node_set(self, node_set: NodeSet):
        """Add a node set to the mesh."""
        if node_set.name in self.node_sets:
            raise ValueError(f"NodeSet '{node_set.name}' already exists.")
        self.node_sets[node_set.name] = node_set

    def get_node_set(self, name: str) -> NodeSet:
        """Retrieve a node set by its name."""
        try:
            return self.node_sets[name]
        except KeyError:
            raise ValueError(f"NodeSet '{name}' not found.")

    # =========================================================================
    # Array views
    # =========================================================================

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def element_count(self) -> int:
        return len(self.elements)

    @property
    def coords_array(self) -> np.ndarray:
        """Reference coordinates as an (n_nodes, spatial_dim) array."""
        if self._coords_cache is None:
            if self.nodes:
                self._coords_cache = np.array([node.coords for node in self.nodes])
            else:
                self._coords_cache = np.zeros((0, self.spatial_dim))
        return self._coords_cache

    @property
    def topological_dim(self) -> int:
        """Largest topological dimension among the mesh elements."""
        if not self.elements:
            return 0
        return max(ELEMENT_DIM[e.element_type] for e in self.elements)

    @property
    def is_codim_one(self) -> bool:
        """True for curves in 2D and surfaces in 3D."""
        return self.topological_dim == self.spatial_dim - 1

    def element_groups(self) -> Dict[ElementType, Tuple[np.ndarray, np.ndarray]]:
        """
        Group elements by type.

        Returns
        -------
        Dict[ElementType, Tuple[np.ndarray, np.ndarray]]
            For each element type, the element ids ``(n_elem,)`` and the
            connectivity ``(n_elem, n_nodes)``.
        """
        if self._groups_cache is None:
            groups: Dict[ElementType, Tuple[List[int], List[Tuple[int, ...]]]] = {}
            for element in self.elements:
                ids, conn = groups.setdefault(element.element_type, ([], []))
                ids.append(element.id)
                conn.append(element.node_ids)
            self._groups_cache = {
                etype: (np.asarray(ids, dtype=np.int64), np.asarray(conn, dtype=np.int64))
                for etype, (ids, conn) in groups.items()
            }
        return self._groups_cache

    def __repr__(self):
        return (
            f"<MeshModel dim={self.spatial_dim} nodes={self.node_count} "
            f"elements={self.element_count}>"
        )
