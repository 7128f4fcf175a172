"""
Mesh generators module.

This module contains classes for generating the structured meshes used for
immersed structures:
- RingMesh: closed curve (circle) of line elements in 2D
- RectangleMesh: 2D solid rectangle of quadrilaterals or triangles
- SphereSurfaceMesh: closed triangulated sphere surface in 3D
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Sequence, Tuple

import numpy as np

from ibfe.core.mesh.entities import ElementType, NodeSet

if TYPE_CHECKING:
    from ibfe.core.mesh.model import MeshModel


class RingMesh:
    """
    Generates a closed circular curve in 2D.

    Nodes are ordered counter-clockwise, so the element normals
    ``(t_y, -t_x)`` point away from the center.

    Attributes
    ----------
    radius : float
        Reference radius.
    n_elements : int
        Number of elements (equal to the number of vertex nodes).
    center : tuple of float
        Ring center.
    quadratic : bool
        Use 3-node quadratic edges instead of straight segments.
    """

    def __init__(
        self,
        radius: float,
        n_elements: int,
        center: Sequence[float] = (0.0, 0.0),
        quadratic: bool = False,
    ):
        if radius <= 0.0:
            raise ValueError("radius must be positive")
        if n_elements < 3:
            raise ValueError("a ring needs at least 3 elements")
        self.radius = radius
        self.n_elements = n_elements
        self.center = np.asarray(center, dtype=float)
        self.quadratic = quadratic

    def generate(self) -> "MeshModel":
        """Generates and returns a MeshModel with the ring."""
        from ibfe.core.mesh.model import MeshModel

        mesh = MeshModel(spatial_dim=2)
        n = self.n_elements
        theta = 2.0 * np.pi * np.arange(n) / n
        for t in theta:
            mesh.add_node(self.center + self.radius * np.array([np.cos(t), np.sin(t)]))

        if self.quadratic:
            theta_mid = theta + np.pi / n
            mid_ids = [
                mesh.add_node(self.center + self.radius * np.array([np.cos(t), np.sin(t)])).id
                for t in theta_mid
            ]
            for e in range(n):
                mesh.add_element((e, (e + 1) % n, mid_ids[e]), ElementType.line3)
        else:
            for e in range(n):
                mesh.add_element((e, (e + 1) % n), ElementType.line)

        mesh.add_node_set(NodeSet("all", range(mesh.node_count)))
        return mesh

    @classmethod
    def create_ring(cls, radius: float, n_elements: int, **kwargs) -> "MeshModel":
        return cls(radius, n_elements, **kwargs).generate()


class RectangleMesh:
    """
    Generates a structured 2D solid rectangle.

    Attributes
    ----------
    width, height : float
        Rectangle size.
    nx, ny : int
        Number of divisions in each direction.
    origin : tuple of float
        Lower-left corner.
    triangular : bool
        Split every quadrilateral into two triangles.
    """

    def __init__(
        self,
        width: float,
        height: float,
        nx: int,
        ny: int,
        origin: Sequence[float] = (0.0, 0.0),
        triangular: bool = False,
    ):
        self.width = width
        self.height = height
        self.nx = nx
        self.ny = ny
        self.origin = np.asarray(origin, dtype=float)
        self.triangular = triangular

    def generate(self) -> "MeshModel":
        from ibfe.core.mesh.model import MeshModel

        mesh = MeshModel(spatial_dim=2)
        xs = np.linspace(0.0, self.width, self.nx + 1)
        ys = np.linspace(0.0, self.height, self.ny + 1)
        for y in ys:
            for x in xs:
                mesh.add_node(self.origin + np.array([x, y]))

        def nid(i: int, j: int) -> int:
            return j * (self.nx + 1) + i

        for j in range(self.ny):
            for i in range(self.nx):
                n0, n1, n2, n3 = nid(i, j), nid(i + 1, j), nid(i + 1, j + 1), nid(i, j + 1)
                if self.triangular:
                    mesh.add_element((n0, n1, n2), ElementType.triangle)
                    mesh.add_element((n0, n2, n3), ElementType.triangle)
                else:
                    mesh.add_element((n0, n1, n2, n3), ElementType.quad)

        sets: Dict[str, list] = {"all": list(range(mesh.node_count))}
        sets["bottom"] = [nid(i, 0) for i in range(self.nx + 1)]
        sets["top"] = [nid(i, self.ny) for i in range(self.nx + 1)]
        sets["left"] = [nid(0, j) for j in range(self.ny + 1)]
        sets["right"] = [nid(self.nx, j) for j in range(self.ny + 1)]
        for name, ids in sets.items():
            mesh.add_node_set(NodeSet(name, ids))
        return mesh

    @classmethod
    def create_rectangle(cls, width: float, height: float, nx: int, ny: int, **kwargs):
        return cls(width, height, nx, ny, **kwargs).generate()


class SphereSurfaceMesh:
    """
    Generates a triangulated sphere surface by icosahedron subdivision.

    Triangles are oriented so that ``(x1 - x0) x (x2 - x0)`` points outward.

    Attributes
    ----------
    radius : float
        Sphere radius.
    refinements : int
        Number of midpoint subdivisions of the icosahedron (20 * 4**n triangles).
    center : tuple of float
        Sphere center.
    """

    def __init__(self, radius: float, refinements: int = 2, center: Sequence[float] = (0, 0, 0)):
        self.radius = radius
        self.refinements = refinements
        self.center = np.asarray(center, dtype=float)

    @staticmethod
    def _icosahedron() -> Tuple[np.ndarray, np.ndarray]:
        phi = (1.0 + np.sqrt(5.0)) / 2.0
        verts = np.array(
            [
                [-1, phi, 0], [1, phi, 0], [-1, -phi, 0], [1, -phi, 0],
                [0, -1, phi], [0, 1, phi], [0, -1, -phi], [0, 1, -phi],
                [phi, 0, -1], [phi, 0, 1], [-phi, 0, -1], [-phi, 0, 1],
            ],
            dtype=float,
        )
        faces = np.array(
            [
                [0, 11, 5], [0, 5, 1], [0, 1, 7], [0, 7, 10], [0, 10, 11],
                [1, 5, 9], [5, 11, 4], [11, 10, 2], [10, 7, 6], [7, 1, 8],
                [3, 9, 4], [3, 4, 2], [3, 2, 6], [3, 6, 8], [3, 8, 9],
                [4, 9, 5], [2, 4, 11], [6, 2, 10], [8, 6, 7], [9, 8, 1],
            ],
            dtype=np.int64,
        )
        verts /= np.linalg.norm(verts, axis=1, keepdims=True)
        return verts, faces

    def generate(self) -> "MeshModel":
        from ibfe.core.mesh.model import MeshModel

        verts, faces = self._icosahedron()
        vert_list = list(verts)
        for _ in range(self.refinements):
            midpoint_cache: Dict[Tuple[int, int], int] = {}

            def midpoint(a: int, b: int) -> int:
                key = (min(a, b), max(a, b))
                if key not in midpoint_cache:
                    m = vert_list[a] + vert_list[b]
                    vert_list.append(m / np.linalg.norm(m))
                    midpoint_cache[key] = len(vert_list) - 1
                return midpoint_cache[key]

            new_faces = []
            for a, b, c in faces:
                ab, bc, ca = midpoint(a, b), midpoint(b, c), midpoint(c, a)
                new_faces.extend([[a, ab, ca], [b, bc, ab], [c, ca, bc], [ab, bc, ca]])
            faces = np.asarray(new_faces, dtype=np.int64)

        points = np.asarray(vert_list)
        mesh = MeshModel(spatial_dim=3)
        for p in points:
            mesh.add_node(self.center + self.radius * p)
        for a, b, c in faces:
            normal = np.cross(points[b] - points[a], points[c] - points[a])
            if np.dot(normal, points[a] + points[b] + points[c]) < 0.0:
                b, c = c, b
            mesh.add_element((a, b, c), ElementType.triangle)

        mesh.add_node_set(NodeSet("all", range(mesh.node_count)))
        return mesh
