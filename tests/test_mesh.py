import numpy as np
import pytest

from ibfe.core.mesh import ElementType, MeshModel, NodeSet, RectangleMesh, RingMesh, SphereSurfaceMesh


@pytest.fixture
def empty_mesh():
    return MeshModel(spatial_dim=2)


@pytest.fixture
def sample_mesh():
    mesh = MeshModel(spatial_dim=2)
    mesh.add_node([0.0, 0.0])
    mesh.add_node([1.0, 0.0])
    mesh.add_node([1.0, 1.0])
    mesh.add_element((0, 1, 2), ElementType.triangle)
    mesh.add_node_set(NodeSet("test_set", [0, 1]))
    return mesh


class TestMeshModel:
    def test_initialization(self, empty_mesh):
        assert empty_mesh.node_count == 0
        assert empty_mesh.element_count == 0
        assert len(empty_mesh.node_sets) == 0
        assert empty_mesh.coords_array.shape == (0, 2)

    def test_invalid_dimension(self):
        with pytest.raises(ValueError):
            MeshModel(spatial_dim=1)

    def test_add_node(self, empty_mesh):
        node = empty_mesh.add_node([0.5, 0.25])
        assert node.id == 0
        assert np.isclose(node.y, 0.25)

        with pytest.raises(ValueError):
            empty_mesh.add_node([1.0, 1.0, 1.0])

    def test_add_element(self, sample_mesh):
        assert sample_mesh.element_count == 1
        assert sample_mesh.elements[0].node_ids == (0, 1, 2)

        with pytest.raises(ValueError):
            sample_mesh.add_element((0, 1, 7), ElementType.triangle)

    def test_node_sets(self, sample_mesh):
        assert "test_set" in sample_mesh.node_sets
        assert len(sample_mesh.get_node_set("test_set")) == 2

        with pytest.raises(ValueError):
            sample_mesh.add_node_set(NodeSet(name="test_set", node_ids=[]))

        with pytest.raises(ValueError):
            sample_mesh.get_node_set("non_existent")

    def test_coords_cache_is_refreshed(self, sample_mesh):
        assert sample_mesh.coords_array.shape == (3, 2)
        sample_mesh.add_node([2.0, 2.0])
        assert sample_mesh.coords_array.shape == (4, 2)

    def test_element_groups(self, sample_mesh):
        ids, conn = sample_mesh.element_groups()[ElementType.triangle]
        assert ids.tolist() == [0]
        assert conn.shape == (1, 3)
        assert sample_mesh.topological_dim == 2
        assert not sample_mesh.is_codim_one


class TestRingMesh:
    def test_nodes_lie_on_circle(self):
        mesh = RingMesh.create_ring(radius=0.3, n_elements=12, center=(1.0, 2.0))
        r = np.linalg.norm(mesh.coords_array - [1.0, 2.0], axis=1)
        assert np.allclose(r, 0.3)
        assert mesh.element_count == 12
        assert mesh.is_codim_one

    def test_counter_clockwise_ordering(self):
        mesh = RingMesh.create_ring(radius=1.0, n_elements=8)
        _, conn = mesh.element_groups()[ElementType.line]
        x = mesh.coords_array
        t = x[conn[:, 1]] - x[conn[:, 0]]
        mid = 0.5 * (x[conn[:, 1]] + x[conn[:, 0]])
        # (t_y, -t_x) points away from the center
        assert np.all(t[:, 1] * mid[:, 0] - t[:, 0] * mid[:, 1] > 0.0)

    def test_quadratic_ring(self):
        mesh = RingMesh.create_ring(radius=1.0, n_elements=6, quadratic=True)
        assert mesh.node_count == 12
        assert list(mesh.element_groups()) == [ElementType.line3]

    def test_edge_cases(self):
        with pytest.raises(ValueError):
            RingMesh(radius=0.0, n_elements=8)
        with pytest.raises(ValueError):
            RingMesh(radius=1.0, n_elements=2)


class TestRectangleMesh:
    def test_mesh_dimensions(self):
        mesh = RectangleMesh.create_rectangle(width=2.0, height=1.0, nx=2, ny=1, origin=(-1.0, 0.0))
        x = mesh.coords_array
        assert np.all((x[:, 0] >= -1.0) & (x[:, 0] <= 1.0))
        assert np.all((x[:, 1] >= 0.0) & (x[:, 1] <= 1.0))
        assert mesh.topological_dim == 2

    def test_node_sets_creation(self):
        mesh = RectangleMesh.create_rectangle(width=2.0, height=1.0, nx=2, ny=1)
        for name in ["all", "top", "bottom", "left", "right"]:
            assert mesh.get_node_set(name) is not None
        top = mesh.get_node_set("top")
        assert np.allclose(mesh.coords_array[list(top.node_ids), 1], 1.0)

    def test_element_types(self):
        tri_mesh = RectangleMesh.create_rectangle(width=2.0, height=1.0, nx=2, ny=1, triangular=True)
        quad_mesh = RectangleMesh.create_rectangle(width=2.0, height=1.0, nx=2, ny=1)
        assert tri_mesh.element_count == 4
        assert tri_mesh.elements[0].node_count == 3
        assert quad_mesh.elements[0].node_count == 4


class TestSphereSurfaceMesh:
    def test_refinement_counts(self):
        mesh = SphereSurfaceMesh(radius=1.0, refinements=1).generate()
        assert mesh.element_count == 80
        assert mesh.node_count == 42
        assert mesh.is_codim_one

    def test_outward_orientation(self):
        mesh = SphereSurfaceMesh(radius=2.0, refinements=1, center=(1.0, 0.0, 0.0)).generate()
        x = mesh.coords_array - [1.0, 0.0, 0.0]
        assert np.allclose(np.linalg.norm(x, axis=1), 2.0)
        _, conn = mesh.element_groups()[ElementType.triangle]
        normals = np.cross(x[conn[:, 1]] - x[conn[:, 0]], x[conn[:, 2]] - x[conn[:, 0]])
        assert np.all(np.sum(normals * x[conn].mean(axis=1), axis=1) > 0.0)
