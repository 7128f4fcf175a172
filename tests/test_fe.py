import numpy as np
import pytest
from numpy.testing import assert_allclose

from ibfe.core.config import InterpSpec
from ibfe.core.exceptions import DegenerateElementError
from ibfe.core.mesh import ElementType, MeshModel, RectangleMesh, RingMesh, SphereSurfaceMesh
from ibfe.elements import ElementFactory, QuadratureType, line_rule, points_per_direction
from ibfe.fe import FEDataManager, current_geometry
from ibfe.grid import CartesianGrid, DataCentering


@pytest.fixture
def ring():
    return RingMesh.create_ring(radius=0.25, n_elements=24, center=(0.5, 0.5))


@pytest.fixture
def ring_manager(ring):
    manager = FEDataManager(0, ring)
    yield manager
    manager.destroy()


def chord_length(radius, n):
    return n * 2.0 * radius * np.sin(np.pi / n)


REFERENCE_MEASURE = {
    ElementType.line: 2.0,
    ElementType.line3: 2.0,
    ElementType.triangle: 0.5,
    ElementType.quad: 4.0,
    ElementType.tetra: 1.0 / 6.0,
}


class TestReferenceElements:
    @pytest.mark.parametrize("etype", list(REFERENCE_MEASURE))
    @pytest.mark.parametrize("quad_type", list(QuadratureType))
    def test_rules_and_partition_of_unity(self, etype, quad_type):
        element = ElementFactory.get_element(etype)
        xi, weights = element.rule(3, quad_type)
        # Midpoint rules do not integrate the collapsed tetrahedron Jacobian exactly
        rtol = 0.1 if (etype == ElementType.tetra and quad_type == QuadratureType.GRID) else 1e-12
        assert_allclose(weights.sum(), REFERENCE_MEASURE[etype], rtol=rtol)
        assert_allclose(element.shape_functions(xi).sum(axis=1), 1.0, atol=1e-12)
        assert_allclose(element.shape_function_derivatives(xi).sum(axis=1), 0.0, atol=1e-12)

    @pytest.mark.parametrize("etype", list(REFERENCE_MEASURE))
    def test_nodal_interpolation(self, etype):
        element = ElementFactory.get_element(etype)
        assert_allclose(element.shape_functions(element.reference_nodes), np.eye(element.node_count), atol=1e-12)

    def test_gauss_rule_exactness(self):
        n = points_per_direction(5)
        points, weights = line_rule(n, QuadratureType.GAUSS)
        assert n == 3
        assert_allclose(np.sum(weights * points**4), 2.0 / 5.0, rtol=1e-12)

    def test_factory_caches_instances(self):
        assert ElementFactory.get_element(ElementType.line) is ElementFactory.get_element(ElementType.line)


class TestQuadratureBatches:
    def test_ring_length(self, ring_manager):
        batches = ring_manager.quadrature_batches(QuadratureType.GAUSS, 3)
        total = sum(batch.JxW0.sum() for batch in batches)
        assert_allclose(total, chord_length(0.25, 24), rtol=1e-12)

    def test_quadratic_ring_is_closer_to_circle(self):
        mesh = RingMesh.create_ring(radius=1.0, n_elements=8, quadratic=True)
        manager = FEDataManager(0, mesh)
        total = sum(b.JxW0.sum() for b in manager.quadrature_batches(QuadratureType.GAUSS, 5))
        assert abs(total - 2.0 * np.pi) < abs(chord_length(1.0, 8) - 2.0 * np.pi)
        manager.destroy()

    def test_rectangle_area(self):
        for triangular in (False, True):
            mesh = RectangleMesh.create_rectangle(0.3, 0.2, 3, 2, triangular=triangular)
            manager = FEDataManager(0, mesh)
            total = sum(b.JxW0.sum() for b in manager.quadrature_batches(QuadratureType.GAUSS, 2))
            assert_allclose(total, 0.06, rtol=1e-12)
            manager.destroy()

    def test_sphere_area(self):
        mesh = SphereSurfaceMesh(radius=1.0, refinements=2).generate()
        manager = FEDataManager(0, mesh)
        total = sum(b.JxW0.sum() for b in manager.quadrature_batches(QuadratureType.GAUSS, 2))
        assert_allclose(total, 4.0 * np.pi, rtol=0.05)
        manager.destroy()

    def test_adaptive_quadrature_adds_points(self, ring_manager):
        x = ring_manager.reference_coords
        fixed = ring_manager.quadrature_batches(QuadratureType.GAUSS, 1)
        adaptive = ring_manager.quadrature_batches(
            QuadratureType.GAUSS, 1, x, use_adaptive_quadrature=True, point_density=2.0, dx_min=0.01
        )
        assert sum(b.n_points for b in adaptive) > sum(b.n_points for b in fixed)

    def test_outward_normals(self, ring_manager):
        x = ring_manager.reference_coords
        for batch in ring_manager.quadrature_batches(QuadratureType.GAUSS, 3):
            geom = current_geometry(batch, x)
            radial = geom.x - 0.5
            assert np.all(np.sum(radial * geom.normals, axis=-1) > 0.0)
            assert_allclose(geom.J, 1.0, rtol=1e-12)

    def test_stretch_ratio(self, ring_manager):
        x = 0.5 + 2.0 * (ring_manager.reference_coords - 0.5)
        for batch in ring_manager.quadrature_batches(QuadratureType.GAUSS, 3):
            geom = current_geometry(batch, x)
            assert_allclose(geom.J, 2.0, rtol=1e-12)
            tangential = np.einsum("eqij,eqj->eqi", geom.FF, geom.tangents)
            assert_allclose(np.linalg.norm(tangential, axis=-1), 2.0, rtol=1e-12)

    def test_degenerate_reference_element(self):
        mesh = MeshModel(spatial_dim=2)
        mesh.add_node([0.0, 0.0])
        mesh.add_node([0.0, 0.0])
        mesh.add_element((0, 1), ElementType.line)
        manager = FEDataManager(3, mesh)
        with pytest.raises(DegenerateElementError) as excinfo:
            manager.quadrature_batches(QuadratureType.GAUSS, 3)
        assert excinfo.value.part == 3
        assert excinfo.value.element_id == 0

    def test_degenerate_current_element(self, ring_manager):
        x = np.zeros_like(ring_manager.reference_coords)
        batch = ring_manager.quadrature_batches(QuadratureType.GAUSS, 3)[0]
        with pytest.raises(DegenerateElementError):
            current_geometry(batch, x)


class TestFEDataManager:
    def test_mass_matrix_total(self, ring_manager):
        ones = ring_manager.create_vector(2)
        ones.set(1.0)
        Mx = ones.duplicate()
        ring_manager.mass_matrix(2).mult(ones, Mx)
        assert_allclose(Mx.sum(), 2.0 * chord_length(0.25, 24), rtol=1e-12)
        assert_allclose(ring_manager.lumped_mass(2).sum(), 2.0 * chord_length(0.25, 24), rtol=1e-12)

    @pytest.mark.parametrize("consistent", [True, False])
    def test_projection_of_constant(self, ring_manager, consistent):
        batches = ring_manager.quadrature_batches(QuadratureType.GAUSS, 3)
        out = ring_manager.project_integrand(
            batches, lambda b: np.full((b.n_elem, b.n_qp, 1), 3.5), 1, consistent
        )
        assert_allclose(out.getArray(), 3.5, rtol=1e-10)
        out.destroy()

    def test_interpolate_linear_velocity(self, ring_manager):
        grid = CartesianGrid([0.0, 0.0], [1.0, 1.0], [32, 32], periodic=[True, True])
        u = grid.allocate(DataCentering.SIDE, 3)
        u.set_from_function(lambda x, comp: x[..., 1] if comp == 0 else -2.0 * x[..., 0])
        n = ring_manager.mesh.node_count
        x_vec = ring_manager.create_vector(2)
        ring_manager.set_nodal_values(x_vec, ring_manager.mesh.coords_array)
        out = ring_manager.create_vector(2)
        ring_manager.interpolate(u, x_vec, InterpSpec(), out)
        values = ring_manager.gather_nodal_values(out, 2)
        X = ring_manager.mesh.coords_array
        assert values.shape == (n, 2)
        assert_allclose(values[:, 0], X[:, 1], atol=1e-9)
        assert_allclose(values[:, 1], -2.0 * X[:, 0], atol=1e-9)

    def test_spread_total(self, ring_manager):
        grid = CartesianGrid([0.0, 0.0], [1.0, 1.0], [32, 32], periodic=[True, True])
        f = grid.allocate(DataCentering.SIDE, 3)
        x_vec = ring_manager.create_vector(2)
        ring_manager.set_nodal_values(x_vec, ring_manager.mesh.coords_array)
        F = ring_manager.create_vector(2)
        ring_manager.set_nodal_values(F, np.tile([1.0, -2.0], (ring_manager.mesh.node_count, 1)))
        ring_manager.spread(f, F, x_vec, InterpSpec())
        f.accumulate_ghost_values()
        length = chord_length(0.25, 24)
        assert_allclose([f.integral(0), f.integral(1)], [length, -2.0 * length], rtol=1e-10)

    def test_system_levels(self, ring_manager):
        system = ring_manager.register_system("test system", 2)
        assert ring_manager.register_system("test system", 2) is system
        system.solution.set(1.0)
        assert system.latest_vector() is system.solution
        system.get_vector("new").set(4.0)
        assert_allclose(system.get_vector("current").getArray(), 1.0)
        system.touch("new")
        system.commit()
        assert_allclose(system.solution.getArray(), 4.0)
        ring_manager.release_ghost_vectors()
        assert not system.has_vector("new")
        assert system.latest_level is None

    def test_unknown_system(self, ring_manager):
        with pytest.raises(KeyError):
            ring_manager.get_system("missing system")
