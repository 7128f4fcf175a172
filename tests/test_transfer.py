import numpy as np
import pytest
from numpy.testing import assert_allclose

from ibfe.core.exceptions import ConfigurationError, StencilError
from ibfe.grid import CartesianGrid, DataCentering, ReflectionBoundaryPolicy
from ibfe.transfer import (
    KernelFunction,
    as_kernel,
    interpolate,
    interpolate_vector,
    kernel_weights,
    min_ghost_width,
    spread,
    spread_vector,
    stencil_size,
    wrap_periodic_points,
)


@pytest.fixture
def periodic_grid():
    return CartesianGrid([0.0, 0.0], [1.0, 1.0], [16, 16], periodic=[True, True])


@pytest.fixture
def wall_grid():
    return CartesianGrid([0.0, 0.0], [1.0, 2.0], [8, 16])


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


class TestKernels:
    @pytest.mark.parametrize("kernel", list(KernelFunction))
    def test_moment_conditions(self, kernel):
        shifts = np.linspace(0.0, 1.0, 11)
        i = np.arange(-4, 6)
        for s in shifts:
            w = kernel_weights(kernel, s - i)
            assert_allclose(np.sum(w), 1.0, atol=1e-12)
            assert_allclose(np.sum((s - i) * w), 0.0, atol=1e-12)

    @pytest.mark.parametrize("kernel", list(KernelFunction))
    def test_support_matches_stencil(self, kernel):
        half = 0.5 * stencil_size(kernel)
        r = np.array([half, half + 0.25, -half - 0.5])
        assert_allclose(kernel_weights(kernel, r), 0.0, atol=1e-14)

    def test_ghost_width(self):
        assert min_ghost_width(KernelFunction.IB_4) == 3
        assert min_ghost_width(KernelFunction.PIECEWISE_LINEAR) == 2
        assert min_ghost_width(KernelFunction.BSPLINE_3) == 2

    def test_as_kernel(self):
        assert as_kernel("IB_3") is KernelFunction.IB_3
        with pytest.raises(ConfigurationError):
            as_kernel("GAUSSIAN")


class TestGridData:
    def test_grid_validation(self):
        with pytest.raises(ValueError):
            CartesianGrid([0.0], [1.0], [4])
        with pytest.raises(ValueError):
            CartesianGrid([0.0, 0.0], [1.0, 0.0], [4, 4])
        with pytest.raises(ValueError):
            CartesianGrid([0.0, 0.0], [1.0, 1.0], [4, 4], periodic=[True])

    def test_side_shapes(self, wall_grid):
        u = wall_grid.allocate(DataCentering.SIDE, 2)
        assert u.depth == 2
        assert u.interior_shape(0) == (9, 16)
        assert u.interior_shape(1) == (8, 17)
        assert u.padded_shape(1) == (12, 21)
        assert_allclose(u.origin(0), [-0.25, -0.125 * 2 + 0.0625])

    def test_periodic_fill(self, periodic_grid, rng):
        g = 2
        p = periodic_grid.allocate(DataCentering.CELL, g)
        p.interior(0)[...] = rng.random((16, 16))
        p.fill_ghost_cells()
        arr = p.arrays[0]
        assert_allclose(arr[0, :], arr[16, :])
        assert_allclose(arr[:, 1], arr[:, 17])
        assert_allclose(arr[-1, :], arr[g + 1, :])

    def test_periodic_fill_side_duplicate_face(self, periodic_grid, rng):
        u = periodic_grid.allocate(DataCentering.SIDE, 2)
        u.interior(0, unique=True)[...] = rng.random((16, 16))
        u.fill_ghost_cells()
        assert_allclose(u.arrays[0][2 + 16, :], u.arrays[0][2, :])

    def test_extrapolation_keeps_linear_fields(self, wall_grid):
        p = wall_grid.allocate(DataCentering.CELL, 3)
        p.set_from_function(lambda x, comp: 2.0 * x[..., 0] - x[..., 1])
        expected = p.arrays[0].copy()
        p.arrays[0][:3, :] = 0.0
        p.arrays[0][:, -3:] = 0.0
        p.fill_ghost_cells()
        assert_allclose(p.arrays[0], expected, atol=1e-12)

    def test_accumulate_ghost_values(self, periodic_grid):
        p = periodic_grid.allocate(DataCentering.CELL, 2)
        p.arrays[0][0, 5] = 3.0
        p.arrays[0][7, 19] = 1.0
        p.accumulate_ghost_values()
        assert_allclose(p.arrays[0][16, 5], 3.0)
        assert_allclose(p.arrays[0][7, 3], 1.0)
        assert_allclose(p.integral(0), 4.0 * periodic_grid.cell_volume)

    def test_accumulate_discards_wall_ghosts(self, wall_grid):
        p = wall_grid.allocate(DataCentering.CELL, 2)
        p.arrays[0][0, 5] = 3.0
        p.accumulate_ghost_values()
        assert_allclose(p.integral(0), 0.0)


class TestInteraction:
    @pytest.mark.parametrize("kernel", [KernelFunction.IB_4, KernelFunction.BSPLINE_3, KernelFunction.IB_3])
    def test_interpolation_reproduces_linear_fields(self, wall_grid, rng, kernel):
        u = wall_grid.allocate(DataCentering.SIDE, min_ghost_width(kernel))
        u.set_from_function(lambda x, comp: (comp + 1.0) * x[..., 0] + 3.0 * x[..., 1] - 0.5)
        points = np.column_stack([rng.uniform(0.0, 1.0, 20), rng.uniform(0.0, 2.0, 20)])
        values = interpolate_vector(u, points, kernel)
        expected0 = points[:, 0] + 3.0 * points[:, 1] - 0.5
        expected1 = 2.0 * points[:, 0] + 3.0 * points[:, 1] - 0.5
        assert_allclose(values[:, 0], expected0, atol=1e-12)
        assert_allclose(values[:, 1], expected1, atol=1e-12)

    def test_spreading_conserves_total_force(self, periodic_grid, rng):
        f = periodic_grid.allocate(DataCentering.SIDE, 3)
        points = rng.random((25, 2))
        values = rng.normal(size=(25, 2))
        spread_vector(f, values, points, KernelFunction.IB_4)
        f.accumulate_ghost_values()
        assert_allclose([f.integral(0), f.integral(1)], values.sum(axis=0), atol=1e-12)

    def test_spreading_is_adjoint_of_interpolation(self, periodic_grid, rng):
        kernel = KernelFunction.IB_4
        u = periodic_grid.allocate(DataCentering.CELL, 3)
        u.interior(0)[...] = rng.random((16, 16))
        u.fill_ghost_cells()
        points = rng.random((30, 2))
        weights = rng.random(30)

        s = periodic_grid.allocate(DataCentering.CELL, 3)
        spread(s, 0, weights, points, kernel)
        s.accumulate_ghost_values()

        lhs = np.sum(weights * interpolate(u, 0, points, kernel))
        assert_allclose(u.inner_product(s), lhs, rtol=1e-12)

    def test_periodic_points_are_wrapped(self, periodic_grid):
        p = periodic_grid.allocate(DataCentering.CELL, 3)
        wrapped = wrap_periodic_points(p, np.array([[1.25, -0.5]]))
        assert_allclose(wrapped, [[0.25, 0.5]])

    def test_stencil_outside_ghost_region(self, wall_grid):
        u = wall_grid.allocate(DataCentering.CELL, 1)
        with pytest.raises(StencilError):
            interpolate(u, 0, np.array([[0.01, 1.0]]), KernelFunction.IB_4)
        with pytest.raises(StencilError):
            spread(u, 0, np.ones(1), np.array([[0.5, 1.99]]), KernelFunction.IB_4)

    def test_normal_jump_correction(self, periodic_grid):
        u = periodic_grid.allocate(DataCentering.CELL, 3)
        points = np.array([[0.5, 0.5]])
        normals = np.array([[1.0, 0.0]])
        plain = interpolate(u, 0, points, KernelFunction.IB_4)
        corrected = interpolate(u, 0, points, KernelFunction.IB_4, normals, np.array([2.0]))
        assert_allclose(plain, 0.0)
        assert corrected[0] < 0.0


class TestReflectionBoundary:
    def test_no_slip_reflection_folds_ghost_contributions(self, wall_grid):
        f = wall_grid.allocate(DataCentering.CELL, 2)
        f.arrays[0][1, 5] = 1.0
        ReflectionBoundaryPolicy(tangential_sign=1.0).accumulate_from_physical_boundary(f)
        f.accumulate_ghost_values()
        assert_allclose(f.arrays[0][2, 5], 1.0)
        assert_allclose(f.integral(0), wall_grid.cell_volume)
