import os

import numpy as np
import pytest
import yaml
from numpy.testing import assert_allclose

from ibfe.cli.run_ibfe import TEMPLATE_CONFIG
from ibfe.core.config import IBFEMethodConfig, IBFESimulationConfig, InterpSpec, SpreadSpec
from ibfe.core.exceptions import ConfigurationError
from ibfe.core.material import ElasticMembraneMaterial
from ibfe.core.mesh import RectangleMesh, RingMesh, SphereSurfaceMesh
from ibfe.grid import CartesianGrid, DataCentering
from ibfe.solvers import (
    CheckpointManager,
    IBExplicitIntegrator,
    IBFEMethod,
    IBFERunner,
    PrescribedFlow,
    TimeSteppingType,
)
from ibfe.solvers import jump_conditions
from ibfe.solvers.callbacks import CoordinateMappingFcnData, LagForceFcnData, PK1StressFcnData

JUMP_CONFIG = dict(
    use_jump_conditions=True,
    split_normal_force=True,
    split_tangential_force=True,
    mu=0.1,
)


@pytest.fixture
def grid():
    return CartesianGrid([0.0, 0.0], [1.0, 1.0], [32, 32], periodic=[True, True])


@pytest.fixture
def ring():
    return RingMesh.create_ring(radius=0.2, n_elements=32, center=(0.5, 0.5))


def chord_length(radius, n):
    return n * 2.0 * radius * np.sin(np.pi / n)


def unit_body_force(x, X, element_ids, data_time, system_values):
    return np.tile([1.0, 0.0], (x.shape[0], 1))


def spread_once(method, grid):
    f_data = grid.allocate(DataCentering.SIDE, method.get_minimum_ghost_cell_width())
    method.compute_lagrangian_force(0.0)
    method.spread_force(f_data, None, 0.0)
    return f_data


class TestSetup:
    def test_identity_mapping(self, ring):
        method = IBFEMethod(ring)
        method.initialize_fe_data()
        snapshot = method.get_part_snapshot(0)
        assert_allclose(snapshot["x"], ring.coords_array)
        assert_allclose(snapshot[IBFEMethod.COORDS0_SYSTEM_NAME], ring.coords_array)
        assert_allclose(snapshot[IBFEMethod.COORD_MAPPING_SYSTEM_NAME], 0.0, atol=1e-14)
        method.destroy()

    def test_initial_coordinate_mapping(self, ring):
        method = IBFEMethod(ring)
        method.register_initial_coordinate_mapping_function(
            CoordinateMappingFcnData(lambda X: X + np.array([0.1, 0.0]))
        )
        method.initialize_fe_data()
        snapshot = method.get_part_snapshot(0)
        assert_allclose(snapshot["x"], ring.coords_array + [0.1, 0.0])
        assert_allclose(snapshot[IBFEMethod.COORD_MAPPING_SYSTEM_NAME][:, 0], 0.1)
        assert_allclose(snapshot[IBFEMethod.COORD_MAPPING_SYSTEM_NAME][:, 1], 0.0, atol=1e-14)
        method.destroy()

    def test_jump_systems_follow_configuration(self, ring):
        plain = IBFEMethod(ring)
        plain.initialize_fe_equation_systems()
        manager = plain.get_fe_data_manager(0)
        assert not manager.has_system(IBFEMethod.P_J_SYSTEM_NAME)
        assert not manager.has_system(IBFEMethod.FORCE_N_SYSTEM_NAME)
        assert manager.has_system(IBFEMethod.TAU_SYSTEM_NAME)
        plain.destroy()

        jumps = IBFEMethod(ring, IBFEMethodConfig(**JUMP_CONFIG))
        jumps.initialize_fe_equation_systems()
        manager = jumps.get_fe_data_manager(0)
        for name in (
            IBFEMethod.P_J_SYSTEM_NAME,
            IBFEMethod.DP_J_SYSTEM_NAME,
            IBFEMethod.DU_J_SYSTEM_NAME,
            IBFEMethod.DV_J_SYSTEM_NAME,
            IBFEMethod.FORCE_N_SYSTEM_NAME,
            IBFEMethod.FORCE_T_SYSTEM_NAME,
        ):
            assert manager.has_system(name)
        assert not manager.has_system(IBFEMethod.FORCE_B_SYSTEM_NAME)
        assert not manager.has_system(IBFEMethod.D2U_J_SYSTEM_NAME)
        jumps.destroy()

        higher = IBFEMethod(ring, IBFEMethodConfig(use_higher_order_jump=True, **JUMP_CONFIG))
        higher.initialize_fe_equation_systems()
        assert higher.get_fe_data_manager(0).has_system(IBFEMethod.D2V_J_SYSTEM_NAME)
        higher.destroy()

    def test_registration_closes_after_initialization(self, ring):
        method = IBFEMethod(ring)
        method.initialize_fe_data()
        with pytest.raises(ConfigurationError):
            method.register_lag_force_function(LagForceFcnData(unit_body_force))
        with pytest.raises(ConfigurationError):
            method.set_interp_spec(InterpSpec(kernel_fcn="IB_3"))
        method.destroy()

    def test_invalid_part(self, ring):
        method = IBFEMethod(ring)
        with pytest.raises(ConfigurationError):
            method.register_stress_normalization_part(1)

    def test_ghost_width_covers_every_kernel(self, ring):
        method = IBFEMethod(ring)
        assert method.get_minimum_ghost_cell_width() == 3
        method.set_interp_spec(InterpSpec(kernel_fcn="PIECEWISE_LINEAR"))
        assert method.get_minimum_ghost_cell_width() == 3
        method.set_spread_spec(SpreadSpec(kernel_fcn="IB_3"))
        assert method.get_minimum_ghost_cell_width() == 2

    def test_dimension_mismatch(self):
        sphere = SphereSurfaceMesh(radius=0.2, refinements=1, center=(0.5, 0.5, 0.5)).generate()
        with pytest.raises(ConfigurationError):
            IBFEMethod(sphere, IBFEMethodConfig(spatial_dim=2))

    def test_jumps_need_codim_one_parts(self):
        solid = RectangleMesh.create_rectangle(0.2, 0.1, 4, 2)
        with pytest.raises(ConfigurationError):
            IBFEMethod(solid, IBFEMethodConfig(**JUMP_CONFIG))

    def test_jumps_need_straight_segments(self):
        curved = RingMesh.create_ring(radius=0.2, n_elements=16, center=(0.5, 0.5), quadratic=True)
        method = IBFEMethod(curved, IBFEMethodConfig(**JUMP_CONFIG))
        with pytest.raises(ConfigurationError):
            method.initialize_fe_data()


class TestForces:
    def test_body_force_is_spread_conservatively(self, ring, grid):
        method = IBFEMethod(ring)
        method.register_lag_force_function(LagForceFcnData(unit_body_force))
        method.initialize_fe_data()
        f_data = spread_once(method, grid)
        length = chord_length(0.2, 32)
        assert_allclose(f_data.integral(0), length, rtol=1e-8)
        assert_allclose(f_data.integral(1), 0.0, atol=1e-10)
        method.destroy()

    def test_membrane_tension_points_inward(self, ring):
        method = IBFEMethod(ring)
        membrane = ElasticMembraneMaterial("membrane", stiffness=1.0)
        method.register_pk1_stress_function(PK1StressFcnData(membrane.pk1_stress))
        method.initialize_fe_data()
        method.compute_lagrangian_force(0.0)
        snapshot = method.get_part_snapshot(0)
        radial = snapshot["x"] - 0.5
        F = snapshot[IBFEMethod.FORCE_SYSTEM_NAME]
        assert np.all(np.sum(F * radial, axis=1) < 0.0)
        assert_allclose(F.sum(axis=0), 0.0, atol=1e-8)
        method.destroy()

    @pytest.mark.parametrize("normalized", [False, True])
    def test_stress_normalization_removes_isotropic_stress(self, normalized):
        def isotropic_stress(FF, x, X, element_ids, data_time):
            return np.tile(2.0 * np.eye(2), (FF.shape[0], 1, 1))

        mesh = RectangleMesh.create_rectangle(0.3, 0.2, 6, 4, origin=(0.35, 0.4))
        method = IBFEMethod(mesh)
        method.register_pk1_stress_function(PK1StressFcnData(isotropic_stress))
        if normalized:
            method.register_stress_normalization_part(0)
        method.initialize_fe_data()
        method.compute_lagrangian_force(0.0)
        snapshot = method.get_part_snapshot(0)
        F = snapshot[IBFEMethod.FORCE_SYSTEM_NAME]

        if normalized:
            # tr(PP FF^T) / (dim J) for PP = 2 I and FF = I
            assert_allclose(snapshot[IBFEMethod.H_SYSTEM_NAME], 2.0, rtol=1e-10)
            assert_allclose(F, 0.0, atol=1e-6)
        else:
            assert IBFEMethod.H_SYSTEM_NAME not in snapshot
            assert np.max(np.abs(F)) > 1.0
        method.destroy()

    def test_disabled_jumps_reproduce_unsplit_force(self, ring):
        membrane = ElasticMembraneMaterial("membrane", stiffness=1.0)
        forces = []
        for config in (IBFEMethodConfig(mu=0.1), IBFEMethodConfig(**JUMP_CONFIG)):
            method = IBFEMethod(ring, config)
            method.register_pk1_stress_function(PK1StressFcnData(membrane.pk1_stress))
            method.register_lag_force_function(LagForceFcnData(unit_body_force))
            method.initialize_fe_data()
            method.compute_lagrangian_force(0.0)
            forces.append(method.get_part_snapshot(0)[IBFEMethod.FORCE_SYSTEM_NAME])
            method.destroy()
        assert np.array_equal(forces[0], forces[1])

    def test_spreading_requires_side_data(self, ring, grid):
        method = IBFEMethod(ring)
        method.initialize_fe_data()
        with pytest.raises(ValueError):
            method.spread_force(grid.allocate(DataCentering.CELL, 3), None, 0.0)

    def test_force_can_depend_on_fe_systems(self, ring, grid):
        def velocity_force(x, X, element_ids, data_time, system_values):
            return system_values[0]

        method = IBFEMethod(ring)
        method.register_lag_force_function(
            LagForceFcnData(velocity_force, [IBFEMethod.VELOCITY_SYSTEM_NAME])
        )
        flow = PrescribedFlow(grid, "uniform", {"velocity": [0.3, 0.0]})
        integrator = IBExplicitIntegrator(method, flow, TimeSteppingType.FORWARD_EULER)
        integrator.advance(0.0, 0.01)
        assert_allclose(integrator.f_data.integral(0), 0.3 * chord_length(0.2, 32), rtol=1e-8)
        assert_allclose(flow.last_force.integral(1), 0.0, atol=1e-10)
        method.destroy()


class TestTimeStepping:
    @staticmethod
    def rotation_error(grid, stepping, num_steps, final_time=0.5):
        mesh = RingMesh.create_ring(radius=0.1, n_elements=32, center=(0.6, 0.5))
        method = IBFEMethod(mesh)
        flow = PrescribedFlow(grid, "rotation", {"omega": 1.0, "center": [0.5, 0.5]})
        integrator = IBExplicitIntegrator(method, flow, stepping)
        end = integrator.integrate(0.0, final_time / num_steps, num_steps)
        assert_allclose(end, final_time)

        c, s = np.cos(final_time), np.sin(final_time)
        rotation = np.array([[c, -s], [s, c]])
        exact = 0.5 + (mesh.coords_array - 0.5) @ rotation.T
        x = method.get_part_snapshot(0)["x"]
        method.destroy()
        return np.max(np.linalg.norm(x - exact, axis=1))

    @pytest.mark.parametrize(
        "stepping, low, high",
        [
            (TimeSteppingType.FORWARD_EULER, 1.8, 2.2),
            (TimeSteppingType.MIDPOINT_RULE, 3.5, 4.5),
            (TimeSteppingType.TRAPEZOIDAL_RULE, 3.5, 4.5),
        ],
    )
    def test_convergence_order(self, grid, stepping, low, high):
        coarse = self.rotation_error(grid, stepping, 10)
        fine = self.rotation_error(grid, stepping, 20)
        assert low < coarse / fine < high

    def test_still_structure_in_zero_flow(self, ring, grid):
        method = IBFEMethod(ring)
        membrane = ElasticMembraneMaterial("membrane", stiffness=1.0)
        method.register_pk1_stress_function(PK1StressFcnData(membrane.pk1_stress))
        integrator = IBExplicitIntegrator(method, PrescribedFlow(grid))
        integrator.integrate(0.0, 0.01, 3)
        snapshot = method.get_part_snapshot(0)
        assert_allclose(snapshot["x"], ring.coords_array, atol=1e-14)
        assert_allclose(snapshot[IBFEMethod.VELOCITY_SYSTEM_NAME], 0.0, atol=1e-14)
        # Closed membrane: the spread tension has no net force
        assert_allclose([integrator.f_data.integral(c) for c in range(2)], 0.0, atol=1e-8)
        method.destroy()

    def test_pre_fluid_callbacks(self, ring, grid):
        calls = []
        method = IBFEMethod(ring)
        method.register_pre_fluid_solve_callback(lambda t0, t1, cycle: calls.append((t0, t1, cycle)))
        IBExplicitIntegrator(method, PrescribedFlow(grid)).integrate(0.0, 0.1, 2)
        assert_allclose(calls, [(0.0, 0.1, 0), (0.1, 0.2, 0)])
        method.destroy()

    def test_steps_outside_an_interval(self, ring):
        method = IBFEMethod(ring)
        method.initialize_fe_data()
        with pytest.raises(RuntimeError):
            method.midpoint_step(0.0, 0.1)
        with pytest.raises(ValueError):
            method.preprocess_integrate_data(0.1, 0.1)
        method.preprocess_integrate_data(0.0, 0.1)
        with pytest.raises(ValueError):
            method.compute_lagrangian_force(0.5)
        method.postprocess_integrate_data(0.0, 0.1)
        method.destroy()


class TestJumpConditions:
    def test_weak_jumps_carry_the_split_force(self, ring, grid):
        method = IBFEMethod(ring, IBFEMethodConfig(**JUMP_CONFIG))
        method.register_lag_force_function(LagForceFcnData(unit_body_force))
        method.initialize_fe_data()
        f_data = spread_once(method, grid)
        length = chord_length(0.2, 32)
        assert_allclose(f_data.integral(0), length, rtol=0.05)
        assert_allclose(f_data.integral(1), 0.0, atol=1e-8)

        snapshot = method.get_part_snapshot(0)
        # [p] = F . n for a unit x-force on an outward-oriented ring
        normals = (snapshot["x"] - 0.5) / 0.2
        assert_allclose(snapshot[IBFEMethod.P_J_SYSTEM_NAME][:, 0], normals[:, 0], atol=0.05)
        method.destroy()

    def test_pointwise_constant_pressure_jump(self, grid):
        mesh = RingMesh.create_ring(radius=0.2, n_elements=32, center=(0.513, 0.507))
        config = IBFEMethodConfig(
            use_jump_conditions=True, split_normal_force=True, jump_conditions_form="pointwise", mu=0.0
        )
        method = IBFEMethod(mesh, config)
        method.initialize_fe_data()
        method.get_fe_data_manager(0).get_system(IBFEMethod.P_J_SYSTEM_NAME).solution.set(1.0)

        f_data = grid.allocate(DataCentering.SIDE, 3)
        method.impose_jump_conditions_pointwise(f_data, 0.0)
        f_data.accumulate_ghost_values()
        for d in range(2):
            assert_allclose(f_data.integral(d), 0.0, atol=1e-12)
            assert_allclose(np.max(np.abs(f_data.arrays[d])), 32.0)
        method.destroy()

    @staticmethod
    def pointwise_unit_pressure_jump(grid, center):
        mesh = RingMesh.create_ring(radius=0.2, n_elements=32, center=center)
        config = IBFEMethodConfig(
            use_jump_conditions=True, split_normal_force=True, jump_conditions_form="pointwise", mu=0.0
        )
        method = IBFEMethod(mesh, config)
        method.initialize_fe_data()
        method.get_fe_data_manager(0).get_system(IBFEMethod.P_J_SYSTEM_NAME).solution.set(1.0)
        f_data = grid.allocate(DataCentering.SIDE, 3)
        method.impose_jump_conditions_pointwise(f_data, 0.0)
        f_data.accumulate_ghost_values()
        method.destroy()
        return [f_data.interior(d, unique=True) for d in range(2)]

    def test_pointwise_jumps_across_periodic_boundary(self, grid):
        inside = self.pointwise_unit_pressure_jump(grid, (0.453, 0.507))
        straddling = self.pointwise_unit_pressure_jump(grid, (0.953, 0.507))
        # Half a domain to the right is 16 cells
        for d in range(2):
            assert_allclose(straddling[d], np.roll(inside[d], 16, axis=0), atol=1e-12)

    def test_pointwise_jumps_follow_structure_through_seam(self, ring, grid):
        config = IBFEMethodConfig(jump_conditions_form="pointwise", **JUMP_CONFIG)
        method = IBFEMethod(ring, config)
        membrane = ElasticMembraneMaterial("membrane", stiffness=1.0)
        method.register_pk1_stress_function(PK1StressFcnData(membrane.pk1_stress))
        flow = PrescribedFlow(grid, "uniform", {"velocity": [1.0, 0.0]})
        integrator = IBExplicitIntegrator(method, flow, TimeSteppingType.FORWARD_EULER)
        integrator.integrate(0.0, 0.05, 12)
        x = method.get_part_snapshot(0)["x"]
        assert_allclose(x.mean(axis=0), [1.1, 0.5], atol=1e-10)
        assert all(np.all(np.isfinite(arr)) for arr in integrator.f_data.arrays)
        method.destroy()

    def test_weak_constant_pressure_jump_has_no_net_force(self, ring, grid):
        method = IBFEMethod(ring, IBFEMethodConfig(use_jump_conditions=True, split_normal_force=True))
        method.initialize_fe_data()
        method.get_fe_data_manager(0).get_system(IBFEMethod.P_J_SYSTEM_NAME).solution.set(1.0)
        f_data = grid.allocate(DataCentering.SIDE, 3)
        method.impose_jump_conditions_weak(f_data, 0.0)
        f_data.accumulate_ghost_values()
        assert_allclose([f_data.integral(0), f_data.integral(1)], 0.0, atol=1e-12)
        assert np.max(np.abs(f_data.arrays[0])) > 0.0
        method.destroy()

    def test_vertical_segment_crossings(self):
        vertices = np.array([[[0.3, 0.05], [0.3, 0.95]]])
        idx, x_c, owner, bary = jump_conditions.find_intersections(
            vertices, np.array([0.0, 0.0]), np.array([0.1, 0.1]), axis=0
        )
        # Horizontal lines y = 0.1 ... 0.9 cross the segment
        assert idx.shape == (9, 2)
        assert np.all(idx[:, 0] == 3)
        assert_allclose(x_c[:, 0], 0.3)
        assert_allclose(np.sort(x_c[:, 1]), 0.1 * np.arange(1, 10))
        assert np.all(owner == 0)
        assert_allclose(bary.sum(axis=1), 1.0)


class TestTraction:
    def test_rigid_rotation_has_no_traction(self, ring, grid):
        method = IBFEMethod(ring, IBFEMethodConfig(add_vorticity_term=True, mu=0.01))
        method.initialize_fe_data()
        flow = PrescribedFlow(grid, "rotation", {"omega": 1.0})
        forces = method.calc_hydro_force(0.0, flow.velocity(0.0, 3), flow.pressure(0.0, 3))
        assert len(forces) == 1
        assert_allclose(forces[0], 0.0, atol=1e-12)

        snapshot = method.get_part_snapshot(0)
        assert_allclose(snapshot[IBFEMethod.DU_Y_O_SYSTEM_NAME], -1.0, rtol=1e-8)
        assert_allclose(snapshot[IBFEMethod.DV_X_O_SYSTEM_NAME], 1.0, rtol=1e-8)
        wss = np.linalg.norm(snapshot[IBFEMethod.WSS_O_SYSTEM_NAME], axis=1)
        assert_allclose(wss, 2.0 * 0.01, rtol=0.05)
        method.destroy()

    def test_linear_pressure_traction(self, ring, grid):
        method = IBFEMethod(ring, IBFEMethodConfig(vel_interp_width=1.5))
        method.initialize_fe_data()
        flow = PrescribedFlow(grid, "zero", {"pressure_gradient": [1.0, 0.0]})
        forces = method.calc_hydro_force(0.0, flow.velocity(0.0, 3), flow.pressure(0.0, 3))
        # P_i - P_o = -2 w h n_x, so the net traction is -w h L along x
        expected = -1.5 * grid.dx_min * chord_length(0.2, 32)
        assert_allclose(forces[0][0], expected, rtol=0.05)
        assert_allclose(forces[0][1], 0.0, atol=1e-8)
        method.destroy()

    def test_traction_needs_codim_one_part(self, grid):
        solid = RectangleMesh.create_rectangle(0.2, 0.1, 4, 2, origin=(0.4, 0.45))
        method = IBFEMethod(solid)
        method.initialize_fe_data()
        flow = PrescribedFlow(grid)
        with pytest.raises(ConfigurationError):
            method.compute_fluid_traction(0.0, flow.velocity(0.0, 3), flow.pressure(0.0, 3))


class TestRestart:
    def test_round_trip(self, ring, grid, tmp_path):
        config = IBFEMethodConfig(**JUMP_CONFIG)
        method = IBFEMethod(ring, config)
        flow = PrescribedFlow(grid, "rotation", {"omega": 1.0})
        IBExplicitIntegrator(method, flow).integrate(0.0, 0.05, 2)
        restart_dir = str(tmp_path / "restore")
        method.write_fe_data_to_restart_file(restart_dir, 2)
        db = {}
        method.put_to_database(db)
        before = method.get_part_snapshot(0)

        restored = IBFEMethod.from_database(ring, db, restart_dir=restart_dir, restart_step=2)
        restored.initialize_fe_data()
        after = restored.get_part_snapshot(0)
        assert restored.config == config
        for name in ("x", IBFEMethod.COORDS0_SYSTEM_NAME, IBFEMethod.VELOCITY_SYSTEM_NAME):
            assert_allclose(after[name], before[name])
        assert np.max(np.abs(after["x"] - ring.coords_array)) > 1e-3
        method.destroy()
        restored.destroy()

    def test_version_mismatch(self, ring):
        db = {}
        IBFEMethod(ring).put_to_database(db)
        db["IBFE_METHOD_VERSION"] = 99
        with pytest.raises(ConfigurationError):
            IBFEMethod.from_database(ring, db)

    def test_missing_restart_file(self, ring, tmp_path):
        method = IBFEMethod(ring, restart_dir=str(tmp_path), restart_step=5)
        with pytest.raises(FileNotFoundError):
            method.initialize_fe_data()

    def test_restart_data_must_match_mesh(self, ring, tmp_path):
        method = IBFEMethod(ring)
        method.initialize_fe_data()
        method.write_fe_data_to_restart_file(str(tmp_path), 1)
        coarse = RingMesh.create_ring(radius=0.2, n_elements=16, center=(0.5, 0.5))
        with pytest.raises(ConfigurationError):
            IBFEMethod(coarse, restart_dir=str(tmp_path), restart_step=1).initialize_fe_data()

    def test_checkpoint_manager(self, ring, tmp_path):
        method = IBFEMethod(ring)
        method.initialize_fe_data()
        manager = CheckpointManager(str(tmp_path / "out"), restart_interval=2, write_vtu=True)
        assert manager.find_latest() is None
        assert not manager.should_write(0)
        assert manager.should_write(2)
        assert not manager.should_write(3)

        for step in (2, 4):
            manager.write(method, step, 0.1 * step)
        latest = manager.find_latest()
        assert latest.time_step == 4
        assert os.path.exists(os.path.join(latest.path, "part_0.vtu"))
        assert manager.written_steps == [2, 4]
        method.destroy()


class TestRunner:
    @staticmethod
    def small_config(tmp_path, num_steps):
        data = yaml.safe_load(TEMPLATE_CONFIG)
        data["grid"]["n_cells"] = [32, 32]
        data["parts"][0]["mesh"]["params"].update(radius=0.2, n_elements=32)
        data["time"].update(time_step=0.01, num_steps=num_steps)
        data["method"]["mu"] = 0.1
        data["output"].update(folder=str(tmp_path / "results"), restart_interval=2, log_interval=2)
        return IBFESimulationConfig.from_dict(data)

    def test_run_and_restart(self, tmp_path, capsys):
        runner = IBFERunner(self.small_config(tmp_path, 4), tmp_path)
        method = runner.run()
        assert len(runner.hydro_forces) == 2
        assert runner.checkpoints.written_steps == [2, 4]
        assert "[6/6]" in capsys.readouterr().out
        x_after_four = method.get_part_snapshot(0)["x"]

        resumed = IBFERunner(self.small_config(tmp_path, 6), tmp_path, restart=True)
        resumed.run()
        assert resumed.checkpoints.written_steps == [6]
        x_after_six = resumed.ib_method.get_part_snapshot(0)["x"]
        # Rigid rotation keeps every node on its circle about the flow center
        assert_allclose(
            np.linalg.norm(x_after_six - 0.5, axis=1), np.linalg.norm(x_after_four - 0.5, axis=1), rtol=1e-4
        )
        assert np.max(np.abs(x_after_six - x_after_four)) > 1e-4
