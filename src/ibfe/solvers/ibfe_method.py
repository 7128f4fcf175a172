"""
Immersed boundary finite element (IBFE) coupling method.

``IBFEMethod`` couples one or more Lagrangian finite-element parts to
Eulerian grid data. Each step it

1. interpolates the grid velocity to the structure,
2. advances the structure position,
3. computes the Lagrangian force density (and, for thin interfaces, the
   jump conditions carried by the split force components),
4. spreads the force onto the grid, imposing the jump conditions.

Example
-------
>>> from ibfe.core.config import IBFEMethodConfig
>>> from ibfe.core.mesh import RingMesh
>>> from ibfe.core.material import ElasticMembraneMaterial
>>> mesh = RingMesh.create_ring(radius=0.25, n_elements=64, center=(0.5, 0.5))
>>> method = IBFEMethod(mesh, IBFEMethodConfig(spatial_dim=2))
>>> membrane = ElasticMembraneMaterial("membrane", stiffness=1.0)
>>> method.register_pk1_stress_function(PK1StressFcnData(membrane.pk1_stress))
>>> method.initialize_fe_data()
"""

import logging
from typing import Dict, List, MutableMapping, Optional, Sequence, Union

import numpy as np
from mpi4py import MPI
from petsc4py import PETSc

from ibfe.core.config import IBFEMethodConfig, InterpSpec, JumpConditionsForm, SpreadSpec
from ibfe.core.exceptions import ConfigurationError
from ibfe.core.mesh import MeshModel
from ibfe.fe.data_manager import FEDataManager, FESystem
from ibfe.fe.quadrature import current_geometry
from ibfe.grid.boundary import PhysicalBoundaryPolicy
from ibfe.grid.cartesian import DataCentering, GridData
from ibfe.solvers import force, jump_conditions, traction
from ibfe.solvers import system_names as names
from ibfe.solvers.callbacks import CoordinateMappingFcnData, LagForceFcnData, PK1StressFcnData
from ibfe.solvers.checkpoint import read_restart_data, restart_file_name, write_restart_data
from ibfe.solvers.strategy import IBStrategy
from ibfe.transfer.kernels import min_ghost_width

logger = logging.getLogger(__name__)

IBFE_METHOD_VERSION = 1

# Relative tolerance used to match a data time with the step interval ends
TIME_TOLERANCE = 1.0e-12


class IBFEMethod(IBStrategy):
    """
    IBFE coupling between Lagrangian parts and Eulerian grid data.

    Parameters
    ----------
    meshes : MeshModel or sequence of MeshModel
        Reference configuration of every part.
    config : IBFEMethodConfig, optional
        Method configuration; defaults are used when omitted.
    comm : MPI.Comm, optional
        Communicator, default ``MPI.COMM_WORLD``.
    restart_dir : str, optional
        Directory holding restart data to read when the FE systems are
        created.
    restart_step : int, optional
        Time step number of the restart data.

    Raises
    ------
    ConfigurationError
        If a mesh dimension does not match the configuration, or force
        splitting / jump conditions are requested for a part that is not a
        codimension-one mesh.
    """

    COORDS_SYSTEM_NAME = names.COORDS_SYSTEM_NAME
    COORDS0_SYSTEM_NAME = names.COORDS0_SYSTEM_NAME
    COORD_MAPPING_SYSTEM_NAME = names.COORD_MAPPING_SYSTEM_NAME
    VELOCITY_SYSTEM_NAME = names.VELOCITY_SYSTEM_NAME
    FORCE_SYSTEM_NAME = names.FORCE_SYSTEM_NAME
    FORCE_N_SYSTEM_NAME = names.FORCE_N_SYSTEM_NAME
    FORCE_T_SYSTEM_NAME = names.FORCE_T_SYSTEM_NAME
    FORCE_B_SYSTEM_NAME = names.FORCE_B_SYSTEM_NAME
    H_SYSTEM_NAME = names.H_SYSTEM_NAME
    P_J_SYSTEM_NAME = names.P_J_SYSTEM_NAME
    DP_J_SYSTEM_NAME = names.DP_J_SYSTEM_NAME
    DU_J_SYSTEM_NAME = names.DU_J_SYSTEM_NAME
    DV_J_SYSTEM_NAME = names.DV_J_SYSTEM_NAME
    DW_J_SYSTEM_NAME = names.DW_J_SYSTEM_NAME
    D2U_J_SYSTEM_NAME = names.D2U_J_SYSTEM_NAME
    D2V_J_SYSTEM_NAME = names.D2V_J_SYSTEM_NAME
    D2W_J_SYSTEM_NAME = names.D2W_J_SYSTEM_NAME
    P_I_SYSTEM_NAME = names.P_I_SYSTEM_NAME
    P_O_SYSTEM_NAME = names.P_O_SYSTEM_NAME
    TAU_SYSTEM_NAME = names.TAU_SYSTEM_NAME
    WSS_I_SYSTEM_NAME = names.WSS_I_SYSTEM_NAME
    WSS_O_SYSTEM_NAME = names.WSS_O_SYSTEM_NAME
    DU_Y_O_SYSTEM_NAME = names.DU_Y_O_SYSTEM_NAME
    DV_X_O_SYSTEM_NAME = names.DV_X_O_SYSTEM_NAME
    DU_Z_O_SYSTEM_NAME = names.DU_Z_O_SYSTEM_NAME
    DV_Z_O_SYSTEM_NAME = names.DV_Z_O_SYSTEM_NAME
    DW_X_O_SYSTEM_NAME = names.DW_X_O_SYSTEM_NAME
    DW_Y_O_SYSTEM_NAME = names.DW_Y_O_SYSTEM_NAME

    def __init__(
        self,
        meshes: Union[MeshModel, Sequence[MeshModel]],
        config: Optional[IBFEMethodConfig] = None,
        comm: Optional[MPI.Comm] = None,
        restart_dir: Optional[str] = None,
        restart_step: Optional[int] = None,
    ):
        super().__init__()
        self.config = config if config is not None else IBFEMethodConfig()
        self.config.validate()
        self.meshes: List[MeshModel] = [meshes] if isinstance(meshes, MeshModel) else list(meshes)
        if not self.meshes:
            raise ConfigurationError("IBFEMethod needs at least one part")
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.dim = self.config.spatial_dim

        split = self.config.split_normal_force or self.config.split_tangential_force
        for part, mesh in enumerate(self.meshes):
            if mesh.spatial_dim != self.dim:
                raise ConfigurationError(
                    f"Part {part} has spatial dimension {mesh.spatial_dim}, expected {self.dim}"
                )
            if (split or self.config.use_jump_conditions) and not mesh.is_codim_one:
                raise ConfigurationError(
                    f"Force splitting and jump conditions need a codimension-one mesh; "
                    f"part {part} has topological dimension {mesh.topological_dim}"
                )

        n = self.num_parts
        self._interp_specs: List[InterpSpec] = [self.config.default_interp_spec] * n
        self._spread_specs: List[SpreadSpec] = [self.config.default_spread_spec] * n
        self._stress_normalization_parts = [False] * n
        self._coordinate_mapping_fcns = [CoordinateMappingFcnData() for _ in range(n)]
        self._lag_force_fcns: List[List[LagForceFcnData]] = [[] for _ in range(n)]
        self._pk1_fcns: List[List[PK1StressFcnData]] = [[] for _ in range(n)]

        self._managers: List[Optional[FEDataManager]] = [None] * n
        self._equation_systems_initialized = False
        self._fe_data_initialized = False
        self._coordinates_initialized = set()
        self._restart_dir = restart_dir
        self._restart_step = restart_step

        self._current_time: Optional[float] = None
        self._half_time: Optional[float] = None
        self._new_time: Optional[float] = None

    @property
    def num_parts(self) -> int:
        return len(self.meshes)

    def _log(self, message: str, *args) -> None:
        if self.config.enable_logging:
            logger.info(message, *args)

    # =========================================================================
    # Registration
    # =========================================================================

    def _check_part(self, part: int) -> None:
        if not 0 <= part < self.num_parts:
            raise ConfigurationError(f"Invalid part {part}; there are {self.num_parts} parts")

    def _check_registration_open(self, part: int, what: str) -> None:
        self._check_part(part)
        if self._fe_data_initialized:
            raise ConfigurationError(f"{what} must be registered before initialize_fe_data()")

    def register_stress_normalization_part(self, part: int = 0) -> None:
        """Use the normalized stress ``PP - H J FF^+T`` for ``part``."""
        self._check_registration_open(part, "Stress normalization parts")
        self._stress_normalization_parts[part] = True

    def register_initial_coordinate_mapping_function(
        self, fcn_data: CoordinateMappingFcnData, part: int = 0
    ) -> None:
        self._check_registration_open(part, "Coordinate mapping functions")
        self._coordinate_mapping_fcns[part] = fcn_data

    def register_lag_force_function(self, fcn_data: LagForceFcnData, part: int = 0) -> None:
        """Add a Lagrangian body force to ``part``; registered forces are summed."""
        self._check_registration_open(part, "Lagrangian force functions")
        self._lag_force_fcns[part].append(fcn_data)

    def register_pk1_stress_function(self, fcn_data: PK1StressFcnData, part: int = 0) -> None:
        """Add a PK1 stress to ``part``; registered stresses are summed."""
        self._check_registration_open(part, "PK1 stress functions")
        self._pk1_fcns[part].append(fcn_data)

    def set_interp_spec(self, spec: InterpSpec, part: int = 0) -> None:
        self._check_registration_open(part, "Interpolation specs")
        self._interp_specs[part] = spec

    def set_spread_spec(self, spec: SpreadSpec, part: int = 0) -> None:
        self._check_registration_open(part, "Spreading specs")
        self._spread_specs[part] = spec

    def get_default_interp_spec(self) -> InterpSpec:
        return self.config.default_interp_spec

    def get_default_spread_spec(self) -> SpreadSpec:
        return self.config.default_spread_spec

    def get_interp_spec(self, part: int = 0) -> InterpSpec:
        self._check_part(part)
        return self._interp_specs[part]

    def get_spread_spec(self, part: int = 0) -> SpreadSpec:
        self._check_part(part)
        return self._spread_specs[part]

    def get_minimum_ghost_cell_width(self) -> int:
        """Largest ghost width needed by the interpolation and spreading kernels of any part."""
        widths = [min_ghost_width(spec.kernel_fcn) for spec in self._interp_specs + self._spread_specs]
        return max(widths)

    # =========================================================================
    # Initialization
    # =========================================================================

    def _system_layout(self, part: int) -> List[tuple]:
        dim = self.dim
        cfg = self.config
        layout = [
            (names.COORDS_SYSTEM_NAME, dim),
            (names.COORDS0_SYSTEM_NAME, dim),
            (names.COORD_MAPPING_SYSTEM_NAME, dim),
            (names.VELOCITY_SYSTEM_NAME, dim),
            (names.FORCE_SYSTEM_NAME, dim),
        ]
        if cfg.split_normal_force:
            layout.append((names.FORCE_N_SYSTEM_NAME, dim))
        if cfg.split_tangential_force:
            layout.append((names.FORCE_T_SYSTEM_NAME, dim))
            if dim == 3:
                layout.append((names.FORCE_B_SYSTEM_NAME, dim))
        if self._stress_normalization_parts[part]:
            layout.append((names.H_SYSTEM_NAME, 1))
        if cfg.use_jump_conditions:
            layout.append((names.P_J_SYSTEM_NAME, 1))
            layout.append((names.DP_J_SYSTEM_NAME, 1))
            layout.extend((name, dim) for name in names.DU_J_SYSTEM_NAMES[:dim])
            if cfg.use_higher_order_jump:
                layout.extend((name, dim) for name in names.D2U_J_SYSTEM_NAMES[:dim])
        if self.meshes[part].is_codim_one:
            layout.extend(
                [
                    (names.P_I_SYSTEM_NAME, 1),
                    (names.P_O_SYSTEM_NAME, 1),
                    (names.TAU_SYSTEM_NAME, dim),
                    (names.WSS_I_SYSTEM_NAME, dim),
                    (names.WSS_O_SYSTEM_NAME, dim),
                ]
            )
            layout.extend((name, 1) for name in names.EXTERIOR_DERIVATIVE_SYSTEMS[dim])
        return layout

    def _create_equation_systems(self) -> None:
        for part, mesh in enumerate(self.meshes):
            manager = FEDataManager(part, mesh, self.comm)
            for name, n_vars in self._system_layout(part):
                manager.register_system(name, n_vars)
            self._managers[part] = manager
        self._equation_systems_initialized = True

    def initialize_fe_equation_systems(self) -> None:
        """Create the data managers and FE systems of every part (reading restart data if given)."""
        if self._equation_systems_initialized:
            return
        self._create_equation_systems()
        if self._restart_dir is not None:
            self.read_fe_data_from_restart_file(self._restart_dir, self._restart_step)

    def initialize_fe_data(self) -> None:
        """
        Finish setup: FE systems, initial coordinates and coordinate mapping.

        Registration is closed afterwards.
        """
        if self._fe_data_initialized:
            return
        self.initialize_fe_equation_systems()
        if self.config.use_jump_conditions:
            for part, mesh in enumerate(self.meshes):
                jump_conditions.check_intersection_support(mesh, part)
        for part in range(self.num_parts):
            self.initialize_coordinates(part)
            self.update_coordinate_mapping(part)
        self._fe_data_initialized = True
        self._log(
            "IBFEMethod initialized: %d part(s), ghost width %d",
            self.num_parts,
            self.get_minimum_ghost_cell_width(),
        )

    def get_fe_data_manager(self, part: int = 0) -> FEDataManager:
        self._check_part(part)
        if not self._equation_systems_initialized:
            raise ConfigurationError("FE equation systems are not initialized")
        return self._managers[part]

    def _system(self, part: int, name: str) -> FESystem:
        return self._managers[part].get_system(name)

    def initialize_coordinates(self, part: int = 0) -> None:
        """
        Set the current and initial coordinates of ``part`` from its reference mesh.

        Each reference node position ``X`` is mapped by the registered
        coordinate mapping function (identity when none). Parts that were
        already initialized, or restored from restart data, are left unchanged.
        """
        self._check_part(part)
        if part in self._coordinates_initialized:
            return
        manager = self.get_fe_data_manager(part)
        X = self.meshes[part].coords_array
        fcn = self._coordinate_mapping_fcns[part].fcn
        if fcn is None:
            x = X.copy()
        else:
            x = np.array([np.asarray(fcn(X_node), dtype=float) for X_node in X])
        manager.set_nodal_values(self._system(part, names.COORDS_SYSTEM_NAME).solution, x)
        manager.set_nodal_values(self._system(part, names.COORDS0_SYSTEM_NAME).solution, x)
        self._coordinates_initialized.add(part)

    def update_coordinate_mapping(self, part: int = 0) -> None:
        """Store the displacement ``x - X`` of ``part`` (for visualization)."""
        self._check_part(part)
        manager = self.get_fe_data_manager(part)
        x = self._system(part, names.COORDS_SYSTEM_NAME).solution
        X = self.meshes[part].coords_array[manager.node_start:manager.node_end]
        dX = self._system(part, names.COORD_MAPPING_SYSTEM_NAME).solution
        dX.setArray(x.getArray(readonly=True) - X.ravel())

    # =========================================================================
    # Step bookkeeping
    # =========================================================================

    def _times_equal(self, a: float, b: float) -> bool:
        return abs(a - b) <= TIME_TOLERANCE * max(1.0, abs(b))

    def _level(self, data_time: float) -> str:
        """Time level of ``data_time`` within the active step."""
        if self._current_time is None:
            return "solution"
        if self._times_equal(data_time, self._current_time):
            return "current"
        if self._times_equal(data_time, self._new_time):
            return "new"
        if self._current_time < data_time < self._new_time:
            return "half"
        raise ValueError(
            f"data_time {data_time} is outside the step [{self._current_time}, {self._new_time}]"
        )

    def _check_step_active(self, what: str) -> None:
        if self._current_time is None:
            raise RuntimeError(f"{what} must be called between preprocess and postprocess_integrate_data")

    def preprocess_integrate_data(self, current_time: float, new_time: float, num_cycles: int = 1) -> None:
        if not self._fe_data_initialized:
            self.initialize_fe_data()
        if not new_time > current_time:
            raise ValueError(f"new_time ({new_time}) must be larger than current_time ({current_time})")
        self._current_time = current_time
        self._new_time = new_time
        self._half_time = current_time + 0.5 * (new_time - current_time)
        for part in range(self.num_parts):
            for name in (names.COORDS_SYSTEM_NAME, names.VELOCITY_SYSTEM_NAME):
                system = self._system(part, name)
                for level in ("current", "half", "new"):
                    system.get_vector(level)
                system.touch("current")
        self._log("Step [%g, %g]: %d cycle(s)", current_time, new_time, num_cycles)

    def postprocess_integrate_data(self, current_time: float, new_time: float, num_cycles: int = 1) -> None:
        for part, manager in enumerate(self._managers):
            for system in manager.systems.values():
                system.commit()
            manager.release_ghost_vectors()
            self.update_coordinate_mapping(part)
        self._current_time = self._half_time = self._new_time = None
        self._log("Step [%g, %g] finished", current_time, new_time)

    # =========================================================================
    # Velocity interpolation and position update
    # =========================================================================

    def _velocity_jump_correction(self, part: int, x_vec: PETSc.Vec):
        manager = self._managers[part]
        dim = self.dim
        x_nodes = manager.get_ghosted_values(x_vec, dim)
        du_nodes = [
            manager.get_ghosted_values(self._system(part, name).latest_vector(), dim)
            for name in names.DU_J_SYSTEM_NAMES[:dim]
        ]

        def correction(batch, points):
            n = current_geometry(batch, x_nodes).normals.reshape(-1, dim)
            jumps = np.stack(
                [np.sum(batch.values(du).reshape(-1, dim) * n, axis=1) for du in du_nodes], axis=1
            )
            return n, jumps

        return correction

    def interpolate_velocity(self, u_data: GridData, data_time: float) -> None:
        """
        Interpolate the side-centered velocity ``u_data`` to every part.

        ``u_data`` must have filled ghost cells. The result is stored in the
        velocity vector of the time level of ``data_time``.

        Raises
        ------
        StencilError
            If a kernel stencil reaches outside the ghost-extended data.
        """
        if u_data.centering != DataCentering.SIDE:
            raise ValueError("interpolate_velocity expects side-centered velocity data")
        level = self._level(data_time)
        for part, manager in enumerate(self._managers):
            x_vec = self._system(part, names.COORDS_SYSTEM_NAME).get_vector(level)
            velocity = self._system(part, names.VELOCITY_SYSTEM_NAME)
            correction = None
            if self.config.modify_vel_interp_jumps:
                correction = self._velocity_jump_correction(part, x_vec)
            manager.interpolate(u_data, x_vec, self._interp_specs[part], velocity.get_vector(level), correction)
            velocity.touch(level)
        self._log("Velocity interpolated at t = %g (%s)", data_time, level)

    def _update_half(self, coords: FESystem) -> None:
        half = coords.get_vector("half")
        half.waxpy(1.0, coords.get_vector("current"), coords.get_vector("new"))
        half.scale(0.5)
        coords.touch("new")

    def forward_euler_step(self, current_time: float, new_time: float) -> None:
        """``X_new = X_current + dt U_current``."""
        self._check_step_active("forward_euler_step")
        dt = new_time - current_time
        for part in range(self.num_parts):
            coords = self._system(part, names.COORDS_SYSTEM_NAME)
            velocity = self._system(part, names.VELOCITY_SYSTEM_NAME)
            coords.get_vector("new").waxpy(dt, velocity.get_vector("current"), coords.get_vector("current"))
            self._update_half(coords)

    def midpoint_step(self, current_time: float, new_time: float) -> None:
        """``X_new = X_current + dt U_half``."""
        self._check_step_active("midpoint_step")
        dt = new_time - current_time
        for part in range(self.num_parts):
            coords = self._system(part, names.COORDS_SYSTEM_NAME)
            velocity = self._system(part, names.VELOCITY_SYSTEM_NAME)
            coords.get_vector("new").waxpy(dt, velocity.get_vector("half"), coords.get_vector("current"))
            self._update_half(coords)

    def trapezoidal_step(self, current_time: float, new_time: float) -> None:
        """``X_new = X_current + dt (U_current + U_new) / 2``."""
        self._check_step_active("trapezoidal_step")
        dt = new_time - current_time
        for part in range(self.num_parts):
            coords = self._system(part, names.COORDS_SYSTEM_NAME)
            velocity = self._system(part, names.VELOCITY_SYSTEM_NAME)
            X_new = coords.get_vector("new")
            X_new.waxpy(0.5 * dt, velocity.get_vector("current"), coords.get_vector("current"))
            X_new.axpy(0.5 * dt, velocity.get_vector("new"))
            self._update_half(coords)

    # =========================================================================
    # Forces
    # =========================================================================

    def _lag_force_system_values(self, part: int) -> Dict[str, np.ndarray]:
        manager = self._managers[part]
        values = {}
        for fcn_data in self._lag_force_fcns[part]:
            for name in fcn_data.system_names:
                if name in values:
                    continue
                if not manager.has_system(name):
                    raise ConfigurationError(
                        f"Lagrangian force function of part {part} requires unknown system '{name}'"
                    )
                system = manager.get_system(name)
                values[name] = manager.get_ghosted_values(system.latest_vector(), system.n_vars)
        return values

    def compute_lagrangian_force(self, data_time: float) -> None:
        """
        Compute the force density of every part at ``data_time``.

        Also computes the stress normalization field, the split force
        components and the jump fields, when enabled.
        """
        level = self._level(data_time)
        cfg = self.config
        consistent = cfg.use_consistent_mass_matrix
        dim = self.dim
        for part, manager in enumerate(self._managers):
            x_vec = self._system(part, names.COORDS_SYSTEM_NAME).get_vector(level)
            x_nodes = manager.get_ghosted_values(x_vec, dim)

            H_nodes = None
            if self._stress_normalization_parts[part]:
                H = self._system(part, names.H_SYSTEM_NAME)
                force.compute_stress_normalization(
                    manager, x_nodes, data_time, self._pk1_fcns[part], consistent, H.get_vector(level)
                )
                H.touch(level)
                H_nodes = manager.get_ghosted_values(H.get_vector(level), 1)

            F = self._system(part, names.FORCE_SYSTEM_NAME)
            force.compute_interior_force_density(
                manager,
                x_nodes,
                data_time,
                self._pk1_fcns[part],
                self._lag_force_fcns[part],
                self._lag_force_system_values(part),
                consistent,
                F.get_vector(level),
                H_nodes,
            )
            F.touch(level)

            if not (cfg.split_normal_force or cfg.split_tangential_force or cfg.use_jump_conditions):
                continue
            F_nodes = manager.get_ghosted_values(F.get_vector(level), dim)
            split = {}
            for name in (names.FORCE_N_SYSTEM_NAME, names.FORCE_T_SYSTEM_NAME, names.FORCE_B_SYSTEM_NAME):
                if manager.has_system(name):
                    system = self._system(part, name)
                    split[name] = system.get_vector(level)
                    system.touch(level)
            force.split_force(
                manager,
                x_nodes,
                F_nodes,
                consistent,
                F_n=split.get(names.FORCE_N_SYSTEM_NAME),
                F_t=split.get(names.FORCE_T_SYSTEM_NAME),
                F_b=split.get(names.FORCE_B_SYSTEM_NAME),
            )

            if cfg.use_jump_conditions:
                vectors = {}
                for name in self._jump_system_names():
                    system = self._system(part, name)
                    vectors[name] = system.get_vector(level)
                    system.touch(level)
                force.compute_jump_fields(
                    manager,
                    x_nodes,
                    F_nodes,
                    cfg.mu,
                    cfg.split_normal_force,
                    cfg.split_tangential_force,
                    consistent,
                    vectors[names.P_J_SYSTEM_NAME],
                    vectors[names.DP_J_SYSTEM_NAME],
                    [vectors[name] for name in names.DU_J_SYSTEM_NAMES[:dim]],
                    [vectors[name] for name in names.D2U_J_SYSTEM_NAMES[:dim]]
                    if cfg.use_higher_order_jump
                    else None,
                )
        self._log("Lagrangian force computed at t = %g (%s)", data_time, level)

    def _jump_system_names(self) -> List[str]:
        dim = self.dim
        result = [names.P_J_SYSTEM_NAME, names.DP_J_SYSTEM_NAME, *names.DU_J_SYSTEM_NAMES[:dim]]
        if self.config.use_higher_order_jump:
            result.extend(names.D2U_J_SYSTEM_NAMES[:dim])
        return result

    def _jump_field_values(self, part: int) -> jump_conditions.JumpFieldValues:
        manager = self._managers[part]
        dim = self.dim

        def nodal(name, n_vars):
            return manager.get_ghosted_values(self._system(part, name).latest_vector(), n_vars)

        d2u_j = None
        if self.config.use_higher_order_jump:
            d2u_j = [nodal(name, dim) for name in names.D2U_J_SYSTEM_NAMES[:dim]]
        return jump_conditions.JumpFieldValues(
            P_j=nodal(names.P_J_SYSTEM_NAME, 1),
            dP_j=nodal(names.DP_J_SYSTEM_NAME, 1),
            du_j=[nodal(name, dim) for name in names.DU_J_SYSTEM_NAMES[:dim]],
            d2u_j=d2u_j,
        )

    def _current_nodes(self, part: int, level: str) -> np.ndarray:
        x_vec = self._system(part, names.COORDS_SYSTEM_NAME).get_vector(level)
        return self._managers[part].get_ghosted_values(x_vec, self.dim)

    def impose_jump_conditions_weak(self, f_data: GridData, data_time: float, part: int = 0) -> None:
        """Spread the traction rebuilt from the jump fields of ``part``."""
        level = self._level(data_time)
        jump_conditions.impose_jump_conditions_weak(
            f_data,
            self._managers[part],
            self._current_nodes(part, level),
            self._jump_field_values(part),
            self._spread_specs[part],
            self.config.mu,
        )

    def impose_jump_conditions_pointwise(self, f_data: GridData, data_time: float, part: int = 0) -> None:
        """Correct the grid force next to every crossing of grid lines with ``part``."""
        level = self._level(data_time)
        jump_conditions.impose_jump_conditions_pointwise(
            f_data,
            self._managers[part],
            self._current_nodes(part, level),
            self._jump_field_values(part),
            self.config.mu,
        )

    def spread_force(
        self, f_data: GridData, phys_bdry_op: Optional[PhysicalBoundaryPolicy], data_time: float
    ) -> None:
        """
        Spread ``F - F_n - F_t - F_b`` of every part onto side-centered ``f_data``.

        Jump conditions are imposed next; then ``phys_bdry_op`` (if any)
        folds contributions across physical boundaries and, finally,
        periodic ghost contributions are accumulated.
        """
        if f_data.centering != DataCentering.SIDE:
            raise ValueError("spread_force expects side-centered force data")
        level = self._level(data_time)
        for part, manager in enumerate(self._managers):
            x_vec = self._system(part, names.COORDS_SYSTEM_NAME).get_vector(level)
            F_spread = self._system(part, names.FORCE_SYSTEM_NAME).get_vector(level).copy()
            for name in (names.FORCE_N_SYSTEM_NAME, names.FORCE_T_SYSTEM_NAME, names.FORCE_B_SYSTEM_NAME):
                if manager.has_system(name):
                    F_spread.axpy(-1.0, self._system(part, name).get_vector(level))
            manager.spread(f_data, F_spread, x_vec, self._spread_specs[part])
            F_spread.destroy()

            if self.config.use_jump_conditions:
                if self.config.jump_form == JumpConditionsForm.WEAK:
                    self.impose_jump_conditions_weak(f_data, data_time, part)
                else:
                    self.impose_jump_conditions_pointwise(f_data, data_time, part)

        if phys_bdry_op is not None:
            phys_bdry_op.accumulate_from_physical_boundary(f_data)
        f_data.accumulate_ghost_values()
        self._log("Force spread at t = %g (%s)", data_time, level)

    # =========================================================================
    # Traction diagnostics
    # =========================================================================

    def _check_interface_part(self, part: int) -> FEDataManager:
        self._check_part(part)
        if not self.meshes[part].is_codim_one:
            raise ConfigurationError(f"Fluid traction needs a codimension-one mesh; part {part} is not")
        return self.get_fe_data_manager(part)

    def interpolate_pressure_for_traction(self, p_data: GridData, data_time: float, part: int = 0) -> None:
        """One-sided pressures ``P_i`` and ``P_o`` at probes off the interface of ``part``."""
        manager = self._check_interface_part(part)
        level = self._level(data_time)
        P_i = self._system(part, names.P_I_SYSTEM_NAME)
        P_o = self._system(part, names.P_O_SYSTEM_NAME)
        traction.interpolate_pressure_for_traction(
            manager,
            p_data,
            self._current_nodes(part, level),
            self._interp_specs[part],
            self.config.vel_interp_width,
            P_i.get_vector(level),
            P_o.get_vector(level),
        )
        P_i.touch(level)
        P_o.touch(level)

    def compute_vorticity_for_traction(self, u_data: GridData, data_time: float, part: int = 0) -> None:
        """Wall shear stress on both sides of ``part`` and the exterior velocity derivatives."""
        manager = self._check_interface_part(part)
        level = self._level(data_time)
        WSS_i = self._system(part, names.WSS_I_SYSTEM_NAME)
        WSS_o = self._system(part, names.WSS_O_SYSTEM_NAME)
        derivatives = {}
        for name in names.EXTERIOR_DERIVATIVE_SYSTEMS[self.dim]:
            system = self._system(part, name)
            derivatives[name] = system.get_vector(level)
            system.touch(level)
        traction.compute_vorticity_for_traction(
            manager,
            u_data,
            self._current_nodes(part, level),
            self._interp_specs[part],
            self.config.vel_interp_width,
            self.config.mu,
            WSS_i.get_vector(level),
            WSS_o.get_vector(level),
            derivatives,
        )
        WSS_i.touch(level)
        WSS_o.touch(level)

    def compute_fluid_traction(
        self, current_time: float, u_data: GridData, p_data: GridData, part: int = 0
    ) -> None:
        """``TAU = (P_i - P_o) n`` plus ``WSS_o - WSS_i`` when the vorticity term is enabled."""
        manager = self._check_interface_part(part)
        level = self._level(current_time)
        self.interpolate_pressure_for_traction(p_data, current_time, part)
        self.compute_vorticity_for_traction(u_data, current_time, part)
        dim = self.dim

        def nodal(name, n_vars):
            return manager.get_ghosted_values(self._system(part, name).get_vector(level), n_vars)

        x_nodes = self._current_nodes(part, level)
        spec = self._interp_specs[part]
        tau = self._system(part, names.TAU_SYSTEM_NAME)
        traction.compute_fluid_traction(
            manager,
            x_nodes,
            nodal(names.P_I_SYSTEM_NAME, 1),
            nodal(names.P_O_SYSTEM_NAME, 1),
            nodal(names.WSS_I_SYSTEM_NAME, dim),
            nodal(names.WSS_O_SYSTEM_NAME, dim),
            self.config.add_vorticity_term,
            spec.use_consistent_mass_matrix,
            tau.get_vector(level),
            manager.batches_for_spec(spec, x_nodes, p_data.grid.dx_min),
        )
        tau.touch(level)

    def calc_hydro_force(self, data_time: float, u_data: GridData, p_data: GridData) -> List[np.ndarray]:
        """Total hydrodynamic force ``int TAU da`` on every part."""
        level = self._level(data_time)
        forces = []
        for part in range(self.num_parts):
            self.compute_fluid_traction(data_time, u_data, p_data, part)
            manager = self._managers[part]
            x_nodes = self._current_nodes(part, level)
            tau_nodes = manager.get_ghosted_values(
                self._system(part, names.TAU_SYSTEM_NAME).get_vector(level), self.dim
            )
            batches = manager.batches_for_spec(self._interp_specs[part], x_nodes, p_data.grid.dx_min)
            forces.append(traction.integrate_traction(manager, x_nodes, tau_nodes, batches))
        self._log("Hydrodynamic force at t = %g: %s", data_time, forces)
        return forces

    # =========================================================================
    # Restart
    # =========================================================================

    def put_to_database(self, db: MutableMapping) -> None:
        """Write the scalar configuration into ``db``."""
        db["IBFE_METHOD_VERSION"] = IBFE_METHOD_VERSION
        db.update(self.config.to_dict())

    @classmethod
    def from_database(
        cls,
        meshes: Union[MeshModel, Sequence[MeshModel]],
        db: MutableMapping,
        comm: Optional[MPI.Comm] = None,
        restart_dir: Optional[str] = None,
        restart_step: Optional[int] = None,
    ) -> "IBFEMethod":
        """Rebuild a method from a database written by ``put_to_database``."""
        version = db.get("IBFE_METHOD_VERSION")
        if version != IBFE_METHOD_VERSION:
            raise ConfigurationError(
                f"Restart database version {version} differs from class version {IBFE_METHOD_VERSION}"
            )
        return cls(meshes, IBFEMethodConfig.from_database(db), comm, restart_dir, restart_step)

    def write_fe_data_to_restart_file(self, restart_dump_dirname: str, time_step_number: int) -> None:
        """Dump the solution of every FE system of every part (collective)."""
        if not self._equation_systems_initialized:
            raise ConfigurationError("FE equation systems are not initialized")
        rank = self.comm.Get_rank()
        for part, manager in enumerate(self._managers):
            arrays = {
                name: manager.gather_nodal_values(system.solution, system.n_vars)
                for name, system in manager.systems.items()
            }
            if rank == 0:
                write_restart_data(restart_file_name(restart_dump_dirname, part, time_step_number), arrays)
        self.comm.Barrier()
        self._log("FE restart data written to %s (step %d)", restart_dump_dirname, time_step_number)

    def read_fe_data_from_restart_file(self, restart_read_dirname: str, time_step_number: int) -> None:
        """
        Restore the solution of every FE system found in the restart files.

        Raises
        ------
        FileNotFoundError
            If the restart file of a part is missing.
        ConfigurationError
            If stored data does not match the mesh of a part.
        """
        if not self._equation_systems_initialized:
            self._create_equation_systems()
        for part, manager in enumerate(self._managers):
            arrays = read_restart_data(restart_file_name(restart_read_dirname, part, time_step_number))
            for name, values in arrays.items():
                if not manager.has_system(name):
                    logger.warning("Restart data of part %d has unknown system '%s'", part, name)
                    continue
                system = manager.get_system(name)
                if values.shape != (manager.mesh.node_count, system.n_vars):
                    raise ConfigurationError(
                        f"Restart data of system '{name}' in part {part} has shape {values.shape}, "
                        f"expected {(manager.mesh.node_count, system.n_vars)}"
                    )
                manager.set_nodal_values(system.solution, values)
            self._coordinates_initialized.add(part)
        self._log("FE restart data read from %s (step %d)", restart_read_dirname, time_step_number)

    def get_part_snapshot(self, part: int = 0) -> Dict[str, np.ndarray]:
        """Gathered nodal fields of ``part``: ``x`` plus every vector system (collective)."""
        manager = self.get_fe_data_manager(part)
        snapshot = {}
        for name, system in manager.systems.items():
            snapshot[name] = manager.gather_nodal_values(system.solution, system.n_vars)
        snapshot["x"] = snapshot.pop(names.COORDS_SYSTEM_NAME)
        return snapshot

    def destroy(self) -> None:
        for manager in self._managers:
            if manager is not None:
                manager.destroy()
