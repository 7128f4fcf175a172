"""
Generic IBFE Simulation Runner.

This module provides a generic runner that executes immersed-structure
simulations based on YAML configuration files, without requiring any Python
code editing.

Example usage:
    from ibfe.solvers.runner import IBFERunner

    runner = IBFERunner("simulation.yaml")
    runner.run()

Or from command line:
    ibfe-run simulation.yaml
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import numpy as np

from ibfe.core.config import (
    IBFESimulationConfig,
    MaterialConfig,
    MaterialType,
    MeshGeneratorType,
    PartConfig,
)
from ibfe.core.exceptions import ConfigurationError
from ibfe.core.material import ElasticMembraneMaterial, IsotropicMaterial, NeoHookeanMaterial
from ibfe.core.mesh import MeshModel, RectangleMesh, RingMesh, SphereSurfaceMesh
from ibfe.grid.cartesian import CartesianGrid
from ibfe.solvers.callbacks import LagForceFcnData, PK1StressFcnData
from ibfe.solvers.checkpoint import CheckpointManager
from ibfe.solvers.ibfe_method import IBFEMethod
from ibfe.solvers.integrator import IBExplicitIntegrator
from ibfe.solvers.prescribed_flow import PrescribedFlow

logger = logging.getLogger(__name__)


def _constant_body_force(value: np.ndarray):
    def fcn(x, X, element_ids, data_time, system_values):
        return np.broadcast_to(value, x.shape).copy()

    return fcn


class IBFERunner:
    """
    Generic IBFE simulation runner that executes simulations from YAML configuration.

    This class handles:
    - Generating the part meshes
    - Creating materials and body forces
    - Setting up the grid, the prescribed flow and the IBFE method
    - Running the time integration with periodic restart dumps

    Parameters
    ----------
    config : IBFESimulationConfig or str or Path
        Configuration object or path to YAML configuration file.
    working_dir : str or Path, optional
        Working directory for the simulation. If None, uses current directory.
    restart : bool
        Resume from the latest checkpoint in the output folder, if any.

    Attributes
    ----------
    config : IBFESimulationConfig
        The validated simulation configuration.
    meshes : list of MeshModel
        The generated meshes, one per part.
    ib_method : IBFEMethod
        The coupling method after setup.
    hydro_forces : list
        ``(time, forces)`` recorded every ``log_interval`` steps.

    Examples
    --------
    >>> runner = IBFERunner("simulation.yaml")
    >>> runner.run()
    """

    def __init__(
        self,
        config: Union[IBFESimulationConfig, str, Path],
        working_dir: Optional[Union[str, Path]] = None,
        restart: bool = False,
    ):
        if isinstance(config, (str, Path)):
            self.config_path = Path(config)
            self.config = IBFESimulationConfig.from_yaml(config)
        else:
            self.config_path = None
            self.config = config

        self.working_dir = Path(working_dir) if working_dir else Path.cwd()
        self.restart = restart
        self.meshes: List[MeshModel] = []
        self.grid: Optional[CartesianGrid] = None
        self.flow: Optional[PrescribedFlow] = None
        self.ib_method: Optional[IBFEMethod] = None
        self.integrator: Optional[IBExplicitIntegrator] = None
        self.checkpoints: Optional[CheckpointManager] = None
        self.hydro_forces: list = []

    def run(self) -> IBFEMethod:
        """
        Execute the complete simulation pipeline.

        Returns
        -------
        IBFEMethod
            The coupling method after running (for accessing results).
        """
        self._print_header()

        logger.info("Starting IBFE simulation...")

        # Step 1: Generate meshes
        self.meshes = self._setup_meshes()

        # Step 2: Grid and flow
        self.grid, self.flow = self._setup_grid_and_flow()

        # Step 3: Checkpoints
        start_step = self._setup_checkpoints()

        # Step 4: IBFE method
        self.ib_method = self._create_method(start_step)

        # Step 5: Integrator
        self.integrator = IBExplicitIntegrator(
            self.ib_method, self.flow, self.config.time.time_stepping_type
        )

        # Step 6: Time integration
        self._integrate(start_step)

        logger.info("Simulation completed successfully!")
        return self.ib_method

    def _print_header(self) -> None:
        """Print simulation header."""
        print("\n" + "=" * 70)
        print("  IBFE SIMULATION RUNNER")
        print("=" * 70)
        print(f"  Configuration: {self.config_path or 'Provided object'}")
        print(f"  Parts: {len(self.config.parts)}")
        print(f"  Flow: {self.config.flow.type}")
        print("=" * 70 + "\n")

    def _setup_meshes(self) -> List[MeshModel]:
        print("\n[1/6] Generating meshes...", flush=True)
        meshes = []
        for i, part in enumerate(self.config.parts):
            mesh = self._generate_mesh(part)
            print(f"      [{i}] {part.mesh.type}: {mesh.node_count} nodes, {mesh.element_count} elements")
            meshes.append(mesh)
        return meshes

    def _generate_mesh(self, part: PartConfig) -> MeshModel:
        gen_type = part.mesh.type
        params = dict(part.mesh.params)
        if gen_type == MeshGeneratorType.RING.value:
            return RingMesh(**params).generate()
        if gen_type == MeshGeneratorType.RECTANGLE.value:
            return RectangleMesh(**params).generate()
        if gen_type == MeshGeneratorType.SPHERE.value:
            return SphereSurfaceMesh(**params).generate()
        raise ConfigurationError(f"Unknown mesh generator: {gen_type}")

    def _setup_grid_and_flow(self):
        print("\n[2/6] Setting up grid and flow...", flush=True)
        grid_cfg = self.config.grid
        grid = CartesianGrid(grid_cfg.x_lower, grid_cfg.x_upper, grid_cfg.n_cells, grid_cfg.periodic)
        flow = PrescribedFlow(grid, self.config.flow.type, self.config.flow.params)
        print(f"      Cells: {list(grid.n_cells)}, dx = {list(grid.dx)}")
        print(f"      Flow: {flow.flow_type.value}")
        return grid, flow

    def _setup_checkpoints(self) -> int:
        print("\n[3/6] Setting up output...", flush=True)
        output = self.config.output
        folder = Path(output.folder)
        if not folder.is_absolute():
            folder = self.working_dir / folder
        self.checkpoints = CheckpointManager(str(folder), output.restart_interval, output.write_vtu)
        if not self.restart:
            return 0
        latest = self.checkpoints.find_latest()
        if latest is None:
            print("      No checkpoints found, starting from scratch")
            return 0
        print(f"      Restarting from step {latest.time_step}: {latest.path}")
        return latest.time_step

    @staticmethod
    def _create_material(material: MaterialConfig):
        params = dict(material.params)
        if material.type == MaterialType.ISOTROPIC.value:
            return IsotropicMaterial(name=material.name, **params)
        if material.type == MaterialType.NEO_HOOKEAN.value:
            return NeoHookeanMaterial(name=material.name, **params)
        return ElasticMembraneMaterial(name=material.name, **params)

    def _create_method(self, start_step: int) -> IBFEMethod:
        print("\n[4/6] Creating IBFE method...", flush=True)
        restart_dir = self.checkpoints.restart_dir(start_step) if start_step > 0 else None
        method = IBFEMethod(
            self.meshes,
            self.config.method,
            restart_dir=restart_dir,
            restart_step=start_step if start_step > 0 else None,
        )
        for i, part in enumerate(self.config.parts):
            if part.material is not None:
                material = self._create_material(part.material)
                method.register_pk1_stress_function(PK1StressFcnData(material.pk1_stress), i)
                print(f"      [{i}] Material: {material.name} ({part.material.type})")
            if part.body_force is not None:
                value = np.asarray(part.body_force, dtype=float)
                method.register_lag_force_function(LagForceFcnData(_constant_body_force(value)), i)
                print(f"      [{i}] Body force: {list(value)}")
            if part.stress_normalization:
                method.register_stress_normalization_part(i)
            if part.interp_spec is not None:
                method.set_interp_spec(part.interp_spec, i)
            if part.spread_spec is not None:
                method.set_spread_spec(part.spread_spec, i)
        method.initialize_fe_data()
        print(f"      Ghost width: {method.get_minimum_ghost_cell_width()}")
        return method

    def _integrate(self, start_step: int) -> None:
        print("\n[5/6] Integrating...", flush=True)
        time_cfg = self.config.time
        total = time_cfg.total_steps
        remaining = total - start_step
        if remaining <= 0:
            print("      Nothing to do: restart step reached the requested number of steps")
            return
        dt = time_cfg.time_step
        start_time = time_cfg.start_time + start_step * dt
        log_interval = max(1, int(self.config.output.log_interval))
        codim_one = all(mesh.is_codim_one for mesh in self.meshes)

        def on_step(step: int, time: float) -> None:
            if step % log_interval == 0:
                if codim_one:
                    g = self.ib_method.get_minimum_ghost_cell_width()
                    forces = self.ib_method.calc_hydro_force(
                        time, self.flow.velocity(time, g), self.flow.pressure(time, g)
                    )
                    self.hydro_forces.append((time, forces))
                    print(f"      Step {step}/{total}  t={time:.6g}  hydro force={[list(f) for f in forces]}")
                else:
                    print(f"      Step {step}/{total}  t={time:.6g}")
            if self.checkpoints.should_write(step):
                self.checkpoints.write(self.ib_method, step, time)

        final_time = self.integrator.integrate(start_time, dt, remaining, on_step, first_step=start_step)
        print(f"\n[6/6] Done: t = {final_time:.6g}", flush=True)

    def preview_config(self) -> str:
        """Get a preview of the configuration.

        Returns
        -------
        str
            Human-readable configuration summary.
        """
        return str(self.config)


def run_from_yaml(yaml_path: Union[str, Path], working_dir: Optional[str] = None) -> IBFEMethod:
    """
    Convenience function to run an IBFE simulation from a YAML file.

    Parameters
    ----------
    yaml_path : str or Path
        Path to the YAML configuration file.
    working_dir : str, optional
        Working directory for the simulation.

    Returns
    -------
    IBFEMethod
        The coupling method after running.

    Examples
    --------
    >>> from ibfe.solvers.runner import run_from_yaml
    >>> method = run_from_yaml("simulation.yaml")
    """
    runner = IBFERunner(yaml_path, working_dir)
    return runner.run()
