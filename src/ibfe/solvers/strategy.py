from abc import ABC, abstractmethod
from typing import List, Optional

from ibfe.grid.boundary import PhysicalBoundaryPolicy
from ibfe.grid.cartesian import GridData
from ibfe.solvers.callbacks import PreFluidSolveCallback


class IBStrategy(ABC):
    """
    Abstract base class for immersed-boundary coupling strategies.

    A strategy owns the Lagrangian description of the immersed structure and
    implements the operators an explicit IB time integrator calls every
    step: velocity interpolation, position updates, force computation and
    force spreading.

    Attributes
    ----------
    pre_fluid_solve_callbacks : List[PreFluidSolveCallback]
        Callbacks run, in registration order, right before the fluid solve.
    """

    def __init__(self):
        self.pre_fluid_solve_callbacks: List[PreFluidSolveCallback] = []

    @abstractmethod
    def get_minimum_ghost_cell_width(self) -> int:
        """Ghost width the grid data passed to this strategy must have."""

    @abstractmethod
    def preprocess_integrate_data(self, current_time: float, new_time: float, num_cycles: int = 1) -> None:
        """Prepare per-step data for the interval ``[current_time, new_time]``."""

    @abstractmethod
    def postprocess_integrate_data(self, current_time: float, new_time: float, num_cycles: int = 1) -> None:
        """Commit the new state and release per-step data."""

    @abstractmethod
    def interpolate_velocity(self, u_data: GridData, data_time: float) -> None:
        """Interpolate the Eulerian velocity to the structure."""

    @abstractmethod
    def forward_euler_step(self, current_time: float, new_time: float) -> None:
        """Advance the structure position with the current velocity."""

    @abstractmethod
    def midpoint_step(self, current_time: float, new_time: float) -> None:
        """Advance the structure position with the half-step velocity."""

    @abstractmethod
    def trapezoidal_step(self, current_time: float, new_time: float) -> None:
        """Advance the structure position with the average of current and new velocity."""

    @abstractmethod
    def compute_lagrangian_force(self, data_time: float) -> None:
        """Compute the Lagrangian force density at ``data_time``."""

    @abstractmethod
    def spread_force(
        self, f_data: GridData, phys_bdry_op: Optional[PhysicalBoundaryPolicy], data_time: float
    ) -> None:
        """Spread the Lagrangian force density onto the Eulerian grid."""

    def register_pre_fluid_solve_callback(self, callback: PreFluidSolveCallback) -> None:
        """
        Register a callback run before each fluid solve.

        Parameters
        ----------
        callback : callable
            ``callback(current_time, new_time, cycle_num)``.
        """
        self.pre_fluid_solve_callbacks.append(callback)

    def preprocess_solve_fluid_equations(self, current_time: float, new_time: float, cycle_num: int) -> None:
        for callback in self.pre_fluid_solve_callbacks:
            callback(current_time, new_time, cycle_num)
