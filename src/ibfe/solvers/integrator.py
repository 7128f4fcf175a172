"""
Explicit immersed-boundary time integrator.

One step over ``[t0, t1]``:

1. ``preprocess_integrate_data``
2. interpolate ``u(t0)`` and predict ``X`` with forward Euler
3. compute the force at the half time and spread it
4. pre-fluid callbacks, then the fluid advance
5. re-interpolate the velocity and correct ``X`` (midpoint or trapezoidal)
6. ``postprocess_integrate_data``
"""

import logging
from enum import Enum
from typing import Callable, Optional

from ibfe.grid.boundary import PhysicalBoundaryPolicy
from ibfe.grid.cartesian import DataCentering
from ibfe.solvers.prescribed_flow import FluidSolver
from ibfe.solvers.strategy import IBStrategy

logger = logging.getLogger(__name__)


class TimeSteppingType(str, Enum):
    """Structure position update."""

    FORWARD_EULER = "FORWARD_EULER"
    MIDPOINT_RULE = "MIDPOINT_RULE"
    TRAPEZOIDAL_RULE = "TRAPEZOIDAL_RULE"


StepCallback = Callable[[int, float], None]


class IBExplicitIntegrator:
    """
    Drives an ``IBStrategy`` and a ``FluidSolver`` through explicit steps.

    Parameters
    ----------
    ib_method : IBStrategy
        Coupling strategy, typically an ``IBFEMethod``.
    fluid_solver : FluidSolver
        Source of velocity and pressure, receiver of the spread force.
    time_stepping_type : TimeSteppingType or str
        Structure position update.
    phys_bdry_op : PhysicalBoundaryPolicy, optional
        Treatment of force spread across non-periodic boundaries.
    """

    def __init__(
        self,
        ib_method: IBStrategy,
        fluid_solver: FluidSolver,
        time_stepping_type=TimeSteppingType.MIDPOINT_RULE,
        phys_bdry_op: Optional[PhysicalBoundaryPolicy] = None,
    ):
        self.ib_method = ib_method
        self.fluid_solver = fluid_solver
        self.time_stepping_type = TimeSteppingType(time_stepping_type)
        self.phys_bdry_op = phys_bdry_op
        self.f_data = None

    @property
    def ghost_width(self) -> int:
        return self.ib_method.get_minimum_ghost_cell_width()

    def advance(self, current_time: float, new_time: float, cycle_num: int = 0) -> None:
        """Advance the coupled system over ``[current_time, new_time]``."""
        ib = self.ib_method
        half_time = current_time + 0.5 * (new_time - current_time)
        g = self.ghost_width

        ib.preprocess_integrate_data(current_time, new_time)

        ib.interpolate_velocity(self.fluid_solver.velocity(current_time, g), current_time)
        ib.forward_euler_step(current_time, new_time)

        ib.compute_lagrangian_force(half_time)
        self.f_data = self.fluid_solver.grid.allocate(DataCentering.SIDE, g)
        ib.spread_force(self.f_data, self.phys_bdry_op, half_time)

        ib.preprocess_solve_fluid_equations(current_time, new_time, cycle_num)
        self.fluid_solver.advance(self.f_data, current_time, new_time)

        if self.time_stepping_type == TimeSteppingType.MIDPOINT_RULE:
            ib.interpolate_velocity(self.fluid_solver.velocity(half_time, g), half_time)
            ib.midpoint_step(current_time, new_time)
        elif self.time_stepping_type == TimeSteppingType.TRAPEZOIDAL_RULE:
            ib.interpolate_velocity(self.fluid_solver.velocity(new_time, g), new_time)
            ib.trapezoidal_step(current_time, new_time)

        ib.postprocess_integrate_data(current_time, new_time)

    def integrate(
        self,
        start_time: float,
        time_step: float,
        num_steps: int,
        callback: Optional[StepCallback] = None,
        first_step: int = 0,
    ) -> float:
        """
        Take ``num_steps`` steps of size ``time_step``.

        ``callback(step, time)`` runs after every step, with the step number
        counted from ``first_step``.

        Returns
        -------
        float
            The final time.
        """
        time = start_time
        for i in range(num_steps):
            new_time = start_time + (i + 1) * time_step
            self.advance(time, new_time)
            time = new_time
            logger.debug("Step %d done, t = %g", first_step + i + 1, time)
            if callback is not None:
                callback(first_step + i + 1, time)
        return time
