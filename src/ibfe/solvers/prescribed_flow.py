"""
Eulerian fluid solvers driving an IBFE method.

The coupling engine only needs three things from the fluid side: the
velocity and pressure at a given time, and a hook that receives the spread
force once per step. ``PrescribedFlow`` provides analytic flows for
verification runs; a Navier-Stokes solver plugs in through ``FluidSolver``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import numpy as np

from ibfe.core.config import FlowType
from ibfe.core.exceptions import ConfigurationError
from ibfe.grid.cartesian import CartesianGrid, DataCentering, GridData

logger = logging.getLogger(__name__)


class FluidSolver(ABC):
    """
    Abstract Eulerian solver used by ``IBExplicitIntegrator``.

    Parameters
    ----------
    grid : CartesianGrid
        Grid all data lives on.
    """

    def __init__(self, grid: CartesianGrid):
        self.grid = grid

    @abstractmethod
    def velocity(self, time: float, ghost_width: int) -> GridData:
        """Side-centered velocity at ``time`` with filled ghost cells."""

    @abstractmethod
    def pressure(self, time: float, ghost_width: int) -> GridData:
        """Cell-centered pressure at ``time`` with filled ghost cells."""

    @abstractmethod
    def advance(self, f_data: GridData, current_time: float, new_time: float) -> None:
        """Advance the fluid over ``[current_time, new_time]`` under the body force ``f_data``."""


class PrescribedFlow(FluidSolver):
    """
    Analytic velocity and pressure fields, unaffected by the structure.

    Parameters
    ----------
    grid : CartesianGrid
        Grid all data lives on.
    flow_type : FlowType or str
        ``zero``, ``uniform`` (``velocity``), ``rotation`` (``omega``,
        ``center``) or ``shear`` (``rate``, ``y0``).
    params : dict, optional
        Flow parameters. Every flow also accepts a linear pressure
        ``pressure + pressure_gradient . x``.

    Attributes
    ----------
    last_force : GridData or None
        Force received by the latest ``advance`` call.
    """

    def __init__(self, grid: CartesianGrid, flow_type="zero", params: Optional[Dict[str, Any]] = None):
        super().__init__(grid)
        try:
            self.flow_type = FlowType(flow_type)
        except ValueError:
            raise ConfigurationError(
                f"Unknown flow type '{flow_type}'. Available: {[f.value for f in FlowType]}"
            )
        self.params = dict(params or {})
        dim = grid.dim
        self.pressure_value = float(self.params.get("pressure", 0.0))
        self.pressure_gradient = np.asarray(self.params.get("pressure_gradient", np.zeros(dim)), dtype=float)
        if self.pressure_gradient.shape != (dim,):
            raise ConfigurationError(f"pressure_gradient must have {dim} components")
        if self.flow_type == FlowType.UNIFORM:
            self.uniform_velocity = np.asarray(self.params.get("velocity", np.zeros(dim)), dtype=float)
            if self.uniform_velocity.shape != (dim,):
                raise ConfigurationError(f"uniform velocity must have {dim} components")
        elif self.flow_type == FlowType.ROTATION:
            self.omega = float(self.params.get("omega", 1.0))
            self.center = np.asarray(self.params.get("center", 0.5 * (grid.x_lower + grid.x_upper)), dtype=float)
        elif self.flow_type == FlowType.SHEAR:
            self.rate = float(self.params.get("rate", 1.0))
            self.y0 = float(self.params.get("y0", 0.5 * (grid.x_lower[1] + grid.x_upper[1])))
        self.last_force: Optional[GridData] = None

    def _velocity_component(self, x: np.ndarray, comp: int) -> np.ndarray:
        if self.flow_type == FlowType.UNIFORM:
            return np.full(x.shape[:-1], self.uniform_velocity[comp])
        if self.flow_type == FlowType.ROTATION:
            # Rigid rotation about the axis through ``center`` parallel to z
            if comp == 0:
                return -self.omega * (x[..., 1] - self.center[1])
            if comp == 1:
                return self.omega * (x[..., 0] - self.center[0])
        if self.flow_type == FlowType.SHEAR and comp == 0:
            return self.rate * (x[..., 1] - self.y0)
        return np.zeros(x.shape[:-1])

    def velocity(self, time: float, ghost_width: int) -> GridData:
        u_data = self.grid.allocate(DataCentering.SIDE, ghost_width)
        u_data.set_from_function(self._velocity_component)
        return u_data

    def pressure(self, time: float, ghost_width: int) -> GridData:
        p_data = self.grid.allocate(DataCentering.CELL, ghost_width)
        p_data.set_from_function(lambda x, comp: self.pressure_value + x @ self.pressure_gradient)
        return p_data

    def advance(self, f_data: GridData, current_time: float, new_time: float) -> None:
        self.last_force = f_data
        logger.debug(
            "Prescribed flow ignores body force over [%g, %g] (net %s)",
            current_time,
            new_time,
            [f_data.integral(c) for c in range(f_data.depth)],
        )
