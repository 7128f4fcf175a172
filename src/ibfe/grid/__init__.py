from ibfe.grid.boundary import PhysicalBoundaryPolicy, ReflectionBoundaryPolicy
from ibfe.grid.cartesian import CartesianGrid, DataCentering, GridData

__all__ = [
    "CartesianGrid",
    "DataCentering",
    "GridData",
    "PhysicalBoundaryPolicy",
    "ReflectionBoundaryPolicy",
]
