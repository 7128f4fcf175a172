"""
Core module for ibfe.

Provides mesh handling, materials, exceptions, and configuration
(``ibfe.core.config``).
"""

from .exceptions import (
    ConfigurationError,
    DegenerateElementError,
    IBFEError,
    SolverError,
    StencilError,
)
from .material import ElasticMembraneMaterial, IsotropicMaterial, NeoHookeanMaterial

__all__ = [
    "IBFEError",
    "ConfigurationError",
    "StencilError",
    "DegenerateElementError",
    "SolverError",
    "IsotropicMaterial",
    "NeoHookeanMaterial",
    "ElasticMembraneMaterial",
]
