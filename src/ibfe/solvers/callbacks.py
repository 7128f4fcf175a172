"""
User callbacks registered with ``IBFEMethod``.

All callbacks are evaluated on batches of points: ``x`` and ``X`` have shape
``(n, NDIM)``, ``element_ids`` has shape ``(n,)``.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import numpy as np


@dataclass
class CoordinateMappingFcnData:
    """
    Maps reference node positions to initial positions.

    ``fcn(X) -> x`` is called once per node with an ``(NDIM,)`` array.
    """

    fcn: Optional[Callable[[np.ndarray], np.ndarray]] = None


@dataclass
class LagForceFcnData:
    """
    Lagrangian body force per unit reference volume.

    ``fcn(x, X, element_ids, data_time, system_values) -> (n, NDIM)``, where
    ``system_values`` holds, in the order of ``system_names``, the values of
    the named FE systems at the same points.
    """

    fcn: Optional[Callable[..., np.ndarray]] = None
    system_names: Sequence[str] = field(default_factory=list)


@dataclass
class PK1StressFcnData:
    """
    First Piola-Kirchhoff stress.

    ``fcn(FF, x, X, element_ids, data_time) -> (n, NDIM, NDIM)``.
    Material classes in ``ibfe.core.material`` provide a suitable
    ``pk1_stress`` method.
    """

    fcn: Optional[Callable[..., np.ndarray]] = None


PreFluidSolveCallback = Callable[[float, float, int], None]

