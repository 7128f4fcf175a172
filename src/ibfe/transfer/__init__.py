from ibfe.transfer.interaction import (
    interpolate,
    interpolate_vector,
    spread,
    spread_vector,
    wrap_periodic_points,
)
from ibfe.transfer.kernels import (
    KernelFunction,
    as_kernel,
    kernel_weights,
    min_ghost_width,
    stencil_size,
    stencil_start,
)

__all__ = [
    "KernelFunction",
    "as_kernel",
    "kernel_weights",
    "min_ghost_width",
    "stencil_size",
    "stencil_start",
    "interpolate",
    "interpolate_vector",
    "spread",
    "spread_vector",
    "wrap_periodic_points",
]
