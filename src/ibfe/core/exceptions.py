"""
Exceptions raised by the IBFE coupling engine.

Every error in this package is fatal: it signals a setup or configuration
problem to be fixed before rerunning, never a transient condition.
"""


class IBFEError(Exception):
    """Base class for all IBFE coupling errors."""


class ConfigurationError(IBFEError, ValueError):
    """Invalid or inconsistent configuration detected at registration/initialization time."""


class StencilError(IBFEError, RuntimeError):
    """A kernel stencil reaches outside the locally available (ghost-extended) grid data."""


class DegenerateElementError(IBFEError, RuntimeError):
    """Singular or near-singular local geometry found during force computation.

    Parameters
    ----------
    part : int
        Part index in which the element lives.
    element_id : int
        Identifier of the degenerate element.
    detail : str, optional
        Extra context appended to the message.
    """

    def __init__(self, part: int, element_id: int, detail: str = ""):
        self.part = part
        self.element_id = element_id
        message = f"Degenerate element {element_id} in part {part}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SolverError(IBFEError, RuntimeError):
    """A projection solve failed to converge."""
