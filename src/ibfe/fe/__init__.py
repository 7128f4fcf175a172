from ibfe.fe.data_manager import FEDataManager, FESystem
from ibfe.fe.quadrature import CurrentGeometry, QuadratureBatch, current_geometry

__all__ = [
    "FEDataManager",
    "FESystem",
    "QuadratureBatch",
    "CurrentGeometry",
    "current_geometry",
]
