from .callbacks import CoordinateMappingFcnData, LagForceFcnData, PK1StressFcnData
from .checkpoint import CheckpointManager
from .ibfe_method import IBFE_METHOD_VERSION, IBFEMethod
from .integrator import IBExplicitIntegrator, TimeSteppingType
from .prescribed_flow import FluidSolver, PrescribedFlow
from .runner import IBFERunner, run_from_yaml
from .strategy import IBStrategy
