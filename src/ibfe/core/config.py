"""
IBFE Configuration Module.

This module provides a YAML-based configuration system for the IBFE coupling
engine and for complete immersed-structure simulations, allowing users to
define runs without writing Python code.

Example YAML configuration:
    grid:
      x_lower: [0.0, 0.0]
      x_upper: [4.0, 4.0]
      n_cells: [64, 64]
      periodic: [true, true]

    parts:
      - mesh:
          type: "RingMesh"
          params: {radius: 1.0, n_elements: 32, center: [2.0, 2.0]}
        material:
          type: "membrane"
          stiffness: 1.0

    method:
      use_jump_conditions: true
      split_normal_force: true
      mu: 0.01

    time:
      time_step: 0.01
      num_steps: 100
      time_stepping_type: "MIDPOINT_RULE"
"""

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from ibfe.core.exceptions import ConfigurationError
from ibfe.elements.elements import QuadratureType
from ibfe.transfer.kernels import KernelFunction, as_kernel


class JumpConditionsForm(str, Enum):
    """How jump conditions are imposed on the grid force."""

    WEAK = "weak"
    POINTWISE = "pointwise"


class MaterialType(str, Enum):
    """Type of material model."""

    ISOTROPIC = "isotropic"
    NEO_HOOKEAN = "neo_hookean"
    MEMBRANE = "membrane"


class MeshGeneratorType(str, Enum):
    """Available mesh generators."""

    RING = "RingMesh"
    RECTANGLE = "RectangleMesh"
    SPHERE = "SphereSurfaceMesh"


class FlowType(str, Enum):
    """Prescribed Eulerian flows available to the runner."""

    ZERO = "zero"
    UNIFORM = "uniform"
    ROTATION = "rotation"
    SHEAR = "shear"


# =============================================================================
# Interaction specifications
# =============================================================================


def _coerce_quad_type(value) -> QuadratureType:
    try:
        return QuadratureType(value)
    except ValueError:
        raise ConfigurationError(
            f"Unknown quadrature type '{value}'. Available: {[q.value for q in QuadratureType]}"
        )


@dataclass(frozen=True)
class SpreadSpec:
    """Kernel and quadrature rule used to spread Lagrangian forces."""

    kernel_fcn: KernelFunction = KernelFunction.IB_4
    quad_type: QuadratureType = QuadratureType.GAUSS
    quad_order: int = 3
    use_adaptive_quadrature: bool = True
    point_density: float = 2.0

    def __post_init__(self):
        object.__setattr__(self, "kernel_fcn", as_kernel(self.kernel_fcn))
        object.__setattr__(self, "quad_type", _coerce_quad_type(self.quad_type))
        if self.quad_order < 1:
            raise ConfigurationError(f"quad_order must be at least 1: {self.quad_order}")
        if self.point_density <= 0:
            raise ConfigurationError(f"point_density must be positive: {self.point_density}")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kernel_fcn"] = self.kernel_fcn.value
        data["quad_type"] = self.quad_type.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
        return cls(**data)


@dataclass(frozen=True)
class InterpSpec(SpreadSpec):
    """Kernel, quadrature rule and projection used to interpolate velocity."""

    use_consistent_mass_matrix: bool = True


# =============================================================================
# Method configuration
# =============================================================================


@dataclass
class IBFEMethodConfig:
    """
    Scalar configuration of an ``IBFEMethod``.

    This is everything written to and read back from the restart database.

    Attributes
    ----------
    spatial_dim : int
        Spatial dimension (2 or 3).
    enable_logging : bool
        Emit per-step informational messages.
    use_consistent_mass_matrix : bool
        Project forces and jump fields with the consistent mass matrix
        (otherwise lumped).
    split_normal_force, split_tangential_force : bool
        Remove the normal / tangential (and 3D binormal) force components
        from the spread force and carry them as jump conditions.
    use_jump_conditions : bool
        Compute and impose pressure and velocity-gradient jumps.
    jump_conditions_form : str
        ``"weak"`` or ``"pointwise"`` imposition.
    use_higher_order_jump : bool
        Compute second-derivative velocity jumps and apply second-order
        corrections.
    modify_vel_interp_jumps : bool
        Correct interpolated velocity for the velocity-gradient jump.
    add_vorticity_term : bool
        Include wall shear stress in the fluid traction.
    vel_interp_width : float
        Probe distance, in grid spacings, used by the traction diagnostics.
    mu : float
        Fluid dynamic viscosity.
    default_interp_spec, default_spread_spec
        Specs used by parts without an explicit spec.
    """

    spatial_dim: int = 2
    enable_logging: bool = False
    use_consistent_mass_matrix: bool = True
    split_normal_force: bool = False
    split_tangential_force: bool = False
    use_jump_conditions: bool = False
    jump_conditions_form: str = JumpConditionsForm.WEAK.value
    use_higher_order_jump: bool = False
    modify_vel_interp_jumps: bool = False
    add_vorticity_term: bool = False
    vel_interp_width: float = 1.5
    mu: float = 0.0
    default_interp_spec: InterpSpec = field(default_factory=InterpSpec)
    default_spread_spec: SpreadSpec = field(default_factory=SpreadSpec)

    def __post_init__(self):
        if isinstance(self.default_interp_spec, Mapping):
            self.default_interp_spec = InterpSpec.from_dict(self.default_interp_spec)
        if isinstance(self.default_spread_spec, Mapping):
            self.default_spread_spec = SpreadSpec.from_dict(self.default_spread_spec)
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError for unsupported or inconsistent settings."""
        if self.spatial_dim not in (2, 3):
            raise ConfigurationError(f"Unsupported spatial dimension: {self.spatial_dim}")
        try:
            JumpConditionsForm(self.jump_conditions_form)
        except ValueError:
            raise ConfigurationError(
                f"Invalid jump_conditions_form '{self.jump_conditions_form}'. "
                f"Valid: {[f.value for f in JumpConditionsForm]}"
            )
        split = self.split_normal_force or self.split_tangential_force
        if self.use_jump_conditions and not split:
            raise ConfigurationError(
                "use_jump_conditions requires split_normal_force or split_tangential_force"
            )
        if split and not self.use_jump_conditions:
            raise ConfigurationError(
                "split force components are only carried by jump conditions; "
                "set use_jump_conditions"
            )
        if self.use_higher_order_jump and not self.use_jump_conditions:
            raise ConfigurationError("use_higher_order_jump requires use_jump_conditions")
        if self.modify_vel_interp_jumps and not self.use_jump_conditions:
            raise ConfigurationError("modify_vel_interp_jumps requires use_jump_conditions")
        if self.split_tangential_force and self.mu <= 0:
            raise ConfigurationError(
                f"split_tangential_force requires a positive viscosity mu, got {self.mu}"
            )
        if self.use_higher_order_jump and self.mu <= 0:
            raise ConfigurationError(
                f"use_higher_order_jump requires a positive viscosity mu, got {self.mu}"
            )
        if self.mu < 0:
            raise ConfigurationError(f"mu must be non-negative: {self.mu}")
        if self.vel_interp_width <= 0:
            raise ConfigurationError(f"vel_interp_width must be positive: {self.vel_interp_width}")

    @property
    def jump_form(self) -> JumpConditionsForm:
        return JumpConditionsForm(self.jump_conditions_form)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "IBFEMethodConfig":
        """Create configuration from dictionary, rejecting unknown keys."""
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown IBFE method keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "IBFEMethodConfig":
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")
        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data.get("method", data))

    @classmethod
    def from_database(cls, db: Mapping[str, Any]) -> "IBFEMethodConfig":
        """Rebuild the configuration written by ``IBFEMethod.put_to_database``."""
        data = dict(db)
        data.pop("IBFE_METHOD_VERSION", None)
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["default_interp_spec"] = self.default_interp_spec.to_dict()
        data["default_spread_spec"] = self.default_spread_spec.to_dict()
        return data

    def copy(self, **changes) -> "IBFEMethodConfig":
        return replace(self, **changes)


# =============================================================================
# Simulation configuration
# =============================================================================


@dataclass
class GridConfig:
    """Uniform Cartesian grid."""

    x_lower: List[float]
    x_upper: List[float]
    n_cells: List[int]
    periodic: Optional[List[bool]] = None

    def __post_init__(self):
        if not (len(self.x_lower) == len(self.x_upper) == len(self.n_cells)):
            raise ConfigurationError("grid x_lower, x_upper and n_cells must have equal length")


@dataclass
class MeshGeneratorConfig:
    """Configuration for mesh generation."""

    type: str
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        valid = [g.value for g in MeshGeneratorType]
        if self.type not in valid:
            raise ConfigurationError(f"Unknown mesh generator type: {self.type}. Valid: {valid}")


@dataclass
class MaterialConfig:
    """Constitutive model of one part."""

    type: str = MaterialType.MEMBRANE.value
    name: str = "Material"
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        valid = [m.value for m in MaterialType]
        if self.type not in valid:
            raise ConfigurationError(f"Invalid material type: {self.type}. Valid: {valid}")


@dataclass
class PartConfig:
    """One immersed structure."""

    mesh: MeshGeneratorConfig
    material: Optional[MaterialConfig] = None
    body_force: Optional[List[float]] = None
    stress_normalization: bool = False
    interp_spec: Optional[InterpSpec] = None
    spread_spec: Optional[SpreadSpec] = None


@dataclass
class TimeConfig:
    """Time-stepping parameters."""

    time_step: float
    num_steps: Optional[int] = None
    end_time: Optional[float] = None
    start_time: float = 0.0
    time_stepping_type: str = "MIDPOINT_RULE"

    def __post_init__(self):
        if self.time_step <= 0:
            raise ConfigurationError(f"time_step must be positive: {self.time_step}")
        if self.num_steps is None and self.end_time is None:
            raise ConfigurationError("time requires num_steps or end_time")

    @property
    def total_steps(self) -> int:
        if self.num_steps is not None:
            return int(self.num_steps)
        return int(round((self.end_time - self.start_time) / self.time_step))


@dataclass
class FlowConfig:
    """Prescribed Eulerian velocity and pressure."""

    type: str = FlowType.ZERO.value
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        valid = [f.value for f in FlowType]
        if self.type not in valid:
            raise ConfigurationError(f"Invalid flow type: {self.type}. Valid: {valid}")


@dataclass
class OutputConfig:
    """Output and restart configuration."""

    folder: str = "results"
    restart_interval: int = 0
    write_vtu: bool = False
    log_interval: int = 1


@dataclass
class IBFESimulationConfig:
    """Complete immersed-structure simulation configuration."""

    grid: GridConfig
    parts: List[PartConfig]
    time: TimeConfig
    method: IBFEMethodConfig = field(default_factory=IBFEMethodConfig)
    flow: FlowConfig = field(default_factory=FlowConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def __post_init__(self):
        if not self.parts:
            raise ConfigurationError("at least one part is required")
        if len(self.grid.n_cells) != self.method.spatial_dim:
            raise ConfigurationError(
                f"grid dimension {len(self.grid.n_cells)} does not match "
                f"method spatial_dim {self.method.spatial_dim}"
            )

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "IBFESimulationConfig":
        """Load configuration from YAML file.

        Parameters
        ----------
        yaml_path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        IBFESimulationConfig
            Validated configuration object.

        Raises
        ------
        FileNotFoundError
            If the YAML file does not exist.
        ConfigurationError
            If the configuration is invalid.
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data, base_path=yaml_path.parent)

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], base_path: Optional[Path] = None
    ) -> "IBFESimulationConfig":
        """Create configuration from dictionary.

        Parameters
        ----------
        data : dict
            Configuration dictionary.
        base_path : Path, optional
            Base path for resolving a relative output folder.
        """
        if "grid" not in data:
            raise KeyError("Missing 'grid' section in configuration.")
        if "time" not in data:
            raise KeyError("Missing 'time' section in configuration.")

        method_config = IBFEMethodConfig.from_dict(data.get("method"))

        grid_config = GridConfig(**data["grid"])

        parts = []
        for part_data in data.get("parts", []):
            mesh_data = part_data.get("mesh", {})
            material_data = part_data.get("material")
            material_config = None
            if material_data:
                material_data = dict(material_data)
                material_config = MaterialConfig(
                    type=material_data.pop("type", MaterialType.MEMBRANE.value),
                    name=material_data.pop("name", "Material"),
                    params=material_data,
                )
            interp = part_data.get("interp_spec")
            spread = part_data.get("spread_spec")
            parts.append(
                PartConfig(
                    mesh=MeshGeneratorConfig(
                        type=mesh_data.get("type"), params=mesh_data.get("params", {})
                    ),
                    material=material_config,
                    body_force=part_data.get("body_force"),
                    stress_normalization=part_data.get("stress_normalization", False),
                    interp_spec=InterpSpec.from_dict(interp) if interp else None,
                    spread_spec=SpreadSpec.from_dict(spread) if spread else None,
                )
            )

        time_config = TimeConfig(**data["time"])

        flow_data = data.get("flow") or {}
        flow_config = FlowConfig(type=flow_data.get("type", "zero"), params=flow_data.get("params", {}))

        output_data = dict(data.get("output") or {})
        folder = output_data.get("folder", "results")
        if base_path and not Path(folder).is_absolute():
            output_data["folder"] = str(base_path / folder)
        output_config = OutputConfig(**output_data)

        return cls(
            grid=grid_config,
            parts=parts,
            time=time_config,
            method=method_config,
            flow=flow_config,
            output=output_config,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        parts = []
        for part in self.parts:
            entry: Dict[str, Any] = {"mesh": {"type": part.mesh.type, "params": part.mesh.params}}
            if part.material:
                entry["material"] = {
                    "type": part.material.type,
                    "name": part.material.name,
                    **part.material.params,
                }
            if part.body_force is not None:
                entry["body_force"] = list(part.body_force)
            if part.stress_normalization:
                entry["stress_normalization"] = True
            if part.interp_spec:
                entry["interp_spec"] = part.interp_spec.to_dict()
            if part.spread_spec:
                entry["spread_spec"] = part.spread_spec.to_dict()
            parts.append(entry)

        return {
            "grid": asdict(self.grid),
            "parts": parts,
            "time": asdict(self.time),
            "method": self.method.to_dict(),
            "flow": asdict(self.flow),
            "output": asdict(self.output),
        }

    def save_yaml(self, yaml_path: Union[str, Path]) -> None:
        with open(yaml_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def __str__(self) -> str:
        """Human-readable string representation."""
        lines = [
            "IBFE Simulation Configuration",
            "=" * 40,
            f"Grid: {self.grid.n_cells} cells, [{self.grid.x_lower}, {self.grid.x_upper}]",
            f"Parts: {len(self.parts)}",
        ]
        for i, part in enumerate(self.parts):
            material = part.material.type if part.material else "none"
            lines.append(f"  [{i}] {part.mesh.type} (material: {material})")
        lines.extend(
            [
                f"Time: {self.time.total_steps} steps, dt={self.time.time_step} "
                f"({self.time.time_stepping_type})",
                f"Flow: {self.flow.type}",
                f"Jump conditions: {self.method.use_jump_conditions} "
                f"({self.method.jump_conditions_form})",
            ]
        )
        return "\n".join(lines)
