#!/usr/bin/env python3
"""
IBFE Simulation CLI Runner.

This script provides a command-line interface for running immersed-structure
simulations from YAML configuration files.

Usage:
    python -m ibfe.cli.run_ibfe config.yaml [options]

Examples:
    # Run simulation from YAML
    python -m ibfe.cli.run_ibfe simulation.yaml

    # Resume from the latest checkpoint in the output folder
    python -m ibfe.cli.run_ibfe simulation.yaml --restart

    # Preview configuration without running
    python -m ibfe.cli.run_ibfe simulation.yaml --preview

    # Generate template configuration
    python -m ibfe.cli.run_ibfe --template > my_config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path

# Template YAML configuration
TEMPLATE_CONFIG = """# IBFE Simulation Configuration
# =============================
# This file defines a complete immersed-structure simulation for ibfe.

#============================================================================
# EULERIAN GRID
#============================================================================
grid:
  x_lower: [0.0, 0.0]
  x_upper: [1.0, 1.0]
  n_cells: [64, 64]
  periodic: [true, true]

#============================================================================
# IMMERSED PARTS
#============================================================================
parts:
  - mesh:
      # Available types: "RingMesh", "RectangleMesh", "SphereSurfaceMesh"
      type: "RingMesh"
      params:
        radius: 0.25
        n_elements: 128
        center: [0.5, 0.5]
        quadratic: false
    material:
      type: "membrane"      # "membrane", "isotropic" or "neo_hookean"
      name: "Membrane"
      stiffness: 1.0
      rest_stretch: 0.0
    # body_force: [0.0, -1.0]   # Constant force per unit reference volume
    # stress_normalization: false
    # interp_spec: {kernel_fcn: "IB_4", quad_type: "GAUSS", quad_order: 3}

#============================================================================
# IBFE METHOD
#============================================================================
method:
  spatial_dim: 2
  enable_logging: false
  use_consistent_mass_matrix: true
  use_jump_conditions: true
  jump_conditions_form: "weak"   # "weak" or "pointwise"
  split_normal_force: true
  split_tangential_force: true
  use_higher_order_jump: false
  modify_vel_interp_jumps: false
  add_vorticity_term: true
  vel_interp_width: 1.5
  mu: 0.01

#============================================================================
# TIME INTEGRATION
#============================================================================
time:
  time_step: 0.001
  num_steps: 100
  start_time: 0.0
  time_stepping_type: "MIDPOINT_RULE"  # "FORWARD_EULER", "MIDPOINT_RULE", "TRAPEZOIDAL_RULE"

#============================================================================
# PRESCRIBED FLOW
#============================================================================
flow:
  type: "rotation"   # "zero", "uniform", "rotation" or "shear"
  params:
    omega: 1.0
    center: [0.5, 0.5]

#============================================================================
# OUTPUT & RESTART
#============================================================================
output:
  folder: "results"
  restart_interval: 50   # Restart dump every N steps (0 = disabled)
  write_vtu: true        # VTU snapshot of every part with each dump
  log_interval: 10       # Hydrodynamic force report every N steps
"""


def setup_logging(level_name: str = "INFO") -> None:
    """Configure logging for the CLI."""
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def validate_config(config_path: str) -> bool:
    """Validate configuration file without running."""
    from ibfe.core.config import IBFESimulationConfig
    from ibfe.core.exceptions import ConfigurationError

    try:
        config = IBFESimulationConfig.from_yaml(config_path)
    except (ConfigurationError, KeyError, TypeError) as e:
        print(f"\n✗ Validation failed: {e}")
        return False

    print("Configuration validation:")
    print("=" * 50)
    print(config)
    print("\n✓ Configuration is valid")
    return True


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Run IBFE simulations from YAML configuration files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s config.yaml                    Run simulation
  %(prog)s config.yaml --restart          Resume from the latest checkpoint
  %(prog)s config.yaml --preview          Preview configuration
  %(prog)s --template > config.yaml       Generate template
        """,
    )

    parser.add_argument(
        "config",
        nargs="?",
        help="Path to YAML configuration file",
    )

    parser.add_argument(
        "--workdir",
        "-w",
        help="Working directory for simulation",
    )

    parser.add_argument(
        "--restart",
        "-r",
        action="store_true",
        help="Resume from the latest checkpoint in the output folder",
    )

    parser.add_argument(
        "--preview",
        "-p",
        action="store_true",
        help="Preview configuration without running",
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration file",
    )

    parser.add_argument(
        "--template",
        "-t",
        action="store_true",
        help="Print template configuration to stdout",
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()

    if args.template:
        print(TEMPLATE_CONFIG)
        return 0

    # Require config file for other operations
    if not args.config:
        parser.print_help()
        return 1

    config_path = Path(args.config)
    if not config_path.exists():
        print(f"Error: Configuration file not found: {config_path}")
        return 1

    setup_logging(args.log_level)

    if args.validate:
        return 0 if validate_config(str(config_path)) else 1

    if args.preview:
        from ibfe.core.config import IBFESimulationConfig

        config = IBFESimulationConfig.from_yaml(str(config_path))
        print(config)
        return 0

    # Run simulation
    try:
        from ibfe.solvers.runner import IBFERunner

        runner = IBFERunner(str(config_path), args.workdir, restart=args.restart)
        runner.run()
        return 0

    except KeyboardInterrupt:
        print("\nSimulation interrupted by user")
        return 130

    except Exception as e:
        logging.exception("Simulation failed")
        print(f"\nError: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
