"""
ibfe: Immersed Boundary Finite Element coupling engine.

Couples Lagrangian finite-element structures to an Eulerian grid: velocity
interpolation, force computation with optional jump conditions, force
spreading and explicit structure time integration.
"""

__version__ = "0.1.0"
