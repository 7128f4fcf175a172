"""
Constitutive models for immersed structures.

Every material exposes ``pk1_stress(FF, x, X, element_ids, data_time)``,
which evaluates the first Piola-Kirchhoff stress at a batch of quadrature
points and has the signature expected by ``PK1StressFcnData``.
"""

from dataclasses import dataclass
from typing import Union

import numpy as np


@dataclass
class IsotropicMaterial:
    """
    Class representing a St. Venant-Kirchhoff isotropic material.

    Parameters
    ----------
    name : str
        The name of the material.
    E : float
        Young's Modulus of the material.
    nu : float
        Poisson's ratio of the material.
    rho : float
        Density of the material.
    """

    name: str
    E: float
    nu: float
    rho: float = 1.0

    @property
    def lame_lambda(self) -> float:
        return self.E * self.nu / ((1 + self.nu) * (1 - 2 * self.nu))

    @property
    def lame_mu(self) -> float:
        return self.E / (2 * (1 + self.nu))

    def pk1_stress(self, FF, x, X, element_ids, data_time) -> np.ndarray:
        """PP = FF S with S = lambda tr(E) I + 2 mu E and E = (FF^T FF - I) / 2."""
        dim = FF.shape[-1]
        I = np.eye(dim)
        E = 0.5 * (np.einsum("nki,nkj->nij", FF, FF) - I)
        trE = np.trace(E, axis1=-2, axis2=-1)
        S = self.lame_lambda * trE[:, None, None] * I + 2.0 * self.lame_mu * E
        return np.einsum("nik,nkj->nij", FF, S)


@dataclass
class NeoHookeanMaterial:
    """
    Compressible neo-Hookean solid.

    ``PP = mu (FF - FF^-T) + lambda ln(J) FF^-T``

    Parameters
    ----------
    name : str
        The name of the material.
    shear_modulus : float
        Shear modulus ``mu``.
    bulk_modulus : float
        Lame parameter ``lambda`` controlling volume change.
    """

    name: str
    shear_modulus: float
    bulk_modulus: float = 0.0

    def pk1_stress(self, FF, x, X, element_ids, data_time) -> np.ndarray:
        J = np.linalg.det(FF)
        FF_inv_T = np.swapaxes(np.linalg.inv(FF), -1, -2)
        PP = self.shear_modulus * (FF - FF_inv_T)
        if self.bulk_modulus:
            PP += self.bulk_modulus * np.log(J)[:, None, None] * FF_inv_T
        return PP


@dataclass
class ElasticMembraneMaterial:
    """
    Elastic membrane (curve in 2D, surface in 3D).

    The tension is proportional to the stretch relative to a rest stretch:
    ``PP = kappa (FF - rest_stretch * FF_dir)``, where ``FF_dir`` rescales
    ``FF`` to unit stretch along every material tangent. A ``rest_stretch``
    of zero gives the classic zero-rest-length fiber model ``PP = kappa FF``.

    Parameters
    ----------
    name : str
        The name of the material.
    stiffness : float
        Membrane stiffness ``kappa``.
    rest_stretch : float
        Stretch at which the membrane is tension-free.
    """

    name: str
    stiffness: float
    rest_stretch: float = 0.0

    def pk1_stress(self, FF, x, X, element_ids, data_time) -> np.ndarray:
        if not self.rest_stretch:
            return self.stiffness * FF
        # Stretch along each reference direction is |FF e|; normalize the columns
        stretch = np.linalg.norm(FF, axis=-2, keepdims=True)
        FF_dir = np.divide(FF, stretch, out=np.zeros_like(FF), where=stretch > 0.0)
        return self.stiffness * (FF - self.rest_stretch * FF_dir)


Material = Union[IsotropicMaterial, NeoHookeanMaterial, ElasticMembraneMaterial]
