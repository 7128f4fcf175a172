"""
Per-part finite-element data manager.

``FEDataManager`` owns everything one immersed part needs on the Lagrangian
side of the coupling:

- the distribution of nodes and elements across MPI ranks (a node is owned
  by one rank, an element is processed by the owner of its first node);
- named nodal systems stored as distributed PETSc vectors, with per-step
  time-level copies (current / half / new);
- ghosted vectors exposing the off-rank node values touched by local
  elements;
- reference-configuration mass matrices and the L2 projection solves;
- quadrature batches (optionally adaptive) and the kernel-based
  interpolation and spreading between the grid and the mesh.

Degrees of freedom are numbered ``node * n_vars + var``.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from mpi4py import MPI
from petsc4py import PETSc

from ibfe.core.config import InterpSpec, SpreadSpec
from ibfe.core.exceptions import ConfigurationError, SolverError
from ibfe.core.mesh import ElementType, MeshModel
from ibfe.elements import ElementFactory, QuadratureType, points_per_direction
from ibfe.fe.quadrature import QuadratureBatch
from ibfe.grid.cartesian import GridData
from ibfe.transfer.interaction import interpolate, spread

logger = logging.getLogger(__name__)

JumpCorrection = Callable[[QuadratureBatch, np.ndarray], Tuple[np.ndarray, np.ndarray]]


class FESystem:
    """
    A named nodal field with ``n_vars`` components per node.

    ``solution`` is the persistent value (what restart files hold). During
    an integration step, time-level copies are created on demand by
    ``get_vector``; ``touch`` records the level written last, which
    ``commit`` copies back into ``solution``.
    """

    def __init__(self, manager: "FEDataManager", name: str, n_vars: int):
        self.manager = manager
        self.name = name
        self.n_vars = n_vars
        self.solution: PETSc.Vec = manager.create_vector(n_vars)
        self.latest_level: Optional[str] = None
        self._levels: Dict[str, PETSc.Vec] = {}

    def get_vector(self, level: str = "solution") -> PETSc.Vec:
        if level == "solution":
            return self.solution
        if level not in self._levels:
            self._levels[level] = self.solution.copy()
        return self._levels[level]

    def has_vector(self, level: str) -> bool:
        return level == "solution" or level in self._levels

    def touch(self, level: str) -> None:
        self.latest_level = level

    def latest_vector(self) -> PETSc.Vec:
        """Vector of the level written last in this step, else ``solution``."""
        if self.latest_level is None:
            return self.solution
        return self.get_vector(self.latest_level)

    def commit(self) -> None:
        """Copy the level written last into the persistent solution."""
        if self.latest_level in self._levels:
            self._levels[self.latest_level].copy(self.solution)

    def release(self) -> None:
        for vec in self._levels.values():
            vec.destroy()
        self._levels.clear()
        self.latest_level = None

    def __repr__(self):
        return f"<FESystem name={self.name!r} n_vars={self.n_vars}>"


class FEDataManager:
    """
    Lagrangian data of one part.

    Parameters
    ----------
    part : int
        Part index (used in error messages).
    mesh : MeshModel
        Reference-configuration mesh, replicated on every rank.
    comm : MPI.Comm, optional
        Communicator, default ``MPI.COMM_WORLD``.
    """

    def __init__(self, part: int, mesh: MeshModel, comm: Optional[MPI.Comm] = None):
        self.part = part
        self.mesh = mesh
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.dim = mesh.spatial_dim
        self.systems: Dict[str, FESystem] = {}
        self._ghost_vecs: Dict[int, PETSc.Vec] = {}
        self._mass_matrices: Dict[int, PETSc.Mat] = {}
        self._lumped_mass: Dict[int, PETSc.Vec] = {}
        self._ksp: Dict[int, PETSc.KSP] = {}
        self._batch_cache: Dict[Tuple, List[QuadratureBatch]] = {}
        self._partition()

    # =========================================================================
    # Distribution
    # =========================================================================

    def _partition(self) -> None:
        rank, size = self.comm.Get_rank(), self.comm.Get_size()
        n_nodes = self.mesh.node_count
        counts = np.array([n_nodes // size + (1 if r < n_nodes % size else 0) for r in range(size)])
        ends = np.cumsum(counts)
        self.node_start = int(ends[rank] - counts[rank])
        self.node_end = int(ends[rank])
        self.n_owned_nodes = self.node_end - self.node_start

        self._local_groups: Dict[ElementType, Tuple[np.ndarray, np.ndarray]] = {}
        touched = []
        for etype, (ids, conn) in self.mesh.element_groups().items():
            mask = (conn[:, 0] >= self.node_start) & (conn[:, 0] < self.node_end)
            if np.any(mask):
                self._local_groups[etype] = (ids[mask], conn[mask])
                touched.append(conn[mask].ravel())
        touched = np.unique(np.concatenate(touched)) if touched else np.zeros(0, dtype=np.int64)
        self.ghost_nodes = touched[(touched < self.node_start) | (touched >= self.node_end)]

        # Global ids of owned nodes followed by ghost nodes
        self.local_nodes = np.concatenate(
            [np.arange(self.node_start, self.node_end, dtype=np.int64), self.ghost_nodes]
        )
        self._local_index = np.full(n_nodes, -1, dtype=np.int64)
        self._local_index[self.local_nodes] = np.arange(self.local_nodes.size)
        self.reference_coords = self.mesh.coords_array[self.local_nodes]

        logger.debug(
            "Part %d rank %d: %d owned nodes, %d ghost nodes, %d local elements",
            self.part,
            rank,
            self.n_owned_nodes,
            self.ghost_nodes.size,
            sum(ids.size for ids, _ in self._local_groups.values()),
        )

    @property
    def local_element_types(self) -> List[ElementType]:
        return list(self._local_groups)

    def local_elements(self) -> Iterator[Tuple[ElementType, np.ndarray, np.ndarray]]:
        """Yield ``(element_type, element_ids, local_conn)`` for locally processed elements."""
        for etype, (ids, conn) in self._local_groups.items():
            yield etype, ids, self._local_index[conn]

    def element_size(self, local_conn: np.ndarray, x_nodes: np.ndarray) -> np.ndarray:
        """Largest node-to-node distance of each element."""
        xe = x_nodes[local_conn]
        diff = xe[:, :, None, :] - xe[:, None, :, :]
        return np.linalg.norm(diff, axis=-1).max(axis=(1, 2))

    # =========================================================================
    # Vectors and systems
    # =========================================================================

    def create_vector(self, n_vars: int) -> PETSc.Vec:
        vec = PETSc.Vec().createMPI(
            (self.n_owned_nodes * n_vars, self.mesh.node_count * n_vars), bsize=n_vars, comm=self.comm
        )
        vec.set(0.0)
        return vec

    def register_system(self, name: str, n_vars: int) -> FESystem:
        if name in self.systems:
            system = self.systems[name]
            if system.n_vars != n_vars:
                raise ConfigurationError(
                    f"System '{name}' already registered with {system.n_vars} variables"
                )
            return system
        system = FESystem(self, name, n_vars)
        self.systems[name] = system
        return system

    def has_system(self, name: str) -> bool:
        return name in self.systems

    def get_system(self, name: str) -> FESystem:
        try:
            return self.systems[name]
        except KeyError:
            raise KeyError(f"System '{name}' not found in part {self.part}.")

    def _ghost_vector(self, n_vars: int) -> PETSc.Vec:
        if n_vars not in self._ghost_vecs:
            ghosts = (self.ghost_nodes[:, None] * n_vars + np.arange(n_vars)).ravel()
            self._ghost_vecs[n_vars] = PETSc.Vec().createGhost(
                ghosts.astype(PETSc.IntType),
                size=(self.n_owned_nodes * n_vars, PETSc.DECIDE),
                comm=self.comm,
            )
        return self._ghost_vecs[n_vars]

    def get_ghosted_values(self, vec: PETSc.Vec, n_vars: int) -> np.ndarray:
        """
        Values of ``vec`` at owned and ghost nodes, shape ``(n_local_nodes, n_vars)``.

        Rows follow ``local_nodes``; local element connectivity indexes into them.
        """
        ghost = self._ghost_vector(n_vars)
        vec.copy(ghost)
        ghost.ghostUpdate(PETSc.InsertMode.INSERT_VALUES, PETSc.ScatterMode.FORWARD)
        with ghost.localForm() as local:
            return local.getArray(readonly=True).reshape(-1, n_vars).copy()

    @contextmanager
    def accumulation_buffer(self, n_vars: int, out: PETSc.Vec):
        """
        Scoped local buffer ``(n_local_nodes, n_vars)`` for element contributions.

        On exit, ghost-node contributions are added to their owners and the
        sum is stored in ``out``.
        """
        ghost = self._ghost_vector(n_vars)
        with ghost.localForm() as local:
            local.set(0.0)
            buffer = np.zeros((self.local_nodes.size, n_vars))
            yield buffer
            local.setArray(buffer.ravel())
        ghost.ghostUpdate(PETSc.InsertMode.ADD_VALUES, PETSc.ScatterMode.REVERSE)
        ghost.copy(out)

    def assemble(
        self, contributions: Iterable[Tuple[np.ndarray, np.ndarray]], n_vars: int, out: Optional[PETSc.Vec] = None
    ) -> PETSc.Vec:
        """Sum element vectors ``(local_conn (ne, nn), values (ne, nn, n_vars))`` into a global vector."""
        if out is None:
            out = self.create_vector(n_vars)
        with self.accumulation_buffer(n_vars, out) as buffer:
            for conn, values in contributions:
                np.add.at(buffer, conn, values)
        return out

    def set_nodal_values(self, vec: PETSc.Vec, values: np.ndarray) -> None:
        """Set owned entries of ``vec`` from a global ``(n_nodes, n_vars)`` array."""
        owned = np.asarray(values, dtype=float)[self.node_start:self.node_end]
        vec.setArray(owned.ravel())

    def gather_nodal_values(self, vec: PETSc.Vec, n_vars: int) -> np.ndarray:
        """Full ``(n_nodes, n_vars)`` array of ``vec`` on every rank."""
        scatter, full = PETSc.Scatter.toAll(vec)
        scatter.scatter(vec, full, PETSc.InsertMode.INSERT_VALUES, PETSc.ScatterMode.FORWARD)
        values = full.getArray(readonly=True).reshape(-1, n_vars).copy()
        scatter.destroy()
        full.destroy()
        return values

    def release_ghost_vectors(self) -> None:
        """Destroy ghosted vectors and per-step system vectors."""
        for vec in self._ghost_vecs.values():
            vec.destroy()
        self._ghost_vecs.clear()
        for system in self.systems.values():
            system.release()

    # =========================================================================
    # Mass matrices and L2 projection
    # =========================================================================

    def _mass_batches(self) -> List[QuadratureBatch]:
        # Degree 2p integrand on the reference configuration; p <= 2 for supported elements
        return self.quadrature_batches(QuadratureType.GAUSS, 5)

    def _row_nnz(self) -> np.ndarray:
        neighbors = [set() for _ in range(self.mesh.node_count)]
        for element in self.mesh.elements:
            for a in element.node_ids:
                neighbors[a].update(element.node_ids)
        counts = np.array([len(s) for s in neighbors], dtype=PETSc.IntType)
        return np.maximum(counts[self.node_start:self.node_end], 1)

    def mass_matrix(self, n_vars: int) -> PETSc.Mat:
        """Consistent mass matrix ``M_ab = int phi_a phi_b dX`` (block-diagonal in vars)."""
        if n_vars in self._mass_matrices:
            return self._mass_matrices[n_vars]

        n_local = self.n_owned_nodes * n_vars
        n_global = self.mesh.node_count * n_vars
        mat = PETSc.Mat().create(self.comm)
        mat.setType("aij")
        mat.setSizes([(n_local, n_global), (n_local, n_global)])
        nnz = np.repeat(self._row_nnz(), n_vars).astype(PETSc.IntType)
        mat.setPreallocationNNZ((nnz, nnz))
        mat.setUp()
        mat.setOption(PETSc.Mat.Option.NEW_NONZERO_ALLOCATION_ERR, False)

        for batch in self._mass_batches():
            me = np.einsum("qa,qb,eq->eab", batch.phi, batch.phi, batch.JxW0)
            for e in range(batch.n_elem):
                nodes = batch.global_conn[e]
                for v in range(n_vars):
                    dofs = (nodes * n_vars + v).astype(PETSc.IntType)
                    mat.setValues(dofs, dofs, me[e].ravel(), addv=PETSc.InsertMode.ADD_VALUES)
        mat.assemble()
        self._mass_matrices[n_vars] = mat
        return mat

    def lumped_mass(self, n_vars: int) -> PETSc.Vec:
        if n_vars not in self._lumped_mass:
            M = self.mass_matrix(n_vars)
            diag = M.createVecRight()
            M.getRowSum(diag)
            self._lumped_mass[n_vars] = diag
        return self._lumped_mass[n_vars]

    def _solver(self, n_vars: int) -> PETSc.KSP:
        if n_vars not in self._ksp:
            ksp = PETSc.KSP().create(self.comm)
            ksp.setOptionsPrefix("ibfe_l2_")
            ksp.setType("cg")
            ksp.getPC().setType("jacobi")
            ksp.setOperators(self.mass_matrix(n_vars))
            ksp.setTolerances(rtol=1e-12, atol=1e-50, max_it=1000)
            ksp.setFromOptions()
            self._ksp[n_vars] = ksp
        return self._ksp[n_vars]

    def project(
        self, rhs: PETSc.Vec, n_vars: int, consistent: bool = True, out: Optional[PETSc.Vec] = None
    ) -> PETSc.Vec:
        """
        L2 projection: solve ``M u = rhs`` with the consistent or lumped mass matrix.

        Raises
        ------
        SolverError
            If the projection solve does not converge.
        """
        if out is None:
            out = self.create_vector(n_vars)
        if consistent:
            ksp = self._solver(n_vars)
            ksp.solve(rhs, out)
            reason = ksp.getConvergedReason()
            if reason <= 0:
                raise SolverError(
                    f"L2 projection in part {self.part} did not converge "
                    f"(reason {reason}, {ksp.getIterationNumber()} iterations)"
                )
            logger.debug("L2 projection part %d: %d iterations", self.part, ksp.getIterationNumber())
        else:
            out.pointwiseDivide(rhs, self.lumped_mass(n_vars))
        return out

    def project_integrand(
        self,
        batches: Sequence[QuadratureBatch],
        integrand: Callable[[QuadratureBatch], np.ndarray],
        n_vars: int,
        consistent: bool = True,
        out: Optional[PETSc.Vec] = None,
    ) -> PETSc.Vec:
        """L2-project ``g`` given pointwise by ``integrand(batch) -> (ne, nq, n_vars)``."""
        rhs = self.assemble(((b.conn, b.integrate(integrand(b))) for b in batches), n_vars)
        result = self.project(rhs, n_vars, consistent, out)
        rhs.destroy()
        return result

    # =========================================================================
    # Quadrature
    # =========================================================================

    def quadrature_batches(
        self,
        quad_type: QuadratureType,
        quad_order: int,
        x_nodes: Optional[np.ndarray] = None,
        use_adaptive_quadrature: bool = False,
        point_density: float = 2.0,
        dx_min: Optional[float] = None,
    ) -> List[QuadratureBatch]:
        """
        Quadrature batches over the locally processed elements.

        With adaptive quadrature, each element gets at least
        ``point_density * h_elem / dx_min`` points per reference direction,
        where ``h_elem`` is its size in the configuration ``x_nodes``.
        """
        quad_type = QuadratureType(quad_type)
        n_base = points_per_direction(quad_order)
        adaptive = use_adaptive_quadrature and x_nodes is not None and dx_min is not None
        key = (quad_type, n_base)
        if not adaptive and key in self._batch_cache:
            return self._batch_cache[key]

        batches = []
        for etype, ids, conn in self.local_elements():
            element = ElementFactory.get_element(etype)
            if adaptive:
                h = self.element_size(conn, x_nodes)
                n_points = np.maximum(n_base, np.ceil(point_density * h / dx_min).astype(np.int64))
            else:
                n_points = np.full(ids.size, n_base, dtype=np.int64)
            for n in np.unique(n_points):
                mask = n_points == n
                xi, weights = element.integration_points(int(n), quad_type)
                batches.append(
                    QuadratureBatch.build(
                        self.part,
                        element,
                        ids[mask],
                        conn[mask],
                        self.local_nodes[conn[mask]],
                        xi,
                        weights,
                        self.reference_coords,
                    )
                )
        if not adaptive:
            self._batch_cache[key] = batches
        return batches

    def batches_for_spec(self, spec: SpreadSpec, x_nodes: np.ndarray, dx_min: float) -> List[QuadratureBatch]:
        return self.quadrature_batches(
            spec.quad_type,
            spec.quad_order,
            x_nodes,
            spec.use_adaptive_quadrature,
            spec.point_density,
            dx_min,
        )

    # =========================================================================
    # Grid <-> mesh transfer
    # =========================================================================

    def interpolate(
        self,
        data: GridData,
        x_vec: PETSc.Vec,
        spec: InterpSpec,
        out: PETSc.Vec,
        jump_correction: Optional[JumpCorrection] = None,
    ) -> PETSc.Vec:
        """
        Interpolate grid data to the mesh and L2-project it into ``out``.

        Accumulates ``int u(x(X)) phi_a dX`` with the interpolation kernel at
        the quadrature points of ``spec`` in the configuration ``x_vec``.
        ``jump_correction(batch, x_q)``, if given, returns unit normals
        ``(n, dim)`` and per-component normal-derivative jumps
        ``(n, depth)`` used to correct the grid samples.
        """
        x_nodes = self.get_ghosted_values(x_vec, self.dim)
        batches = self.batches_for_spec(spec, x_nodes, data.grid.dx_min)
        depth = data.depth

        def integrand(batch: QuadratureBatch) -> np.ndarray:
            xq = batch.values(x_nodes).reshape(-1, self.dim)
            normals = jumps = None
            if jump_correction is not None:
                normals, jumps = jump_correction(batch, xq)
            u = np.zeros((xq.shape[0], depth))
            for c in range(depth):
                u[:, c] = interpolate(
                    data,
                    c,
                    xq,
                    spec.kernel_fcn,
                    normals,
                    None if jumps is None else jumps[:, c],
                )
            return u.reshape(batch.n_elem, batch.n_qp, depth)

        return self.project_integrand(batches, integrand, depth, spec.use_consistent_mass_matrix, out)

    def spread(self, data: GridData, f_vec: PETSc.Vec, x_vec: PETSc.Vec, spec: SpreadSpec) -> None:
        """
        Spread the nodal force density ``f_vec`` (per reference volume) onto grid data.

        Each quadrature point carries ``F(X_q) JxW0_q``; values landing in
        ghost cells are left for the caller to accumulate.
        """
        x_nodes = self.get_ghosted_values(x_vec, self.dim)
        f_nodes = self.get_ghosted_values(f_vec, data.depth)
        for batch in self.batches_for_spec(spec, x_nodes, data.grid.dx_min):
            xq = batch.values(x_nodes).reshape(-1, self.dim)
            fq = (batch.values(f_nodes) * batch.JxW0[..., None]).reshape(-1, data.depth)
            for c in range(data.depth):
                spread(data, c, fq[:, c], xq, spec.kernel_fcn)

    def destroy(self) -> None:
        self.release_ghost_vectors()
        for system in self.systems.values():
            system.solution.destroy()
        for mat in self._mass_matrices.values():
            mat.destroy()
        for vec in self._lumped_mass.values():
            vec.destroy()
        for ksp in self._ksp.values():
            ksp.destroy()
        self.systems.clear()
        self._mass_matrices.clear()
        self._lumped_mass.clear()
        self._ksp.clear()
