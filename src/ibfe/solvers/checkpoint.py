"""
Restart files and structure snapshots.

Restart data of every part is a compressed ``.npz`` archive mapping FE
system names to their nodal values ``(n_nodes, n_vars)``. The
``CheckpointManager`` used by the runner decides when to write, keeps the
restart archives in per-step folders and, optionally, writes a VTU snapshot
of each part in its current configuration.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

import meshio
import numpy as np

from ibfe.core.mesh import ElementType, MeshModel

logger = logging.getLogger(__name__)

RESTART_FILE_PATTERN = re.compile(r"^ibfe_data\.part_(\d+)\.(\d{6,})\.npz$")

# meshio cell names of the supported element types
MESHIO_CELL_TYPES = {
    ElementType.line: "line",
    ElementType.line3: "line3",
    ElementType.triangle: "triangle",
    ElementType.quad: "quad",
    ElementType.tetra: "tetra",
}


def restart_file_name(dirname: str, part: int, time_step_number: int) -> str:
    return os.path.join(dirname, f"ibfe_data.part_{part}.{time_step_number:06d}.npz")


def write_restart_data(path: str, arrays: Dict[str, np.ndarray]) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    np.savez_compressed(path, **arrays)
    logger.debug("Restart data written: %s (%d systems)", path, len(arrays))


def read_restart_data(path: str) -> Dict[str, np.ndarray]:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Restart file not found: {path}")
    with np.load(path) as data:
        return {key: data[key] for key in data.files}


def _pad3(a: np.ndarray) -> np.ndarray:
    # VTK expects 3D points and vectors
    if a.shape[1] < 3:
        return np.hstack([a, np.zeros((a.shape[0], 3 - a.shape[1]))])
    return a


def write_vtu(path: str, mesh: MeshModel, x: np.ndarray, point_data: Dict[str, np.ndarray]) -> None:
    """Write a part in its current configuration ``x`` with nodal fields."""
    cells = [
        (MESHIO_CELL_TYPES[etype], conn) for etype, (_, conn) in mesh.element_groups().items()
    ]
    data = {}
    for name, values in point_data.items():
        values = np.asarray(values)
        if values.ndim == 2 and values.shape[1] == 1:
            data[name] = values[:, 0]
        elif values.ndim == 2 and values.shape[1] == mesh.spatial_dim:
            data[name] = _pad3(values)
            data[f"{name}_magnitude"] = np.linalg.norm(values, axis=1)
        else:
            data[name] = values
    meshio.Mesh(_pad3(np.asarray(x)), cells, point_data=data).write(path, file_format="vtu")


@dataclass
class CheckpointInfo:
    """Information about a checkpoint on disk."""

    time_step: int
    path: str


class CheckpointManager:
    """
    Periodic restart dumps and snapshots of an IBFE run.

    Parameters
    ----------
    output_folder : str
        Base directory for output files.
    restart_interval : int
        Write restart data every N steps. 0 = disabled.
    write_vtu : bool
        Also write a VTU snapshot of every part.
    """

    def __init__(self, output_folder: str, restart_interval: int = 0, write_vtu: bool = False):
        self.output_folder = output_folder
        self.restart_interval = int(restart_interval)
        self.write_vtu = write_vtu
        self._written_steps: List[int] = []
        if self.restart_interval > 0 or self.write_vtu:
            os.makedirs(self.output_folder, exist_ok=True)

    def should_write(self, time_step: int) -> bool:
        if self.restart_interval <= 0:
            return False
        return time_step > 0 and time_step % self.restart_interval == 0

    def restart_dir(self, time_step: int) -> str:
        return os.path.join(self.output_folder, f"restore.{time_step:06d}")

    def write(self, ib_method, time_step: int, time: float) -> str:
        """
        Write restart data of every part (and VTU snapshots if enabled).

        Returns
        -------
        str
            Path to the checkpoint folder.
        """
        checkpoint_dir = self.restart_dir(time_step)
        ib_method.write_fe_data_to_restart_file(checkpoint_dir, time_step)
        if self.write_vtu:
            for part in range(ib_method.num_parts):
                # Gathering is collective; only rank 0 writes
                snapshot = ib_method.get_part_snapshot(part)
                if ib_method.comm.Get_rank() == 0:
                    vtu_path = os.path.join(checkpoint_dir, f"part_{part}.vtu")
                    write_vtu(vtu_path, ib_method.meshes[part], snapshot.pop("x"), snapshot)
        self._written_steps.append(time_step)
        logger.info("Checkpoint written: t=%.6f (step %d) -> %s", time, time_step, checkpoint_dir)
        print(f"  Checkpoint saved: {checkpoint_dir}", flush=True)
        return checkpoint_dir

    def find_latest(self) -> Optional[CheckpointInfo]:
        """Most recent checkpoint folder holding restart data, or None."""
        if not os.path.exists(self.output_folder):
            return None
        pattern = re.compile(r"^restore\.(\d+)$")
        latest = None
        for entry in os.listdir(self.output_folder):
            match = pattern.match(entry)
            entry_path = os.path.join(self.output_folder, entry)
            if not match or not os.path.isdir(entry_path):
                continue
            if not any(RESTART_FILE_PATTERN.match(f) for f in os.listdir(entry_path)):
                continue
            step = int(match.group(1))
            if latest is None or step > latest.time_step:
                latest = CheckpointInfo(time_step=step, path=entry_path)
        return latest

    @property
    def written_steps(self) -> List[int]:
        return list(self._written_steps)
