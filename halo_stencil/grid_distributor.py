"""
网格分配器 (Grid Distributor)

负责将主进程的全局填充网格按行带切割并分配到各个进程，
以及在计算结束后把各进程的内部行收集回全局网格。

- 分发：MPI_Scatterv，每个进程接收 ``local_rows × (nx + 2)`` 个元素
- 收集：MPI_Gatherv，偏移与分发完全一致
- 两者都是纯数据搬运：``gather(scatter(G))`` 在内部区域与 G 逐位相同
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
import torch

from .local_grid import LocalSubgrid
from .mpi_manager import MPIError, MPIManager
from .partitioner import Partition, compute_partitions

_logger = logging.getLogger("halo_stencil.distributor")


class GridShapeError(MPIError):
    """主进程提供的全局网格形状与 ``(ny + 2, nx + 2)`` 不符。"""


class GridDistributor:
    """
    网格分配器

    基于 :class:`MPIManager` 提供全局网格的行带分发 / 收集操作。
    分区由 :func:`compute_partitions` 在每个进程上独立计算。

    Args:
        mpi_manager: MPI 管理器
        nx: 全局网格逻辑列数
        ny: 全局网格逻辑行数
    """

    def __init__(self, mpi_manager: MPIManager, nx: int, ny: int) -> None:
        self.mpi: MPIManager = mpi_manager
        self.nx: int = nx
        self.ny: int = ny
        self.width: int = nx + 2
        self.partitions: List[Partition] = compute_partitions(ny, mpi_manager.get_size())
        self.partition: Partition = self.partitions[mpi_manager.get_rank()]

        # 以元素为单位的计数与偏移（偏移 = 之前所有分区行数之和 × 行宽）
        self.counts: List[int] = [p.local_rows * self.width for p in self.partitions]
        self.displs: List[int] = [p.row_start * self.width for p in self.partitions]

    # ══════════════════════════════════════════════════════════════
    #  分发
    # ══════════════════════════════════════════════════════════════

    def scatter_rows(self, global_grid: Optional[torch.Tensor]) -> np.ndarray:
        """
        将全局网格的内部行分散到所有进程。

        重要：所有进程都必须调用此函数！

        Args:
            global_grid: 填充后的全局网格 ``[ny + 2, nx + 2]``（仅主进程提供）

        Returns:
            当前进程的内部行 ``[local_rows, nx + 2]``（float32 NumPy 数组）
        """
        self._check_global_grid(global_grid)

        if self.mpi.is_master_process() and global_grid is not None:
            interior = global_grid[1:self.ny + 1].detach().cpu().numpy()
            sendbuf: Optional[np.ndarray] = np.ascontiguousarray(interior, dtype=np.float32).ravel()
        else:
            sendbuf = None

        recvbuf = np.empty(self.counts[self.mpi.get_rank()], dtype=np.float32)
        self.mpi.scatterv(sendbuf, self.counts, self.displs, recvbuf, root=0)
        return recvbuf.reshape(self.partition.local_rows, self.width)

    def scatter(self, global_grid: Optional[torch.Tensor], subgrid: LocalSubgrid) -> None:
        """
        分发全局网格，并写入 *subgrid* 当前缓冲区的内部行。

        halo 行与左右边界保持不变（初始为 0.0）。

        重要：所有进程都必须调用此函数！
        """
        local = self.scatter_rows(global_grid)
        target = subgrid.interior_rows(subgrid.current)
        target.copy_(torch.from_numpy(local))
        _logger.debug(
            "Rank %d 接收行 [%d, %d)", self.mpi.get_rank(),
            self.partition.row_start, self.partition.row_stop,
        )

    # ══════════════════════════════════════════════════════════════
    #  收集
    # ══════════════════════════════════════════════════════════════

    def gather_rows(
        self,
        local_interior: torch.Tensor,
        out: Optional[torch.Tensor] = None,
    ) -> Optional[torch.Tensor]:
        """
        从各个进程收集内部行并在主进程重组全局网格（仅主进程得到结果）。

        重要：所有进程都必须调用此函数！

        Args:
            local_interior: 当前进程的内部行 ``[local_rows, nx + 2]``
            out: 主进程的全局网格（可选）；提供时原地写入内部行，
                 否则新建边界为 0.0 的 ``[ny + 2, nx + 2]`` 网格

        Returns:
            重组后的全局网格（仅主进程返回有效数据）
        """
        self._check_local_rows(local_interior)

        sendbuf = np.ascontiguousarray(
            local_interior.detach().cpu().numpy(), dtype=np.float32,
        ).ravel()
        if self.mpi.is_master_process():
            recvbuf: Optional[np.ndarray] = np.empty(self.ny * self.width, dtype=np.float32)
        else:
            recvbuf = None

        gathered = self.mpi.gatherv(sendbuf, recvbuf, self.counts, self.displs, root=0)

        if gathered is None:
            return None
        rows = torch.from_numpy(gathered.reshape(self.ny, self.width))
        if out is None:
            out = torch.zeros(self.ny + 2, self.width, dtype=torch.float32)
        out[1:self.ny + 1] = rows.to(out.device)
        return out

    def gather(
        self,
        subgrid: LocalSubgrid,
        out: Optional[torch.Tensor] = None,
    ) -> Optional[torch.Tensor]:
        """
        收集 *subgrid* 当前缓冲区的内部行（:meth:`scatter` 的逆操作）。

        重要：所有进程都必须调用此函数！
        """
        return self.gather_rows(subgrid.interior_rows(subgrid.current), out=out)

    # ── 内部检查 ────────────────────────────────────────────────

    def _check_global_grid(self, global_grid: Optional[torch.Tensor]) -> None:
        """主进程检查网格形状；检查结果广播给所有进程避免死锁。"""
        if self.mpi.is_master_process():
            expected = (self.ny + 2, self.width)
            error_msg: Optional[str] = None
            if global_grid is None:
                error_msg = "主进程的 global_grid 不能为 None"
            elif tuple(global_grid.shape) != expected:
                error_msg = f"全局网格形状 {tuple(global_grid.shape)} != {expected}"
        else:
            error_msg = None

        error_msg = self.mpi.broadcast(error_msg, root=0)
        if error_msg is not None:
            raise GridShapeError(error_msg, rank=self.mpi.get_rank())

    def _check_local_rows(self, local_interior: torch.Tensor) -> None:
        """各进程检查本地内部行形状；出错进程数汇总后广播，全部进程一起抛出。"""
        expected = (self.partition.local_rows, self.width)
        actual = tuple(local_interior.shape)
        if actual != expected:
            _logger.error("Rank %d 本地内部行形状 %s != %s", self.mpi.get_rank(), actual, expected)

        bad_ranks = self.mpi.reduce(int(actual != expected), root=0)
        bad_ranks = self.mpi.broadcast(bad_ranks, root=0)
        if bad_ranks:
            raise GridShapeError(
                f"{bad_ranks} 个进程的本地内部行形状错误 (本进程 {actual}, 期望 {expected})",
                rank=self.mpi.get_rank(),
            )
