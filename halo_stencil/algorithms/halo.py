"""
Halo Exchange（光晕交换）

每次 Stencil 半步之前，与链上两个相邻进程交换一行边界数据。

两次成对阻塞交换（MPI Sendrecv），每次 "向一侧发送、同时从另一侧接收"，
避免两个阻塞 send 互相等待的经典死锁：

1. 顶部内部行 → 左邻居；同时从右邻居接收到底部 halo 行（tag = HALO_TAG_UP）
2. 底部内部行 → 右邻居；同时从左邻居接收到顶部 halo 行（tag = HALO_TAG_DOWN）

链端缺失的邻居映射为 ``MPI.PROC_NULL``，对应方向为空操作，
该侧 halo 行保持 0.0（Dirichlet 零边界）。

通信量：每次交换 O(nx)，与本地计算量 O(local_rows × nx) 相比很小。
"""

from __future__ import annotations

import logging

import numpy as np
import torch
from mpi4py import MPI

from ..local_grid import LocalSubgrid
from ..mpi_manager import MPIManager
from ..partitioner import compute_neighbors

_logger = logging.getLogger("halo_stencil.halo")

# 两次交换使用不同的 tag，保证交换 1 的消息不会被交换 2 误匹配
HALO_TAG_UP: int = 6
HALO_TAG_DOWN: int = 9


class _HaloBuffers:
    """
    预分配的 Halo Exchange 缓冲区。

    在迭代 Stencil 计算中，每个半步都需要交换 halo 数据。
    预分配缓冲区避免了每次交换的内存分配开销。
    """

    __slots__ = ("top_row_np", "bottom_row_np", "top_halo_np", "bottom_halo_np")

    def __init__(self, width: int, dtype_np: type = np.float32) -> None:
        self.top_row_np = np.zeros(width, dtype=dtype_np)
        self.bottom_row_np = np.zeros(width, dtype=dtype_np)
        self.top_halo_np = np.zeros(width, dtype=dtype_np)
        self.bottom_halo_np = np.zeros(width, dtype=dtype_np)


class HaloExchanger:
    """
    链式拓扑上的 halo 行交换器

    Args:
        mpi: MPI 管理器
        subgrid: 本进程的双缓冲子网格（只用于确定行数与行宽）
    """

    def __init__(self, mpi: MPIManager, subgrid: LocalSubgrid) -> None:
        self.mpi: MPIManager = mpi
        self.local_rows: int = subgrid.local_rows
        self.left, self.right = compute_neighbors(mpi.get_rank(), mpi.get_size())
        self._left_rank: int = MPI.PROC_NULL if self.left is None else self.left
        self._right_rank: int = MPI.PROC_NULL if self.right is None else self.right
        self._bufs: _HaloBuffers = _HaloBuffers(subgrid.width)
        _logger.debug("Rank %d 邻居: left=%s, right=%s", mpi.get_rank(), self.left, self.right)

    def exchange(self, buffer: torch.Tensor) -> None:
        """
        刷新 *buffer* 的两条 halo 行。

        重要：链上所有进程都必须在同一逻辑时刻调用此函数！

        Args:
            buffer: 填充子网格 ``[local_rows + 2, nx + 2]``，原地更新第 0 行与最后一行
        """
        bufs = self._bufs
        n = self.local_rows

        # 将设备数据拷贝到预分配的 numpy 缓冲区（避免新建 numpy 数组）
        bufs.top_row_np[:] = buffer[1].cpu().numpy()
        bufs.bottom_row_np[:] = buffer[n].cpu().numpy()
        # 清零接收缓冲区：链端 PROC_NULL 不写入，halo 保持 0.0
        bufs.top_halo_np[:] = 0
        bufs.bottom_halo_np[:] = 0

        # Exchange 1: 向左发送顶部内部行，从右接收底部 halo
        self.mpi.sendrecv_buffer(
            bufs.top_row_np, self._left_rank,
            bufs.bottom_halo_np, self._right_rank,
            tag=HALO_TAG_UP,
        )

        # Exchange 2: 向右发送底部内部行，从左接收顶部 halo
        self.mpi.sendrecv_buffer(
            bufs.bottom_row_np, self._right_rank,
            bufs.top_halo_np, self._left_rank,
            tag=HALO_TAG_DOWN,
        )

        buffer[0].copy_(torch.from_numpy(bufs.top_halo_np))
        buffer[n + 1].copy_(torch.from_numpy(bufs.bottom_halo_np))

    def __repr__(self) -> str:
        return f"HaloExchanger(rank={self.mpi.get_rank()}, left={self.left}, right={self.right})"
