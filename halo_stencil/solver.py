"""
分布式 Stencil 求解器（编排层）

流程::

    主进程全局网格 ──Scatterv──▶ 各进程 LocalSubgrid.current
    for t in range(niters):
        halo 交换(current)   → Stencil(current → alternate) → 切换角色
        halo 交换(alternate) → Stencil(alternate → current) → 切换角色
    各进程 LocalSubgrid.current ──Gatherv──▶ 主进程全局网格

每个时间步两次半步，缓冲区角色轮换，不做额外拷贝。
halo 交换是唯一的阻塞点，所有进程在每个半步同步推进。

重要：所有进程都必须构造求解器并调用 :meth:`StencilSolver.run`！
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import torch

from .algorithms.halo import HaloExchanger
from .algorithms.stencil import StencilKernel
from .config import StencilConfig
from .gpu_manager import GPUManager
from .grid_distributor import GridDistributor
from .local_grid import LocalSubgrid
from .mpi_manager import MPIManager
from .utils.profiler import Profiler

_logger = logging.getLogger("halo_stencil.solver")

_TIMER_NAME: str = "stencil"
_SCATTER_TIMER: str = "scatter"
_GATHER_TIMER: str = "gather"


@dataclass
class StencilResult:
    """求解结果

    Attributes:
        grid: 迭代后的全局填充网格（仅主进程有效，其余为 None）
        runtime: 各进程计算耗时的最大值，秒（仅主进程有效）
        niters: 完成的时间步数
    """
    grid: Optional[torch.Tensor]
    runtime: Optional[float]
    niters: int


class StencilSolver:
    """
    行带分解 + halo 交换的 Stencil 求解器

    Args:
        config: 运行配置
        mpi: MPI 管理器（默认新建，绑定 ``MPI.COMM_WORLD``）
        profiler: 计时器（默认新建）

    Raises:
        PartitionInfeasibleError: 进程数多于网格行数（所有进程同时抛出）
    """

    def __init__(
        self,
        config: StencilConfig,
        mpi: Optional[MPIManager] = None,
        profiler: Optional[Profiler] = None,
    ) -> None:
        config.validate()
        self.config: StencilConfig = config
        self.mpi: MPIManager = mpi or MPIManager(use_gpu=config.use_gpu)
        self.profiler: Profiler = profiler or Profiler()

        if config.num_threads is not None:
            torch.set_num_threads(config.num_threads)

        # 分区在每个进程上独立计算，不可行时所有进程一致抛出
        self.distributor = GridDistributor(self.mpi, config.nx, config.ny)
        self.partition = self.distributor.partition

        self.gpu = GPUManager(self.mpi.get_gpu_id())
        shape = (self.partition.local_rows + 2, config.width)
        if not self.gpu.can_fit(shape, shape):
            _logger.warning(
                "Rank %d: 双缓冲子网格 %s 约需 %.3f GB，可能超出 %s 可用显存",
                self.mpi.get_rank(), shape,
                self.gpu.estimate_memory_requirement(shape, shape), self.gpu.name,
            )

        self.subgrid = LocalSubgrid(self.partition, config.nx, device=self.gpu.get_device())
        self.exchanger = HaloExchanger(self.mpi, self.subgrid)
        self.kernel = StencilKernel()

        _logger.info(
            "Rank %d: 行 [%d, %d), 子网格 %s, 设备 %s",
            self.mpi.get_rank(), self.partition.row_start, self.partition.row_stop,
            self.subgrid.shape, self.gpu.get_device(),
        )

    # ── 迭代 ────────────────────────────────────────────────────

    def half_step(self) -> None:
        """一次 halo 交换 + 一次 Stencil 更新，然后切换缓冲区角色。"""
        sub = self.subgrid
        self.exchanger.exchange(sub.current)
        self.kernel.apply(sub.current, sub.alternate, self.config.nx, sub.local_rows)
        sub.swap()

    def step(self) -> None:
        """一个完整时间步（两次半步），结束后 current 仍是最新数据。"""
        self.half_step()
        self.half_step()

    # ── 完整运行 ────────────────────────────────────────────────

    def run(self, global_grid: Optional[torch.Tensor] = None) -> StencilResult:
        """
        分发 → 迭代 ``niters`` 步 → 收集。

        重要：所有进程都必须调用此函数！

        Args:
            global_grid: 填充后的全局网格 ``[ny + 2, nx + 2]``（仅主进程提供，不会被修改）

        Returns:
            :class:`StencilResult`（网格与耗时仅主进程有效）
        """
        niters = self.config.niters
        self.profiler.start(_SCATTER_TIMER)
        self.distributor.scatter(global_grid, self.subgrid)
        self.profiler.end(_SCATTER_TIMER)

        self.profiler.start(_TIMER_NAME)
        for _ in range(niters):
            self.step()
        elapsed = self.profiler.end(_TIMER_NAME)
        _logger.debug("Rank %d 计算耗时 %.6f s", self.mpi.get_rank(), elapsed)

        self.profiler.start(_GATHER_TIMER)
        result_grid = self.distributor.gather(self.subgrid)
        self.profiler.end(_GATHER_TIMER)
        runtime = self.profiler.max_across_ranks(self.mpi, _TIMER_NAME)
        return StencilResult(grid=result_grid, runtime=runtime, niters=niters)
