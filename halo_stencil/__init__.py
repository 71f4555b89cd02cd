"""
分布式 5 点 Stencil（行带分解 + Halo Exchange）

基于 MPI 的热扩散式平滑计算：全局网格按行带分配到各进程，
每个半步前与链上相邻进程交换一行边界数据，双缓冲轮换更新。

组件：
1. Partitioner：纯函数分区（余数归最后一个进程）与开放链拓扑
2. GridDistributor：Scatterv / Gatherv 分发与收集
3. HaloExchanger：两次成对 Sendrecv，链端 PROC_NULL 为零边界
4. StencilKernel：0.6 / 0.1 加权的 5 点凸组合，float32
5. StencilSolver：双缓冲编排与计时
"""

from .mpi_manager import MPIManager, MPIError
from .partitioner import (Partition, PartitionInfeasibleError,
                          compute_partition, compute_partitions, compute_neighbors)
from .local_grid import LocalSubgrid
from .grid_distributor import GridDistributor, GridShapeError
from .gpu_manager import GPUManager
from .algorithms import HaloExchanger, StencilKernel, stencil_serial
from .config import StencilConfig
from .solver import StencilSolver, StencilResult

__version__ = "1.0.0"
__all__ = [
    "MPIManager",
    "MPIError",
    "Partition",
    "PartitionInfeasibleError",
    "compute_partition",
    "compute_partitions",
    "compute_neighbors",
    "LocalSubgrid",
    "GridDistributor",
    "GridShapeError",
    "GPUManager",
    "HaloExchanger",
    "StencilKernel",
    "stencil_serial",
    "StencilConfig",
    "StencilSolver",
    "StencilResult",
]
