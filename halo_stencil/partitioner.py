"""
行带分区与链式拓扑 (Row-band Partitioner)

每个进程独立调用这些纯函数即可得到一致的分区结果，无需通信。

分区策略：
- ``local_rows = ny // size``
- 余数 ``ny % size`` 全部分给最后一个进程（保持与既有输出兼容，
  最后一个进程负载略重）

拓扑：开放链（非环形）。rank 0 无左邻居，最后一个 rank 无右邻居，
链端的 halo 行保持 0.0（Dirichlet 零边界）。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .mpi_manager import MPIError


class PartitionInfeasibleError(MPIError):
    """进程数过多导致某个进程分不到任何行（local_rows < 1）。"""


@dataclass(frozen=True)
class Partition:
    """单个进程负责的逻辑行区间 ``[row_start, row_start + local_rows)``

    Attributes:
        rank: 进程编号
        row_start: 起始逻辑行（不含填充边界）
        local_rows: 本进程拥有的行数
    """
    rank: int
    row_start: int
    local_rows: int

    @property
    def row_stop(self) -> int:
        """区间右端（不含）"""
        return self.row_start + self.local_rows


def compute_partition(ny: int, size: int, rank: int) -> Tuple[int, int]:
    """
    计算 *rank* 的分区。

    Args:
        ny: 全局网格逻辑行数
        size: 进程数
        rank: 进程编号

    Returns:
        ``(row_start, local_rows)``

    Raises:
        PartitionInfeasibleError: 参数非法或 local_rows < 1
    """
    if ny < 1 or size < 1:
        raise PartitionInfeasibleError(
            f"网格行数 ({ny}) 与进程数 ({size}) 必须为正", rank=rank,
        )
    if not 0 <= rank < size:
        raise ValueError(f"rank {rank} 超出范围 [0, {size})")
    # 任一进程分不到行即整体不可行
    if ny < size:
        raise PartitionInfeasibleError(
            f"进程数过多: {size} 个进程无法划分 {ny} 行 (local_rows < 1)", rank=rank,
        )

    base = ny // size
    local_rows = base + (ny % size if rank == size - 1 else 0)
    # 前面的进程都恰好是 base 行
    return rank * base, local_rows


def compute_partitions(ny: int, size: int) -> List[Partition]:
    """计算全部进程的分区（按 rank 排序）。"""
    return [Partition(r, *compute_partition(ny, size, r)) for r in range(size)]


def compute_neighbors(rank: int, size: int) -> Tuple[Optional[int], Optional[int]]:
    """获取开放链拓扑中的相邻进程 ``(left, right)``，链端为 None。"""
    if not 0 <= rank < size:
        raise ValueError(f"rank {rank} 超出范围 [0, {size})")
    left = rank - 1 if rank > 0 else None
    right = rank + 1 if rank < size - 1 else None
    return left, right
