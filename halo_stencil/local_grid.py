"""
本地子网格（双缓冲）

每个进程持有两块同形状的填充子网格 ``[local_rows + 2, nx + 2]``：

- 第 ``1..local_rows`` 行为本进程拥有的内部行
- 第 0 行与第 ``local_rows + 1`` 行为 halo 行（来自相邻进程的拷贝）
- 第 0 列与第 ``nx + 1`` 列为固定的零边界

两块缓冲区通过角色标志区分 "current" / "alternate"，每次 Stencil
半步后切换一次角色，不做拷贝、也不重新分配。
"""

from __future__ import annotations

from typing import Optional, Tuple

import torch

from .partitioner import Partition


class LocalSubgrid:
    """
    双槽缓冲区抽象

    Args:
        partition: 本进程的分区
        nx: 全局网格逻辑列数
        device: 存放缓冲区的设备
        dtype: 元素类型（默认 float32）
    """

    __slots__ = ("partition", "nx", "_buffers", "_current")

    def __init__(
        self,
        partition: Partition,
        nx: int,
        device: Optional[torch.device] = None,
        dtype: torch.dtype = torch.float32,
    ) -> None:
        self.partition: Partition = partition
        self.nx: int = nx
        shape = (partition.local_rows + 2, nx + 2)
        self._buffers: Tuple[torch.Tensor, torch.Tensor] = (
            torch.zeros(shape, dtype=dtype, device=device),
            torch.zeros(shape, dtype=dtype, device=device),
        )
        self._current: int = 0

    # ── 形状 ────────────────────────────────────────────────────

    @property
    def local_rows(self) -> int:
        return self.partition.local_rows

    @property
    def width(self) -> int:
        """含左右边界的行宽 ``nx + 2``"""
        return self.nx + 2

    @property
    def shape(self) -> Tuple[int, int]:
        return tuple(self._buffers[0].shape)  # type: ignore[return-value]

    # ── 角色 ────────────────────────────────────────────────────

    @property
    def current(self) -> torch.Tensor:
        """当前时刻的数据（下一次更新的源）"""
        return self._buffers[self._current]

    @property
    def alternate(self) -> torch.Tensor:
        """下一次更新的目标"""
        return self._buffers[1 - self._current]

    def swap(self) -> None:
        """切换 current / alternate 角色。"""
        self._current = 1 - self._current

    # ── 视图 ────────────────────────────────────────────────────

    def interior_rows(self, buffer: Optional[torch.Tensor] = None) -> torch.Tensor:
        """
        拥有的内部行（含左右零边界），形状 ``[local_rows, nx + 2]``。

        返回视图，写入会直接修改缓冲区。
        """
        buf = self.current if buffer is None else buffer
        return buf[1:self.local_rows + 1]

    def __repr__(self) -> str:
        return (
            f"LocalSubgrid(rank={self.partition.rank}, rows=[{self.partition.row_start}, "
            f"{self.partition.row_stop}), shape={self.shape}, current={self._current})"
        )
