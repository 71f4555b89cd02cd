"""
5 点加权平均 Stencil 核（热扩散式平滑）

    dst[r, c] = 0.6 * src[r, c]
              + 0.1 * (src[r-1, c] + src[r+1, c] + src[r, c-1] + src[r, c+1])

权重非负且和为 1，是凸组合：输出不会超出五个输入的 [min, max]。

数值约定：
- 全程 float32
- 加法顺序固定为 (上 + 下) + 左 + 右，保证任意分区方式下逐位一致
- 只写 dst 的内部区域 ``[1, local_rows] × [1, nx]``，
  halo 行与左右边界由 halo 交换 / 初始化负责

内部循环由 torch 的 intra-op 线程池并行（各输出元素互不依赖，
且只读取另一块缓冲区）。
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import torch

W_CENTER: float = 0.6
W_NEIGHBOR: float = 0.1


class StencilKernel:
    """
    Stencil 核

    预分配中心项临时张量并按 (形状, 设备) 缓存，迭代中复用，
    避免每个半步的内存分配开销。
    """

    def __init__(self) -> None:
        self._scratch: Dict[Tuple[Tuple[int, int], torch.device, torch.dtype], torch.Tensor] = {}

    def _get_scratch(self, like: torch.Tensor) -> torch.Tensor:
        key = (tuple(like.shape), like.device, like.dtype)
        buf = self._scratch.get(key)
        if buf is None:
            buf = torch.empty(like.shape, dtype=like.dtype, device=like.device)
            self._scratch[key] = buf
        return buf

    def apply(
        self,
        src: torch.Tensor,
        dst: torch.Tensor,
        nx: int,
        local_rows: int,
    ) -> torch.Tensor:
        """
        对 *src* 的内部区域做一次 Stencil 更新，结果写入 *dst*。

        Args:
            src: 源缓冲区 ``[local_rows + 2, nx + 2]``（halo 已刷新）
            dst: 目标缓冲区，与 *src* 同形状且不共享内存
            nx: 内部列数
            local_rows: 内部行数

        Returns:
            *dst*
        """
        expected = (local_rows + 2, nx + 2)
        if tuple(src.shape) != expected or tuple(dst.shape) != expected:
            raise ValueError(
                f"缓冲区形状不符: src={tuple(src.shape)}, dst={tuple(dst.shape)}, 期望 {expected}"
            )
        if src.data_ptr() == dst.data_ptr():
            raise ValueError("src 与 dst 不能是同一块缓冲区")

        n = local_rows
        center = src[1:n + 1, 1:nx + 1]
        interior = dst[1:n + 1, 1:nx + 1]

        # 邻居和，顺序固定：(上 + 下) + 左 + 右
        torch.add(src[0:n, 1:nx + 1], src[2:n + 2, 1:nx + 1], out=interior)
        interior.add_(src[1:n + 1, 0:nx])
        interior.add_(src[1:n + 1, 2:nx + 2])
        interior.mul_(W_NEIGHBOR)

        scratch = self._get_scratch(center)
        torch.mul(center, W_CENTER, out=scratch)
        # 0.6 * 中心 + 0.1 * 邻居和
        interior.add_(scratch)
        return dst


# ==================== 单进程参考实现 ====================


def stencil_serial(
    grid: torch.Tensor,
    niters: int,
    kernel: Optional[StencilKernel] = None,
) -> torch.Tensor:
    """
    单进程上的完整迭代（每个时间步两次半步，与分布式版本一致）

    Args:
        grid: 填充后的全局网格 ``[ny + 2, nx + 2]``，边界为 0.0
        niters: 时间步数
        kernel: 可复用的 :class:`StencilKernel`

    Returns:
        迭代后的新网格（不修改输入）
    """
    kernel = kernel or StencilKernel()
    ny, nx = grid.shape[0] - 2, grid.shape[1] - 2
    current = grid.to(torch.float32).clone()
    alternate = torch.zeros_like(current)
    for _ in range(niters):
        kernel.apply(current, alternate, nx, ny)
        kernel.apply(alternate, current, nx, ny)
    return current
