"""
初始网格生成：棋盘格图案

全局网格为零，按 ``tile_size × tile_size`` 分块，
块原点满足 ``(col0 + row0) % (2 * tile_size) != 0`` 的块置为 ``hot_value``。
边缘不足一块的部分按网格裁剪；填充边界始终为 0.0。
"""

from __future__ import annotations

import torch

DEFAULT_TILE_SIZE: int = 64
DEFAULT_HOT_VALUE: float = 100.0


def init_image(
    nx: int,
    ny: int,
    tile_size: int = DEFAULT_TILE_SIZE,
    hot_value: float = DEFAULT_HOT_VALUE,
) -> torch.Tensor:
    """
    生成填充后的全局初始网格。

    Args:
        nx: 逻辑列数
        ny: 逻辑行数
        tile_size: 棋盘格块边长
        hot_value: 热块的取值

    Returns:
        ``[ny + 2, nx + 2]`` 的 float32 CPU 张量
    """
    if nx < 1 or ny < 1:
        raise ValueError(f"网格尺寸必须为正: nx={nx}, ny={ny}")
    if tile_size < 1:
        raise ValueError(f"tile_size 必须为正: {tile_size}")

    image = torch.zeros(ny + 2, nx + 2, dtype=torch.float32)
    for row0 in range(0, ny, tile_size):
        for col0 in range(0, nx, tile_size):
            if (row0 + col0) % (tile_size * 2):
                row_lim = min(row0 + tile_size, ny)
                col_lim = min(col0 + tile_size, nx)
                image[row0 + 1:row_lim + 1, col0 + 1:col_lim + 1] = hot_value
    return image
