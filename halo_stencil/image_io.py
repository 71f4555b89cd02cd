"""
结果输出：Netpbm 二进制灰度图 (PGM, P5)

文件头 ``"P5 {nx} {ny} 255\n"``，随后按行写出 ``nx × ny`` 个字节，
每个字节为 ``int(255.0 * v / max_v)``（截断取整）。
最大值为 0.0 时全部写 0。
"""

from __future__ import annotations

import logging
import os
from typing import Union

import numpy as np
import torch

_logger = logging.getLogger("halo_stencil.image_io")

MAX_SAMPLE: int = 255


def normalize_to_bytes(image: torch.Tensor) -> np.ndarray:
    """
    去掉填充边界并把内部区域线性映射到 ``[0, 255]``。

    Args:
        image: 填充后的全局网格 ``[ny + 2, nx + 2]``

    Returns:
        ``[ny, nx]`` 的 uint8 数组
    """
    interior = image[1:-1, 1:-1].detach().cpu().numpy().astype(np.float64)
    maximum = float(interior.max()) if interior.size else 0.0
    if maximum <= 0.0:
        return np.zeros(interior.shape, dtype=np.uint8)
    scaled = MAX_SAMPLE * interior / maximum
    return np.clip(scaled, 0, MAX_SAMPLE).astype(np.uint8)


def output_image(path: Union[str, os.PathLike], image: torch.Tensor) -> None:
    """
    写出 PGM 图像。

    Raises:
        OSError: 无法打开输出路径
    """
    ny, nx = image.shape[0] - 2, image.shape[1] - 2
    pixels = normalize_to_bytes(image)
    with open(path, "wb") as fh:
        fh.write(f"P5 {nx} {ny} {MAX_SAMPLE}\n".encode("ascii"))
        fh.write(pixels.tobytes())
    _logger.info("已写出 %s (%d×%d)", os.fspath(path), nx, ny)
