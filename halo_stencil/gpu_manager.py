"""
计算设备管理器 (Device Manager)

负责本进程计算设备的选择、显存查询，以及子网格双缓冲的显存估算。
无 GPU 时退化为 CPU。
"""

from __future__ import annotations

import math
from typing import Dict, Sequence

import torch

# ── 常量 ──────────────────────────────────────────────────────
_GB: float = 1024.0 ** 3

_DTYPE_BYTES: Dict[torch.dtype, int] = {
    torch.float16: 2,
    torch.float32: 4,
    torch.float64: 8,
}


class GPUManager:
    """
    计算设备管理器

    Args:
        gpu_id: GPU 设备 ID（-1 表示使用 CPU）
    """

    def __init__(self, gpu_id: int) -> None:
        self.gpu_id: int = gpu_id
        use_cuda = gpu_id >= 0 and torch.cuda.is_available()
        self.device: torch.device = torch.device(f"cuda:{gpu_id}" if use_cuda else "cpu")

        if use_cuda:
            props = torch.cuda.get_device_properties(gpu_id)
            self.name: str = props.name
            self.total_memory: int = props.total_memory
        else:
            self.name = "CPU"
            self.total_memory = 0

    # ── 设备查询 ────────────────────────────────────────────────

    @property
    def is_cuda(self) -> bool:
        return self.device.type == "cuda"

    def get_device(self) -> torch.device:
        """获取 ``torch.device``。"""
        return self.device

    def get_free_memory_gb(self) -> float:
        """
        获取设备当前可用显存（GB）。

        CPU 设备返回 ``math.inf``（不做限制）。
        """
        if not self.is_cuda:
            return math.inf
        free, _ = torch.cuda.mem_get_info(self.gpu_id)
        return free / _GB

    # ── 显存估算 ────────────────────────────────────────────────

    @staticmethod
    def estimate_memory_requirement(
        *tensor_shapes: Sequence[int],
        dtype: torch.dtype = torch.float32,
    ) -> float:
        """
        估算给定张量形状所需显存。

        Args:
            *tensor_shapes: 张量形状（如 ``(local_rows + 2, nx + 2)``）
            dtype: 数据类型

        Returns:
            所需显存（GB）
        """
        bytes_per_element = _DTYPE_BYTES.get(dtype, 4)
        total_bytes = sum(math.prod(shape) * bytes_per_element for shape in tensor_shapes)
        return total_bytes / _GB

    def can_fit(
        self,
        *tensor_shapes: Sequence[int],
        dtype: torch.dtype = torch.float32,
        safety_margin: float = 0.1,
    ) -> bool:
        """
        检查张量是否能放入当前设备。

        Args:
            *tensor_shapes: 张量形状
            dtype: 数据类型
            safety_margin: 安全边际比例 (0–1)

        Returns:
            ``True`` 表示可以放入
        """
        required = self.estimate_memory_requirement(*tensor_shapes, dtype=dtype)
        available = self.get_free_memory_gb() * (1.0 - safety_margin)
        return required <= available
