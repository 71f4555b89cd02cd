"""
运行配置
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Optional

from .initializer import DEFAULT_HOT_VALUE, DEFAULT_TILE_SIZE

DEFAULT_OUTPUT_FILE: str = "stencil.pgm"


@dataclass
class StencilConfig:
    """Stencil 运行配置

    Attributes:
        nx: 网格逻辑列数
        ny: 网格逻辑行数
        niters: 时间步数（每步两次半步更新）
        output_path: PGM 输出路径
        tile_size: 初始棋盘格块边长
        hot_value: 初始热块取值
        num_threads: 每个进程的 torch 线程数（None 表示保持默认）
        use_gpu: 是否尝试使用 GPU
        write_image: 是否写出 PGM 图像
    """
    nx: int
    ny: int
    niters: int
    output_path: str = DEFAULT_OUTPUT_FILE
    tile_size: int = DEFAULT_TILE_SIZE
    hot_value: float = DEFAULT_HOT_VALUE
    num_threads: Optional[int] = None
    use_gpu: bool = True
    write_image: bool = True

    def validate(self) -> None:
        """检查取值范围，非法时抛出 ``ValueError``。"""
        for name in ("nx", "ny", "niters", "tile_size"):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} 必须为正整数，当前为 {value}")
        if self.num_threads is not None and self.num_threads < 1:
            raise ValueError(f"num_threads 必须为正整数，当前为 {self.num_threads}")

    @property
    def width(self) -> int:
        """含填充边界的列数"""
        return self.nx + 2

    @property
    def height(self) -> int:
        """含填充边界的行数"""
        return self.ny + 2

    # ------------------------------------------------------------------
    # 工厂方法
    # ------------------------------------------------------------------
    @classmethod
    def from_args(cls, args: argparse.Namespace) -> StencilConfig:
        """由命令行参数构建配置"""
        config = cls(
            nx=args.nx,
            ny=args.ny,
            niters=args.niters,
            output_path=args.output,
            num_threads=args.threads,
            use_gpu=not args.cpu,
            write_image=not args.no_image,
        )
        config.validate()
        return config
