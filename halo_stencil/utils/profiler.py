"""
性能分析工具

按阶段（分发 / 计算 / 收集）计时，计算阶段的耗时在所有进程间取最大值作为运行时间。
CUDA 可用时在计时边界同步，保证 GPU 计时准确。
"""

from __future__ import annotations

import statistics
import time
from typing import Dict, List, Optional

import torch
from mpi4py import MPI

from ..mpi_manager import MPIManager


class Profiler:
    """
    分阶段计时器

    用法::

        prof = Profiler()
        prof.start("stencil")
        # ... 计算 ...
        prof.end("stencil")
        runtime = prof.max_across_ranks(mpi, "stencil")

    Args:
        enabled: 是否启用（False 时所有操作为空操作）
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled: bool = enabled
        self.timings: Dict[str, List[float]] = {}
        self._started: Dict[str, float] = {}

    @staticmethod
    def _sync() -> None:
        if torch.cuda.is_available():
            torch.cuda.synchronize()

    def start(self, name: str) -> None:
        if not self.enabled:
            return
        self._sync()
        self._started[name] = time.perf_counter()

    def end(self, name: str) -> float:
        """
        结束阶段 *name* 的计时并记录。

        Returns:
            本次耗时（秒）；未启用或没有对应的 :meth:`start` 时为 0.0
        """
        if not self.enabled or name not in self._started:
            return 0.0
        self._sync()
        elapsed = time.perf_counter() - self._started.pop(name)
        self.timings.setdefault(name, []).append(elapsed)
        return elapsed

    def get_total(self, name: str) -> float:
        return sum(self.timings.get(name, []))

    def max_across_ranks(self, mpi: MPIManager, name: str) -> Optional[float]:
        """
        所有进程上 *name* 最近一次耗时的最大值（MPI_Reduce + MAX）。

        重要：所有进程都必须调用此函数！

        Returns:
            主进程返回最大耗时（秒），其余进程返回 None
        """
        times = self.timings.get(name)
        local = times[-1] if times else 0.0
        return mpi.reduce(local, op=MPI.MAX, root=0)

    def reset(self) -> None:
        self.timings.clear()
        self._started.clear()

    def summary_lines(self) -> List[str]:
        """每个阶段一行：次数、总耗时、平均值（多次时附标准差）。"""
        lines = []
        for name, times in self.timings.items():
            total = sum(times)
            line = f"{name}: {len(times)} 次, 共 {total:.6f} s, 平均 {total / len(times):.6f} s"
            if len(times) > 1:
                line += f", 标准差 {statistics.stdev(times):.6f} s"
            lines.append(line)
        return lines

    def print_summary(self) -> None:
        """打印各阶段耗时摘要"""
        lines = self.summary_lines()
        if not self.enabled or not lines:
            return
        print("\n" + "=" * 60)
        print("性能分析摘要")
        print("=" * 60)
        for line in lines:
            print(f"  {line}")
