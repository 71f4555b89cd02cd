"""
命令行入口

用法::

    mpirun -n 4 python -m halo_stencil 1024 1024 100
    mpirun -n 4 halo-stencil 1024 1024 100 --output out.pgm

退出码：
- 2：参数错误（argparse，各进程独立报告，不写任何输出）
- 1：输出文件无法打开（计算完成后，结果丢失）
- 分区不可行时调用 MPI_Abort 集体终止全部进程
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from .config import DEFAULT_OUTPUT_FILE, StencilConfig
from .image_io import output_image
from .initializer import init_image
from .mpi_manager import MPIManager
from .partitioner import PartitionInfeasibleError
from .solver import StencilSolver

_logger = logging.getLogger("halo_stencil.cli")


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"不是整数: {text!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"必须为正整数: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="halo_stencil",
        description="行带分解 + halo 交换的分布式 5 点 Stencil",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  mpirun -n 4 python -m halo_stencil 1024 1024 100        # 写出 stencil.pgm
  mpirun -n 4 python -m halo_stencil 4096 4096 50 --cpu   # 强制使用 CPU
  python -m halo_stencil 64 64 10 --no-image              # 单进程，只计时
        """,
    )
    parser.add_argument("nx", type=_positive_int, help="网格列数")
    parser.add_argument("ny", type=_positive_int, help="网格行数")
    parser.add_argument("niters", type=_positive_int, help="时间步数")
    parser.add_argument("--output", "-o", default=DEFAULT_OUTPUT_FILE,
                        help=f"PGM 输出路径 (默认: {DEFAULT_OUTPUT_FILE})")
    parser.add_argument("--threads", "-t", type=_positive_int, default=None,
                        help="每个进程的 torch 线程数 (默认: torch 默认值)")
    parser.add_argument("--cpu", action="store_true",
                        help="不使用 GPU")
    parser.add_argument("--no-image", action="store_true",
                        help="不写出 PGM 图像")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="日志级别 (默认: WARNING)")
    return parser


def main(argv: Optional[Sequence[str]] = None, mpi: Optional[MPIManager] = None) -> int:
    """
    运行一次完整计算。

    Args:
        argv: 命令行参数（默认 ``sys.argv[1:]``）
        mpi: MPI 管理器（默认新建）

    Returns:
        进程退出码
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = StencilConfig.from_args(args)

    mpi = mpi or MPIManager(use_gpu=config.use_gpu)

    try:
        solver = StencilSolver(config, mpi=mpi)
    except PartitionInfeasibleError as exc:
        # 链上每个进程都必须参与同一组交换，单个进程无法继续
        _logger.error("%s", exc)
        print(f"Error: too many processes: {exc}", file=sys.stderr)
        mpi.abort(1)
        return 1

    # 全局网格只存在于主进程
    if mpi.is_master_process():
        global_grid = init_image(config.nx, config.ny, config.tile_size, config.hot_value)
    else:
        global_grid = None
    result = solver.run(global_grid)
    for line in solver.profiler.summary_lines():
        _logger.info("Rank %d %s", mpi.get_rank(), line)

    if result.grid is None:
        # 非主进程没有结果网格
        return 0

    mpi.print_master(f" runtime: {result.runtime:f} s")
    if config.write_image:
        try:
            output_image(config.output_path, result.grid)
        except OSError as exc:
            _logger.error("无法写出 %s: %s", config.output_path, exc)
            print(f"Error: Could not open {config.output_path}", file=sys.stderr)
            return 1
    return 0
