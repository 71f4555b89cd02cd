"""
MPI 通信管理器 (MPI Communication Manager)

负责 MPI 环境的初始化、进程间通信和协调。
确保所有 MPI 集合操作被所有进程正确调用。
包含错误处理和致命错误时的集体终止。

通信约定：
- 网格数据统一为 float32 的连续 NumPy 缓冲区（大写/缓冲区版 API）
- 元信息与小对象使用 pickle 版 API（小写 bcast / reduce）
- 每个进程只绑定一个计算设备（GPU 按 rank 轮询分配，无 GPU 时为 CPU）
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Callable, Dict, Optional, Sequence, Type

import numpy as np
import torch
from mpi4py import MPI

# ── 模块级 logger ──────────────────────────────────────────────
_logger = logging.getLogger("halo_stencil.mpi")

# ── NumPy dtype → MPI 数据类型（缓冲区版通信使用） ───────────────
_NUMPY_TO_MPI_DTYPE: Dict[Type[np.generic], MPI.Datatype] = {
    np.float32: MPI.FLOAT,
    np.float64: MPI.DOUBLE,
    np.int32: MPI.INT,
    np.int64: MPI.INT64_T,
}


# ══════════════════════════════════════════════════════════════════
#  异常类
# ══════════════════════════════════════════════════════════════════

class MPIError(RuntimeError):
    """MPI 操作异常（附带 rank 信息）。"""

    def __init__(
        self,
        msg: str,
        rank: int = -1,
        original: Optional[Exception] = None,
    ) -> None:
        self.rank: int = rank
        self.original: Optional[Exception] = original
        super().__init__(f"[Rank {rank}] {msg}")


# ══════════════════════════════════════════════════════════════════
#  MPI 管理器
# ══════════════════════════════════════════════════════════════════

class MPIManager:
    """
    MPI 通信管理器

    职责：
    - 初始化 MPI 环境并绑定计算设备
    - 提供带错误处理的集合通信操作 (broadcast / scatterv / gatherv / reduce …)
    - 提供成对阻塞交换 (Sendrecv)，用于 halo 行交换
    - 致命错误时终止全部进程 (Abort)

    Args:
        comm: 通信子（默认 ``MPI.COMM_WORLD``）；测试中可注入线程通信子
        use_gpu: 是否尝试绑定 GPU
    """

    # ── 初始化 ──────────────────────────────────────────────────

    def __init__(self, comm: Optional[Any] = None, use_gpu: bool = True) -> None:
        """初始化 MPI 环境并绑定计算设备。"""
        self.comm: MPI.Comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank: int = self.comm.Get_rank()
        self.size: int = self.comm.Get_size()
        self.is_master: bool = (self.rank == 0)

        # 设置 GPU 设备（每个进程绑定一个 GPU）
        if use_gpu and torch.cuda.is_available():
            self.gpu_count: int = torch.cuda.device_count()
            self.gpu_id: int = self.rank % self.gpu_count
            torch.cuda.set_device(self.gpu_id)
        else:
            self.gpu_count = 0
            self.gpu_id = -1

        if self.is_master:
            _logger.info("MPI 环境初始化: %d 个进程, %d 个 GPU", self.size, self.gpu_count)

    # ── 内部：安全调用包装器 ────────────────────────────────────

    def _safe_call(self, func_name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        带错误处理的 MPI 操作包装器。

        如果 MPI 操作失败，会记录日志并抛出 :class:`MPIError`，
        避免无信息的段错误或死锁。
        """
        try:
            return fn(*args, **kwargs)
        except MPI.Exception as exc:
            msg = f"MPI 操作 '{func_name}' 失败: {exc}"
            _logger.error(msg)
            raise MPIError(msg, rank=self.rank, original=exc) from exc
        except Exception as exc:
            msg = f"操作 '{func_name}' 异常: {exc}\n{traceback.format_exc()}"
            _logger.error(msg)
            raise MPIError(msg, rank=self.rank, original=exc) from exc

    # ── 状态查询 ────────────────────────────────────────────────

    def get_rank(self) -> int:
        """获取当前进程 rank。"""
        return self.rank

    def get_size(self) -> int:
        """获取总进程数。"""
        return self.size

    def is_master_process(self) -> bool:
        """判断是否是主进程 (rank == 0)。"""
        return self.is_master

    def get_gpu_id(self) -> int:
        """获取当前进程绑定的 GPU ID（无 GPU 时为 -1）。"""
        return self.gpu_id

    # ── 同步 ────────────────────────────────────────────────────

    def barrier(self) -> None:
        """同步所有进程 (MPI_Barrier)。"""
        self._safe_call("Barrier", self.comm.Barrier)

    def abort(self, errorcode: int = 1) -> None:
        """
        终止通信子内的全部进程 (MPI_Abort)。

        用于无法由单个进程安全恢复的致命错误（如分区不可行）。
        """
        _logger.critical("Rank %d 请求集体终止 (errorcode=%d)", self.rank, errorcode)
        self.comm.Abort(errorcode)

    # ══════════════════════════════════════════════════════════════
    #  集合通信操作
    #  注意：所有进程都必须调用这些函数
    # ══════════════════════════════════════════════════════════════

    def broadcast(self, data: Any, root: int = 0) -> Any:
        """
        广播 Python 对象（pickle 序列化）。

        重要：所有进程都必须调用此函数！

        Args:
            data: 要广播的数据（仅 *root* 进程的数据有效）
            root: 源进程 rank

        Returns:
            广播后的数据（所有进程都得到相同数据）
        """
        return self._safe_call("bcast", self.comm.bcast, data, root=root)

    def reduce(self, data: Any, op: Any = MPI.SUM, root: int = 0) -> Any:
        """
        归约操作（仅 root 进程得到结果，其余进程返回 None）。

        重要：所有进程都必须调用此函数！
        """
        return self._safe_call("reduce", self.comm.reduce, data, op=op, root=root)

    def scatterv(
        self,
        sendbuf: Optional[np.ndarray],
        counts: Sequence[int],
        displs: Sequence[int],
        recvbuf: np.ndarray,
        root: int = 0,
    ) -> np.ndarray:
        """
        变长分散 (MPI_Scatterv)。

        重要：所有进程都必须调用此函数！

        Args:
            sendbuf: 连续的一维发送缓冲区（仅 root 进程需要提供）
            counts: 每个进程接收的元素个数
            displs: 每个进程数据在 *sendbuf* 中的起始偏移（元素）
            recvbuf: 当前进程的连续接收缓冲区
            root: 源进程 rank

        Returns:
            填充完毕的 *recvbuf*
        """
        if self.rank == root:
            if sendbuf is None:
                raise MPIError(f"root={root} 进程的 sendbuf 不能为 None", rank=self.rank)
            send_spec = [sendbuf, list(counts), list(displs), mpi_dtype_of(sendbuf)]
        else:
            send_spec = None
        self._safe_call(
            "Scatterv", self.comm.Scatterv, send_spec,
            [recvbuf, mpi_dtype_of(recvbuf)], root=root,
        )
        return recvbuf

    def gatherv(
        self,
        sendbuf: np.ndarray,
        recvbuf: Optional[np.ndarray],
        counts: Sequence[int],
        displs: Sequence[int],
        root: int = 0,
    ) -> Optional[np.ndarray]:
        """
        变长收集 (MPI_Gatherv)，:meth:`scatterv` 的逆操作。

        重要：所有进程都必须调用此函数！

        Returns:
            root 进程返回填充完毕的 *recvbuf*，其余进程返回 None
        """
        if self.rank == root:
            if recvbuf is None:
                raise MPIError(f"root={root} 进程的 recvbuf 不能为 None", rank=self.rank)
            recv_spec = [recvbuf, list(counts), list(displs), mpi_dtype_of(recvbuf)]
        else:
            recv_spec = None
        self._safe_call(
            "Gatherv", self.comm.Gatherv,
            [sendbuf, mpi_dtype_of(sendbuf)], recv_spec, root=root,
        )
        return recvbuf if self.rank == root else None

    # ══════════════════════════════════════════════════════════════
    #  点对点通信
    # ══════════════════════════════════════════════════════════════

    def sendrecv_buffer(
        self,
        sendbuf: np.ndarray,
        dest: int,
        recvbuf: np.ndarray,
        source: int,
        tag: int = 0,
    ) -> None:
        """
        成对阻塞交换 (MPI_Sendrecv，缓冲区版本)。

        发送与接收同时进行，不会出现两个阻塞 send 互相等待的死锁。
        *dest* / *source* 为 ``MPI.PROC_NULL`` 时对应方向为空操作。
        """
        self._safe_call(
            f"Sendrecv(tag={tag})", self.comm.Sendrecv,
            sendbuf=sendbuf, dest=dest, sendtag=tag,
            recvbuf=recvbuf, source=source, recvtag=tag,
        )

    # ══════════════════════════════════════════════════════════════
    #  输出辅助
    # ══════════════════════════════════════════════════════════════

    def print_master(self, message: str) -> None:
        """仅在主进程打印消息。"""
        if self.is_master:
            print(message)


# ══════════════════════════════════════════════════════════════════
#  模块级工具函数
# ══════════════════════════════════════════════════════════════════

def mpi_dtype_of(arr: np.ndarray) -> MPI.Datatype:
    """NumPy 数组 → 对应的 MPI 数据类型。"""
    try:
        return _NUMPY_TO_MPI_DTYPE[arr.dtype.type]
    except KeyError:
        raise TypeError(f"不支持的缓冲区 dtype: {arr.dtype}") from None
