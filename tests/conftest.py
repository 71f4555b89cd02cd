"""
测试公共设施

``run_ranks`` 在单个进程内用线程模拟 ``size`` 个 MPI rank，
提供求解器用到的 mpi4py 调用（Sendrecv / Scatterv / Gatherv / bcast /
reduce / Barrier / Abort），无需 mpirun 即可测试多进程行为。
真实 MPI 测试使用 ``@pytest.mark.mpi``（pytest-mpi）。
"""

import copy
import queue
import threading
from typing import Any, Callable, Dict, List, Tuple

import numpy as np
import pytest
from mpi4py import MPI

from halo_stencil.mpi_manager import MPIManager

_TIMEOUT = 30.0
_TAG_BCAST = -101
_TAG_REDUCE = -102
_TAG_SCATTERV = -103
_TAG_GATHERV = -104


def pytest_configure(config):
    config.addinivalue_line("markers", "mpi: 需要 mpirun 启动的真实 MPI 测试 (pytest-mpi)")


class _Mailbox:
    """线程间共享的消息队列，按 (source, dest, tag) 匹配。"""

    def __init__(self, size: int) -> None:
        self.size = size
        self._queues: Dict[Tuple[int, int, int], "queue.Queue[Any]"] = {}
        self._lock = threading.Lock()
        self.barrier = threading.Barrier(size)

    def channel(self, source: int, dest: int, tag: int) -> "queue.Queue[Any]":
        with self._lock:
            return self._queues.setdefault((source, dest, tag), queue.Queue())


class ThreadComm:
    """线程版通信子（仅实现测试所需的子集）。"""

    def __init__(self, mailbox: _Mailbox, rank: int) -> None:
        self._box = mailbox
        self._rank = rank
        self.sent_tags: List[int] = []

    def Get_rank(self) -> int:
        return self._rank

    def Get_size(self) -> int:
        return self._box.size

    def _put(self, dest: int, tag: int, data: Any) -> None:
        self._box.channel(self._rank, dest, tag).put(data)

    def _get(self, source: int, tag: int) -> Any:
        return self._box.channel(source, self._rank, tag).get(timeout=_TIMEOUT)

    # ── 点对点 ──

    def Sendrecv(self, sendbuf, dest, sendtag=0, recvbuf=None, source=MPI.ANY_SOURCE,
                 recvtag=MPI.ANY_TAG, status=None):
        if dest != MPI.PROC_NULL:
            self.sent_tags.append(sendtag)
            self._put(dest, sendtag, np.array(sendbuf, copy=True))
        if source != MPI.PROC_NULL:
            recvbuf[...] = self._get(source, recvtag)

    # ── 集合 ──

    def Barrier(self) -> None:
        self._box.barrier.wait(timeout=_TIMEOUT)

    def bcast(self, obj, root=0):
        if self._rank == root:
            for r in range(self._box.size):
                if r != root:
                    self._put(r, _TAG_BCAST, copy.deepcopy(obj))
            return obj
        return self._get(root, _TAG_BCAST)

    def reduce(self, sendobj, op=MPI.SUM, root=0):
        if self._rank != root:
            self._put(root, _TAG_REDUCE, sendobj)
            return None
        values = [sendobj if r == root else self._get(r, _TAG_REDUCE)
                  for r in range(self._box.size)]
        if op is MPI.MAX:
            return max(values)
        if op is MPI.MIN:
            return min(values)
        return sum(values)

    def Scatterv(self, sendbuf, recvbuf, root=0):
        recv = recvbuf[0]
        if self._rank == root:
            buf, counts, displs, _ = sendbuf
            for r in range(self._box.size):
                chunk = np.array(buf[displs[r]:displs[r] + counts[r]], copy=True)
                if r == root:
                    recv[...] = chunk
                else:
                    self._put(r, _TAG_SCATTERV, chunk)
        else:
            recv[...] = self._get(root, _TAG_SCATTERV)

    def Gatherv(self, sendbuf, recvbuf, root=0):
        data = np.array(sendbuf[0], copy=True)
        if self._rank != root:
            self._put(root, _TAG_GATHERV, data)
            return
        buf, counts, displs, _ = recvbuf
        for r in range(self._box.size):
            chunk = data if r == root else self._get(r, _TAG_GATHERV)
            buf[displs[r]:displs[r] + counts[r]] = chunk

    def Abort(self, errorcode=0):
        raise SystemExit(errorcode)


def run_in_ranks(size: int, fn: Callable[[MPIManager], Any]) -> List[Any]:
    """
    以 *size* 个线程 rank 运行 ``fn(mpi)``，按 rank 顺序返回结果。

    任一 rank 抛出异常时重新抛出（优先 rank 最小者）。
    """
    box = _Mailbox(size)
    results: List[Any] = [None] * size
    errors: List[BaseException] = [None] * size  # type: ignore[list-item]

    def worker(rank: int) -> None:
        try:
            mpi = MPIManager(comm=ThreadComm(box, rank), use_gpu=False)
            results[rank] = fn(mpi)
        except BaseException as exc:  # 转交主线程重新抛出
            errors[rank] = exc
            box.barrier.abort()

    threads = [threading.Thread(target=worker, args=(r,), daemon=True) for r in range(size)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=_TIMEOUT * 2)
        assert not t.is_alive(), "rank 线程超时（疑似死锁）"
    for exc in errors:
        if exc is not None:
            raise exc
    return results


@pytest.fixture
def run_ranks():
    return run_in_ranks


@pytest.fixture
def single_mpi():
    """单 rank 的 MPIManager（线程通信子，不绑定 GPU）。"""
    return MPIManager(comm=ThreadComm(_Mailbox(1), 0), use_gpu=False)
