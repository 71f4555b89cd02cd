import torch

from halo_stencil.algorithms.halo import HALO_TAG_DOWN, HALO_TAG_UP, HaloExchanger
from halo_stencil.grid_distributor import GridDistributor
from halo_stencil.local_grid import LocalSubgrid


def _numbered_grid(nx, ny):
    grid = torch.zeros(ny + 2, nx + 2)
    grid[1:-1, 1:-1] = torch.arange(1, nx * ny + 1, dtype=torch.float32).reshape(ny, nx)
    return grid


def _exchange_once(run_ranks, size, nx, ny, grid):
    def body(mpi):
        dist = GridDistributor(mpi, nx, ny)
        sub = LocalSubgrid(dist.partition, nx)
        dist.scatter(grid if mpi.is_master_process() else None, sub)
        exchanger = HaloExchanger(mpi, sub)
        exchanger.exchange(sub.current)
        return dist.partition, sub.current.clone(), list(mpi.comm.sent_tags), exchanger

    return run_ranks(size, body)


def test_tags_are_distinct():
    assert HALO_TAG_UP != HALO_TAG_DOWN


def test_two_workers_receive_neighbour_boundary_rows(run_ranks):
    nx, ny = 4, 4
    grid = _numbered_grid(nx, ny)
    (p0, buf0, _, _), (p1, buf1, _, _) = _exchange_once(run_ranks, 2, nx, ny, grid)

    assert (p0.row_start, p0.row_stop) == (0, 2)
    assert (p1.row_start, p1.row_stop) == (2, 4)
    # 进程 0 的底部 halo = 全局逻辑第 2 行；进程 1 的顶部 halo = 全局逻辑第 1 行
    assert torch.equal(buf0[3], grid[3])
    assert torch.equal(buf1[0], grid[2])
    # 链端保持零边界
    assert torch.all(buf0[0] == 0.0)
    assert torch.all(buf1[3] == 0.0)


def test_every_rank_sees_true_neighbour_rows(run_ranks):
    nx, ny = 5, 11
    grid = _numbered_grid(nx, ny)
    results = _exchange_once(run_ranks, 4, nx, ny, grid)

    for part, buf, _, _ in results:
        n = part.local_rows
        assert torch.equal(buf[1:n + 1], grid[part.row_start + 1:part.row_stop + 1])
        # 填充坐标：逻辑行 r 对应全局网格第 r + 1 行
        assert torch.equal(buf[0], grid[part.row_start])
        assert torch.equal(buf[n + 1], grid[part.row_stop + 1])


def test_single_worker_halos_stay_zero(run_ranks):
    nx, ny = 3, 3
    grid = _numbered_grid(nx, ny)
    [(part, buf, tags, exchanger)] = _exchange_once(run_ranks, 1, nx, ny, grid)
    assert torch.all(buf[0] == 0.0)
    assert torch.all(buf[-1] == 0.0)
    assert tags == []
    assert (exchanger.left, exchanger.right) == (None, None)


def test_messages_use_direction_tags(run_ranks):
    nx, ny = 2, 6
    grid = _numbered_grid(nx, ny)
    results = _exchange_once(run_ranks, 3, nx, ny, grid)
    first, middle, last = (r[2] for r in results)
    assert first == [HALO_TAG_DOWN]
    assert middle == [HALO_TAG_UP, HALO_TAG_DOWN]
    assert last == [HALO_TAG_UP]


def test_stale_halo_is_overwritten(run_ranks):
    nx, ny = 3, 4

    def body(mpi):
        dist = GridDistributor(mpi, nx, ny)
        sub = LocalSubgrid(dist.partition, nx)
        sub.current[0].fill_(9.0)
        sub.current[-1].fill_(9.0)
        HaloExchanger(mpi, sub).exchange(sub.current)
        return sub.current.clone()

    for buf in run_ranks(2, body):
        assert torch.all(buf[0] == 0.0)
        assert torch.all(buf[-1] == 0.0)
