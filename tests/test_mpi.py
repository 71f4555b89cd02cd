"""
真实 MPI 环境下的测试（pytest-mpi）

    mpirun -n 2 python -m pytest --with-mpi tests/test_mpi.py
"""

import pytest
import torch

from halo_stencil.algorithms.stencil import stencil_serial
from halo_stencil.config import StencilConfig
from halo_stencil.grid_distributor import GridDistributor
from halo_stencil.initializer import init_image
from halo_stencil.local_grid import LocalSubgrid
from halo_stencil.mpi_manager import MPIManager
from halo_stencil.solver import StencilSolver


@pytest.mark.mpi(min_size=2)
def test_round_trip_over_mpi():
    mpi = MPIManager(use_gpu=False)
    nx, ny = 17, 5 * mpi.get_size() + 1
    grid = None
    if mpi.is_master_process():
        grid = torch.zeros(ny + 2, nx + 2)
        grid[1:-1, 1:-1] = torch.rand(ny, nx)

    dist = GridDistributor(mpi, nx, ny)
    sub = LocalSubgrid(dist.partition, nx)
    dist.scatter(grid, sub)
    gathered = dist.gather(sub)
    if mpi.is_master_process():
        assert torch.equal(gathered, grid)
    else:
        assert gathered is None


@pytest.mark.mpi(min_size=2)
def test_distributed_matches_serial_over_mpi():
    mpi = MPIManager(use_gpu=False)
    config = StencilConfig(nx=40, ny=8 * mpi.get_size() + 3, niters=4,
                           tile_size=8, use_gpu=False)
    grid = init_image(config.nx, config.ny, config.tile_size) if mpi.is_master_process() else None

    result = StencilSolver(config, mpi=mpi).run(grid)
    if mpi.is_master_process():
        assert torch.equal(result.grid, stencil_serial(grid, config.niters))
        assert result.runtime >= 0.0
