"""为 test_all.py 的测试函数提供 ``mpi`` / ``profiler`` fixture（与其 main() 一致）。"""

import pytest

from halo_stencil.mpi_manager import MPIManager
from halo_stencil.utils.profiler import Profiler


@pytest.fixture(scope="session")
def mpi():
    return MPIManager()


@pytest.fixture(scope="session")
def profiler(mpi):
    return Profiler(enabled=mpi.is_master_process())
