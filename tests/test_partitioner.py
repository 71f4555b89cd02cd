import pytest

from halo_stencil.partitioner import (Partition, PartitionInfeasibleError,
                                      compute_neighbors, compute_partition,
                                      compute_partitions)


@pytest.mark.parametrize("ny", [1, 2, 7, 16, 37, 100])
def test_partitions_cover_rows_in_order(ny):
    for size in range(1, ny + 1):
        parts = compute_partitions(ny, size)
        assert [p.rank for p in parts] == list(range(size))
        assert parts[0].row_start == 0
        assert parts[-1].row_stop == ny
        for a, b in zip(parts, parts[1:]):
            assert a.row_stop == b.row_start
        assert sum(p.local_rows for p in parts) == ny
        assert all(p.local_rows >= 1 for p in parts)


def test_remainder_goes_to_last_rank():
    parts = compute_partitions(10, 4)
    assert [p.local_rows for p in parts] == [2, 2, 2, 4]
    assert [p.row_start for p in parts] == [0, 2, 4, 6]


def test_compute_partition_matches_list():
    assert compute_partition(4, 2, 0) == (0, 2)
    assert compute_partition(4, 2, 1) == (2, 2)
    assert compute_partitions(4, 2) == [Partition(0, 0, 2), Partition(1, 2, 2)]


def test_too_many_workers_is_infeasible():
    with pytest.raises(PartitionInfeasibleError):
        compute_partition(3, 4, 0)
    with pytest.raises(PartitionInfeasibleError):
        compute_partitions(3, 4)


def test_non_positive_sizes_are_infeasible():
    with pytest.raises(PartitionInfeasibleError):
        compute_partition(0, 1, 0)
    with pytest.raises(PartitionInfeasibleError):
        compute_partition(4, 0, 0)


def test_rank_out_of_range():
    with pytest.raises(ValueError):
        compute_partition(8, 2, 2)
    with pytest.raises(ValueError):
        compute_neighbors(-1, 2)


def test_neighbors_form_open_chain():
    assert compute_neighbors(0, 1) == (None, None)
    assert compute_neighbors(0, 3) == (None, 1)
    assert compute_neighbors(1, 3) == (0, 2)
    assert compute_neighbors(2, 3) == (1, None)


def test_infeasible_error_carries_rank():
    with pytest.raises(PartitionInfeasibleError) as info:
        compute_partition(2, 5, 3)
    assert info.value.rank == 3
    assert "[Rank 3]" in str(info.value)


@pytest.mark.parametrize("rank", [0, 1, 2, 3])
def test_every_rank_rejects_too_many_workers(rank):
    # 末位进程带余数也不能单独得到合法区间
    with pytest.raises(PartitionInfeasibleError):
        compute_partition(3, 4, rank)
