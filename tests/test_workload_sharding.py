import pytest

from ridgeval.errors import InvalidArgumentError
from ridgeval.workload.sharding import shuffle, split


def test_shuffle_is_a_deterministic_permutation():
    first = shuffle(50, seed=1234)

    assert sorted(first) == list(range(50))
    assert shuffle(50, seed=1234) == first
    assert shuffle(50, seed=4321) != first


def test_shuffle_edge_sizes():
    assert shuffle(0, seed=1) == []
    assert shuffle(1, seed=1) == [0]
    with pytest.raises(InvalidArgumentError):
        shuffle(-1, seed=1)


def test_shuffle_accepts_full_64_bit_seed():
    assert sorted(shuffle(5, seed=2**64 - 1)) == [0, 1, 2, 3, 4]


@pytest.mark.parametrize("n,workers", [(10, 3), (7, 7), (100, 8), (5, 2)])
def test_split_is_contiguous_and_complete(n, workers):
    indices = shuffle(n, seed=7)

    shards = split(indices, workers)

    assert len(shards) == workers
    assert all(shards)
    assert [i for shard in shards for i in shard] == indices


def test_split_remainder_goes_to_last_slice():
    assert split(list(range(10)), 3) == [[0, 1, 2], [3, 4, 5], [6, 7, 8, 9]]


def test_split_zero_workers_is_empty():
    assert split([1, 2, 3], 0) == []


def test_split_single_worker_gets_everything():
    assert split([3, 1, 2], 1) == [[3, 1, 2]]


def test_split_rejects_more_workers_than_items():
    with pytest.raises(InvalidArgumentError):
        split([1, 2], 3)
