"""Tests for the new/duplicate split."""

from DEDUP.services.dedup.partitioner import partition


def test_split_keeps_extraction_order():
    result = partition([9, 5, 7, 3], {7, 9})
    assert result.new == [5, 3]
    assert result.duplicate == [9, 7]


def test_partitions_are_disjoint_and_cover_candidates():
    candidates = list(range(50))
    existing = set(range(0, 50, 3))
    result = partition(candidates, existing)

    assert not set(result.new) & set(result.duplicate)
    assert set(result.new) | set(result.duplicate) == set(candidates)
    assert result.total == len(candidates)


def test_existing_outside_candidates_is_ignored():
    result = partition([1, 2], {2, 99})
    assert result.new == [1]
    assert result.duplicate == [2]


def test_nothing_known():
    result = partition([1, 2, 3], set())
    assert result.new == [1, 2, 3]
    assert result.duplicate == []


def test_everything_known():
    result = partition([1, 2], [1, 2])
    assert result.new == []
    assert result.duplicate == [1, 2]


def test_int_and_equal_float_match():
    result = partition([5, 2.5], {5.0, 2.5})
    assert result.new == []
    assert result.duplicate == [5, 2.5]
