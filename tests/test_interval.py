"""Tests for core/interval.py: construction, set operations and compaction."""
import random

import pytest

from corpusview.core.interval import Interval


class TestConstruction:
    def test_single_index_shorthand(self):
        assert Interval(5) == Interval(5, 5)
        assert len(Interval(5)) == 1

    def test_length_and_iteration(self):
        iv = Interval(3, 7)
        assert len(iv) == 5
        assert list(iv) == [3, 4, 5, 6, 7]

    def test_rejects_reversed(self):
        with pytest.raises(ValueError):
            Interval(4, 3)

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            Interval(-1, 3)

    @pytest.mark.parametrize("bad", [1.5, "2", True, None])
    def test_rejects_non_int_start(self, bad):
        with pytest.raises(TypeError):
            Interval(bad, 3)

    def test_dict_round_trip(self):
        assert Interval.from_dict(Interval(2, 9).to_dict()) == Interval(2, 9)


class TestQueries:
    def test_contains_is_inclusive(self):
        iv = Interval(2, 4)
        assert iv.contains(2) and iv.contains(4)
        assert not iv.contains(1) and not iv.contains(5)

    def test_abuts_only_when_adjacent_and_disjoint(self):
        assert Interval(0, 2).abuts(Interval(3, 5))
        assert Interval(3, 5).abuts(Interval(0, 2))
        assert not Interval(0, 2).abuts(Interval(4, 5))
        assert not Interval(0, 3).abuts(Interval(3, 5))

    def test_overlaps(self):
        assert Interval(0, 3).overlaps(Interval(3, 5))
        assert not Interval(0, 2).overlaps(Interval(3, 5))


class TestTransformations:
    def test_union_of_overlapping(self):
        assert Interval(0, 4).union(Interval(2, 8)) == Interval(0, 8)

    def test_union_of_abutting(self):
        assert Interval(0, 2).union(Interval(3, 5)) == Interval(0, 5)

    def test_union_of_disjoint_raises(self):
        with pytest.raises(ValueError):
            Interval(0, 1).union(Interval(3, 5))

    def test_expand_to_adjacent(self):
        assert Interval(3, 5).expand_to(6) == Interval(3, 6)
        assert Interval(3, 5).expand_to(2) == Interval(2, 5)
        assert Interval(3, 5).expand_to(4) == Interval(3, 5)

    def test_expand_to_far_index_raises(self):
        with pytest.raises(ValueError):
            Interval(3, 5).expand_to(8)

    def test_partition_in_the_middle(self):
        assert Interval(0, 10).partition_at(4) == (Interval(0, 3), Interval(5, 10))

    def test_partition_at_edges(self):
        assert Interval(0, 10).partition_at(0) == (Interval(1, 10),)
        assert Interval(0, 10).partition_at(10) == (Interval(0, 9),)

    def test_partition_of_single_index_is_empty(self):
        assert Interval(7).partition_at(7) == ()

    def test_partition_outside_raises(self):
        with pytest.raises(ValueError):
            Interval(0, 3).partition_at(5)


class TestCompact:
    def test_merges_overlapping_and_abutting(self):
        result = Interval.compact([Interval(5, 6), Interval(0, 2), Interval(3, 3), Interval(10, 12), Interval(11, 15)])
        assert result == (Interval(0, 3), Interval(5, 6), Interval(10, 15))

    def test_empty(self):
        assert Interval.compact([]) == ()

    def test_idempotent_and_covering(self):
        rng = random.Random(7)
        for _ in range(50):
            intervals = []
            for _ in range(rng.randint(1, 12)):
                start = rng.randint(0, 60)
                intervals.append(Interval(start, start + rng.randint(0, 6)))
            once = Interval.compact(intervals)
            assert Interval.compact(once) == once

            covered = {i for iv in intervals for i in iv}
            assert {i for iv in once for i in iv} == covered
            for left, right in zip(once, once[1:]):
                assert left.end + 1 < right.start
