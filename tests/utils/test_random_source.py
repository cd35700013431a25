"""Tests for the injectable random source."""

import pytest

from vibecord.util.random_source import RandomSource


class TestRandomSource:

    def test_seeded_sources_repeat(self):
        first, second = RandomSource(seed=7), RandomSource(seed=7)
        assert [first.float() for _ in range(5)] == [second.float() for _ in range(5)]

    def test_bool_extremes(self):
        source = RandomSource(seed=1)
        assert all(source.bool(1.0) for _ in range(50))
        assert not any(source.bool(0.0) for _ in range(50))

    def test_out_of_range_weight_falls_back(self):
        source = RandomSource(seed=3)
        hits = sum(source.bool(5.0) for _ in range(2000))
        assert 1400 < hits < 1800

    def test_pick(self):
        source = RandomSource(seed=2)
        assert source.pick(["only"]) == "only"
        assert source.pick(("a", "b", "c")) in {"a", "b", "c"}
        with pytest.raises(ValueError):
            source.pick([])

    def test_ranges(self):
        source = RandomSource(seed=4)
        for _ in range(100):
            assert 3 <= source.randint(3, 300) <= 300
            assert 0.3 <= source.uniform(0.3, 2.0) <= 2.0
