"""Tests for spanscore.matching.sampling."""

from __future__ import annotations

import random

import pytest

from spanscore.matching.sampling import Sampler


class TestSampler:
    def test_rate_one_accepts_everything(self):
        sampler = Sampler(1.0, random.Random(1))
        assert all(sampler.accept() for _ in range(200))

    def test_rate_zero_rejects_everything(self):
        sampler = Sampler(0.0, random.Random(1))
        assert not any(sampler.accept() for _ in range(200))

    @pytest.mark.parametrize("rate", [-0.1, 1.5])
    def test_out_of_range_rejected(self, rate):
        with pytest.raises(ValueError, match="sampling rate"):
            Sampler(rate)

    def test_seeded_draws_are_reproducible(self):
        first = Sampler(0.5, random.Random(42))
        second = Sampler(0.5, random.Random(42))
        assert [first.accept() for _ in range(50)] == [second.accept() for _ in range(50)]

    def test_partial_rate_accepts_roughly_that_share(self):
        sampler = Sampler(0.3, random.Random(7))
        accepted = sum(sampler.accept() for _ in range(2000))
        assert 450 < accepted < 750
