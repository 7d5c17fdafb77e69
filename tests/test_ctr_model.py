"""Tests for the rank -> CTR model."""

import pytest

from serp_intel.modules.reporting import CTRModel, ctr_for_rank


class TestCtrForRank:

    @pytest.mark.parametrize("rank, expected", [
        (1, 0.28),
        (3, 0.10),
        (10, 0.018),
        (11, 0.010),
        (20, 0.010),
        (21, 0.004),
        (50, 0.004),
        (51, 0.001),
        (None, 0.001),
        (0, 0.001),
        (-4, 0.001),
    ])
    def test_default_table(self, rank, expected):
        assert ctr_for_rank(rank) == pytest.approx(expected)

    def test_monotonically_non_increasing(self):
        rates = [ctr_for_rank(r) for r in range(1, 80)]
        assert all(b <= a for a, b in zip(rates, rates[1:]))


class TestCTRModelConfig:

    def test_from_dict_overrides(self):
        model = CTRModel.from_dict({
            "ctr_by_rank": {"1": 0.4, "2": 0.2},
            "ctr_page_two": 0.05,
            "ctr_floor": 0.0,
        })
        assert model.table_depth == 2
        assert model.ctr_for_rank(1) == pytest.approx(0.4)
        assert model.ctr_for_rank(3) == pytest.approx(0.05)
        assert model.ctr_for_rank(None) == 0.0

    def test_from_empty_dict_is_default(self):
        assert CTRModel.from_dict({}).ctr_for_rank(4) == pytest.approx(0.07)

    def test_gap_in_table_rejected(self):
        with pytest.raises(ValueError, match="contiguously"):
            CTRModel(by_rank={1: 0.3, 3: 0.1})

    def test_increasing_rates_rejected(self):
        with pytest.raises(ValueError, match="non-increasing"):
            CTRModel(by_rank={1: 0.1, 2: 0.2})

    def test_out_of_range_rate_rejected(self):
        with pytest.raises(ValueError):
            CTRModel(by_rank={1: 1.5})

    def test_band_order_rejected(self):
        with pytest.raises(ValueError):
            CTRModel(page_two_max_rank=60, deep_max_rank=50)
