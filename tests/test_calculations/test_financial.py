"""Tests for NPV, IRR, equity multiple and payback."""

import numpy_financial as npf
import pytest

from capstack.calculations.financial import (
    cumulative_sum,
    equity_multiple,
    irr,
    npv,
    payback_period,
)


class TestNpv:
    def test_first_flow_undiscounted(self):
        assert npv(0.10, [-100, 110]) == pytest.approx(0.0)

    def test_matches_manual_discounting(self):
        flows = [-1_000, 300, 400, 500]
        expected = sum(cf / 1.08 ** t for t, cf in enumerate(flows))
        assert npv(0.08, flows) == pytest.approx(expected)

    def test_empty(self):
        assert npv(0.10, []) == 0.0


class TestIrr:
    """IRR by bisection, None when undefined."""

    def test_single_period(self):
        assert irr([-100, 110]) == pytest.approx(0.10, abs=1e-6)

    def test_multi_period(self):
        flows = [-1_000, 300, 400, 500]
        rate = irr(flows)
        assert npv(rate, flows) == pytest.approx(0.0, abs=1e-2)

    def test_negative_return(self):
        assert irr([-100, 50]) == pytest.approx(-0.5, abs=1e-6)

    def test_matches_numpy_financial(self):
        flows = [-36_000, 2_500, 3_100, 3_400, 3_900, 48_000]
        assert irr(flows) == pytest.approx(npf.irr(flows), abs=1e-5)

    @pytest.mark.parametrize("flows", [
        [],
        [0, 0, 0],
        [100, 50],
        [-100, -50],
    ])
    def test_undefined(self, flows):
        assert irr(flows) is None

    def test_root_outside_bracket(self):
        """A 2,000% return is beyond the 1,000% upper bound."""
        assert irr([-1, 21]) is None


class TestMultiples:
    def test_equity_multiple(self):
        assert equity_multiple([-100, 20, 130]) == pytest.approx(1.5)

    def test_equity_multiple_without_contribution(self):
        assert equity_multiple([0, 10]) is None

    def test_payback_interpolates(self):
        assert payback_period([-100, 40, 40, 40]) == pytest.approx(2.5)

    def test_payback_never_reached(self):
        assert payback_period([-100, 10, 10]) is None

    def test_cumulative_sum(self):
        assert cumulative_sum([1, 2, 3]) == [1, 3, 6]

    def test_cumulative_sum_empty(self):
        assert cumulative_sum([]) == []
